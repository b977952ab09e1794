"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Optional

from image_zapper.core.config import RunConfig
from image_zapper.core.models import CandidateFile

LOGGER = logging.getLogger(__name__)


def _ignore_walk_error(exc: OSError) -> None:
    # 无法读取的目录直接丢弃，不计入任何结果。
    LOGGER.debug("跳过无法读取的目录 %s: %s", exc.filename, exc)


def _iter_files(root: Path, recursive: bool, exclude_dir: Optional[Path] = None) -> Iterator[Path]:
    """遍历目录下的文件条目；非递归时只看第一层，``exclude_dir`` 整棵跳过。"""

    for dirpath, dirnames, filenames in os.walk(root, onerror=_ignore_walk_error):
        base = Path(dirpath)
        if not recursive:
            dirnames.clear()
        elif exclude_dir is not None:
            dirnames[:] = [name for name in dirnames if (base / name).resolve() != exclude_dir]
        for name in filenames:
            yield base / name


def _is_regular_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError as exc:
        LOGGER.debug("无法获取文件状态 %s: %s", path, exc)
        return False


def iter_candidate_files(config: RunConfig, exclude_dir: Optional[Path] = None) -> Iterator[CandidateFile]:
    """惰性产出输入目录下扩展名匹配的常规文件，顺序不作保证。

    ``exclude_dir`` 需为已 resolve 的路径，其下的文件不会产出。
    """

    root = config.input_dir
    for candidate in _iter_files(root, config.recursive, exclude_dir):
        if not config.accepts_suffix(candidate.suffix):
            continue
        if not _is_regular_file(candidate):
            continue

        yield CandidateFile(
            source_path=candidate,
            root=root,
            relative_path=candidate.relative_to(root),
        )
