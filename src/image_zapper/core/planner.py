"""输出路径与备份路径规划。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from image_zapper.core.config import RunConfig
from image_zapper.core.models import CandidateFile, DispatchPlan

BACKUP_MARKER = "bak"


def backup_path_for(path: Path) -> Optional[Path]:
    """在原扩展名前插入 ``bak``：``photo.png`` -> ``photo.bak.png``。

    没有扩展名的文件不做备份，返回 None。
    """

    suffix = path.suffix
    if not suffix:
        return None
    return path.with_name(f"{path.stem}.{BACKUP_MARKER}{suffix}")


def plan_dispatch(candidate: CandidateFile, config: RunConfig) -> DispatchPlan:
    """根据运行模式确定目标路径。纯函数，可并发重复调用。

    指定输出目录时目录结构被展平，同名文件后写覆盖先写。
    """

    source = candidate.source_path

    if config.in_place:
        destination = source
        in_place = True
    else:
        assert config.output_dir is not None
        destination = config.output_dir / source.name
        in_place = False

    backup_path = None
    if config.backup and in_place:
        backup_path = backup_path_for(source)

    return DispatchPlan(
        source_path=source,
        destination=destination,
        backup_path=backup_path,
        in_place=in_place,
    )
