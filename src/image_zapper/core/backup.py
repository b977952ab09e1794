"""原地覆盖前的原文件备份。"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from image_zapper.core.exceptions import FileIOError

LOGGER = logging.getLogger(__name__)


def backup_original(source: Path, backup_path: Path, dry_run: bool) -> bool:
    """将源文件字节原样复制到备份路径，已存在则覆盖。

    dry_run 时不触碰文件系统，返回 False；完成复制返回 True。
    """

    if dry_run:
        LOGGER.debug("演练模式，跳过备份 %s -> %s", source, backup_path)
        return False

    try:
        shutil.copyfile(source, backup_path)
    except OSError as exc:
        raise FileIOError(f"备份失败: {source} -> {backup_path}: {exc}") from exc

    LOGGER.debug("已备份 %s -> %s", source, backup_path)
    return True
