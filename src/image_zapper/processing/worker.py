"""并发处理的工作单元。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from image_zapper.core.backup import backup_original
from image_zapper.core.exceptions import FileProcessingError
from image_zapper.core.models import DispatchPlan, FileOutcome
from image_zapper.processing.transcoder import transcode_file

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ZapTask:
    """描述单个图片处理任务。"""

    plan: DispatchPlan
    optimize: bool = False


def run_task(task: ZapTask) -> FileOutcome:
    """在工作进程中执行完整的处理流程。

    分两阶段：请求备份时备份必须先成功，才会进入转码阶段；
    备份失败则源文件保持不变。
    """

    plan = task.plan
    backed_up = None

    if plan.backup_path is not None:
        try:
            backup_original(plan.source_path, plan.backup_path, dry_run=False)
        except FileProcessingError as exc:
            return _error_outcome(plan, exc)
        backed_up = plan.backup_path

    try:
        optimized = transcode_file(plan.source_path, plan.destination, task.optimize)
    except FileProcessingError as exc:
        return _error_outcome(plan, exc, backup_path=backed_up)

    return FileOutcome(
        source_path=plan.source_path,
        status="processed",
        output_path=plan.destination,
        backup_path=backed_up,
        message="optimized" if optimized else None,
    )


def _error_outcome(
    plan: DispatchPlan,
    exc: FileProcessingError,
    backup_path: Optional[Path] = None,
) -> FileOutcome:
    LOGGER.debug("处理失败 %s: %s", plan.source_path, exc)
    return FileOutcome(
        source_path=plan.source_path,
        status=exc.status,
        output_path=plan.destination,
        backup_path=backup_path,
        message=str(exc),
    )
