"""处理流水线：启动检查、扫描、并发执行与结果汇总。"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, as_completed, wait
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, Optional

from image_zapper.core.config import RunConfig
from image_zapper.core.exceptions import SetupError
from image_zapper.core.models import FileOutcome, RunResult, RunSummary
from image_zapper.core.planner import plan_dispatch
from image_zapper.core.progress import ProgressUpdate
from image_zapper.core.scanner import iter_candidate_files
from image_zapper.processing.worker import ZapTask, run_task

LOGGER = logging.getLogger(__name__)

# 每个工作进程最多排队的任务数，扫描结果按需提交。
PENDING_PER_WORKER = 2

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
OutcomeCallback = Optional[Callable[[FileOutcome], None]]


def prepare_run(config: RunConfig) -> None:
    """启动检查，失败抛出 SetupError，此时尚未触碰任何文件。"""

    input_dir = config.input_dir
    if not input_dir.exists():
        raise SetupError(f"输入目录不存在: {input_dir}")
    if not input_dir.is_dir():
        raise SetupError(f"输入路径不是目录: {input_dir}")

    if config.in_place or config.dry_run:
        return

    assert config.output_dir is not None
    try:
        config.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SetupError(f"无法创建输出目录: {config.output_dir}: {exc}") from exc


def process_run(
    config: RunConfig,
    progress_callback: ProgressCallback = None,
    outcome_callback: OutcomeCallback = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunResult:
    """运行入口：扫描、逐文件规划并分发，汇总每个文件的终态。

    每个候选文件恰好产生一个结果，串行与并发两种方式计数一致。
    """

    prepare_run(config)

    summary = RunSummary()
    outcomes: list[FileOutcome] = []
    aborted = False

    def record(outcome: FileOutcome) -> None:
        summary.record(outcome)
        outcomes.append(outcome)
        if outcome_callback:
            outcome_callback(outcome)
        _emit_progress(progress_callback, summary.total, f"{outcome.status} {outcome.source_path.name}")

    def dispatch() -> Iterator[ZapTask]:
        nonlocal aborted
        output_root = _resolved_output_dir(config)
        seen_destinations: set[Path] = set()

        # 输出目录在扫描范围内时，只按运行开始前的内容计为跳过；本次写出的文件永不计入。
        for existing in _existing_outputs(config, output_root):
            record(
                FileOutcome(
                    source_path=existing,
                    status="skip-output-dir",
                    message="位于输出目录内",
                )
            )

        for candidate in iter_candidate_files(config, exclude_dir=output_root):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("收到取消信号，停止分发新文件")
                aborted = True
                return

            plan = plan_dispatch(candidate, config)
            if not plan.in_place:
                if plan.destination in seen_destinations:
                    LOGGER.warning("输出文件名冲突，后写入者覆盖: %s", plan.destination)
                seen_destinations.add(plan.destination)

            if config.dry_run:
                record(
                    FileOutcome(
                        source_path=plan.source_path,
                        status="processed-dry-run",
                        output_path=plan.destination,
                        backup_path=plan.backup_path,
                    )
                )
                continue

            yield ZapTask(plan=plan, optimize=config.optimize)

    LOGGER.info("开始扫描输入目录 %s", config.input_dir)
    _emit_progress(progress_callback, 0, "开始处理")

    if config.max_workers <= 1 or config.dry_run:
        for task in dispatch():
            record(_run_safely(task))
    else:
        _run_pool(dispatch(), config.max_workers, record)

    LOGGER.info("处理完成：%s", summary.summary_line())
    _emit_progress(progress_callback, summary.total, "处理完成", status="aborted" if aborted else "done")
    return RunResult(summary=summary, outcomes=outcomes, aborted=aborted)


def _run_pool(tasks: Iterator[ZapTask], max_workers: int, record: Callable[[FileOutcome], None]) -> None:
    """进程池执行；结果只在当前线程汇总。"""

    limit = max_workers * PENDING_PER_WORKER
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        future_map: dict[Future, ZapTask] = {}
        for task in tasks:
            future_map[executor.submit(run_task, task)] = task
            if len(future_map) >= limit:
                done, _ = wait(future_map, return_when=FIRST_COMPLETED)
                for future in done:
                    record(_collect(future, future_map.pop(future)))

        for future in as_completed(list(future_map)):
            record(_collect(future, future_map.pop(future)))


def _collect(future: Future, task: ZapTask) -> FileOutcome:
    try:
        return future.result()
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("任务执行异常：%s", exc)
        return _worker_error(task, exc)


def _run_safely(task: ZapTask) -> FileOutcome:
    try:
        return run_task(task)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("任务执行异常：%s", exc)
        return _worker_error(task, exc)


def _worker_error(task: ZapTask, exc: Exception) -> FileOutcome:
    return FileOutcome(
        source_path=task.plan.source_path,
        status="error-worker",
        output_path=task.plan.destination,
        message=str(exc) or type(exc).__name__,
    )


def _resolved_output_dir(config: RunConfig) -> Optional[Path]:
    if config.in_place or config.output_dir is None:
        return None
    return config.output_dir.expanduser().resolve()


def _existing_outputs(config: RunConfig, output_root: Optional[Path]) -> list[Path]:
    """递归扫描且输出目录位于输入目录之下时，先快照其中已有的候选文件。"""

    if output_root is None or not config.recursive:
        return []
    if not _is_within(output_root, config.input_dir.expanduser().resolve()):
        return []
    if not output_root.is_dir():
        return []

    snapshot_config = replace(config, input_dir=output_root)
    return [candidate.source_path for candidate in iter_candidate_files(snapshot_config)]


def _is_within(path: Path, directory: Path) -> bool:
    try:
        path.resolve().relative_to(directory)
    except (OSError, ValueError):
        return False
    return True


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    message: Optional[str] = None,
    status: str = "running",
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=None, completed=completed, message=message, status=status))
