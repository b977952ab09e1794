"""命令行入口。"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from image_zapper.core.config import RunConfig
from image_zapper.core.exceptions import SetupError
from image_zapper.core.models import FileOutcome, OutcomeKind
from image_zapper.core.progress import ProgressUpdate
from image_zapper.core.report import write_csv_report
from image_zapper.processing.pipeline import process_run
from image_zapper.utils.logging import level_for_verbosity, setup_logging

app = typer.Typer(help="批量去除 PNG/JPG 图片元数据（像素级重新编码）。")

LOGGER = logging.getLogger(__name__)

SETUP_FAILURE_EXIT_CODE = 2


def _print_outcome(outcome: FileOutcome) -> None:
    source = outcome.source_path

    if outcome.kind == OutcomeKind.ERRORED:
        typer.echo(f"Error zapping {source}: {outcome.message}", err=True)
        return

    if outcome.kind == OutcomeKind.SKIPPED:
        typer.echo(f"Skipped: {source} ({outcome.message})")
        return

    if outcome.is_dry_run:
        typer.echo(f"Would process: {source} -> {outcome.output_path}")
        if outcome.backup_path:
            typer.echo(f"Would back up: {source} -> {outcome.backup_path}")
        return

    if outcome.backup_path:
        typer.echo(f"Backed up: {source} -> {outcome.backup_path}")
    typer.echo(f"Zapped: {source} -> {outcome.output_path}")


def _build_progress_callback(progress: Progress) -> Callable[[ProgressUpdate], None]:
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if task_id is None:
            task_id = progress.add_task("处理图片", total=update.total)
        progress.update(task_id, completed=update.completed)

    return callback


@app.command()
def zap(  # noqa: PLR0913
    input_dir: Path = typer.Argument(Path("."), help="待扫描的输入目录，默认当前目录"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出目录（展平）；不指定则原地覆盖"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描子目录"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="只显示将要执行的操作，不修改任何文件"),
    optimize: bool = typer.Option(False, "--optimize", help="对 PNG 输出执行无损重压缩"),
    backup: bool = typer.Option(False, "--backup", "-b", help="原地覆盖前备份为 <name>.bak.<ext>"),
    max_workers: int = typer.Option(4, "--workers", "-w", help="并发进程数量，1 表示串行"),
    report: Optional[Path] = typer.Option(None, "--report", help="将逐文件结果写入 CSV 报告"),
    show_progress: bool = typer.Option(False, "--progress/--no-progress", help="在 stderr 显示进度"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="日志详细程度，可重复"),
) -> None:
    """扫描目录并去除图片元数据。"""

    setup_logging(level_for_verbosity(verbose))
    LOGGER.debug("CLI 参数解析完成")

    config = RunConfig(
        input_dir=input_dir.expanduser(),
        output_dir=output.expanduser() if output else None,
        recursive=recursive,
        dry_run=dry_run,
        optimize=optimize,
        backup=backup,
        max_workers=max_workers,
    )

    progress = None
    if show_progress:
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            TextColumn("{task.completed} 个文件"),
            TimeElapsedColumn(),
            console=Console(stderr=True),
            redirect_stdout=False,
            transient=True,
        )

    try:
        with progress if progress is not None else nullcontext():
            result = process_run(
                config,
                progress_callback=_build_progress_callback(progress) if progress is not None else None,
                outcome_callback=_print_outcome,
            )
    except SetupError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=SETUP_FAILURE_EXIT_CODE) from exc

    if report is not None:
        if dry_run:
            LOGGER.warning("演练模式不写报告: %s", report)
        else:
            try:
                write_csv_report(result.outcomes, report)
            except OSError as exc:
                LOGGER.error("写入报告失败：%s", exc)

    typer.echo(result.summary.summary_line())

    if result.summary.exit_code != 0:
        raise typer.Exit(code=result.summary.exit_code)


if __name__ == "__main__":
    app()
