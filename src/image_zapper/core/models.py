"""核心数据模型定义。"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


class OutcomeKind:
    """结果分类。状态字符串的前缀决定分类。"""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(slots=True)
class CandidateFile:
    """扫描阶段得到的候选图片。"""

    source_path: Path
    root: Path
    relative_path: Path


@dataclass(frozen=True, slots=True)
class DispatchPlan:
    """单个文件的目标路径与备份路径。"""

    source_path: Path
    destination: Path
    backup_path: Optional[Path]
    in_place: bool


@dataclass(frozen=True, slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于汇总/报告）。"""

    source_path: Path
    status: str
    output_path: Optional[Path] = None
    backup_path: Optional[Path] = None
    message: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.status.startswith("processed"):
            return OutcomeKind.PROCESSED
        if self.status.startswith("skip"):
            return OutcomeKind.SKIPPED
        return OutcomeKind.ERRORED

    @property
    def is_dry_run(self) -> bool:
        return self.status == "processed-dry-run"


@dataclass(slots=True)
class RunSummary:
    """运行级计数器，只能通过 ``record`` 递增。"""

    processed: int = 0
    skipped: int = 0
    errored: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, outcome: FileOutcome) -> None:
        kind = outcome.kind
        with self._lock:
            if kind == OutcomeKind.PROCESSED:
                self.processed += 1
            elif kind == OutcomeKind.SKIPPED:
                self.skipped += 1
            else:
                self.errored += 1

    @property
    def total(self) -> int:
        return self.processed + self.skipped + self.errored

    @property
    def exit_code(self) -> int:
        return 1 if self.errored > 0 else 0

    def summary_line(self) -> str:
        return f"processed={self.processed} skipped={self.skipped} errored={self.errored}"


@dataclass(slots=True)
class RunResult:
    """一次运行的最终产出。"""

    summary: RunSummary
    outcomes: list[FileOutcome]
    aborted: bool = False

    def errored(self) -> list[FileOutcome]:
        return [item for item in self.outcomes if item.kind == OutcomeKind.ERRORED]
