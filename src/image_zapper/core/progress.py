"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ProgressUpdate:
    """处理过程中的进度信息。扫描为惰性进行，总数未知时为 None。"""

    total: Optional[int]
    completed: int
    message: Optional[str] = None
    status: str = "running"
