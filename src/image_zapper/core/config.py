"""运行配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional

DEFAULT_EXTENSIONS: FrozenSet[str] = frozenset({".png", ".jpg", ".jpeg"})


@dataclass(frozen=True, slots=True)
class RunConfig:
    """单次运行的配置，构造后不可变。

    ``output_dir`` 为空，或与 ``input_dir`` 指向同一目录时，按原地覆盖处理。
    """

    input_dir: Path
    output_dir: Optional[Path] = None
    recursive: bool = True
    dry_run: bool = False
    optimize: bool = False
    backup: bool = False
    extensions: FrozenSet[str] = field(default_factory=lambda: DEFAULT_EXTENSIONS)
    max_workers: int = 4

    @property
    def in_place(self) -> bool:
        if self.output_dir is None:
            return True
        return _same_directory(self.output_dir, self.input_dir)

    def accepts_suffix(self, suffix: str) -> bool:
        """扩展名匹配不区分大小写。"""

        return suffix.lower() in {ext.lower() for ext in self.extensions}


def _same_directory(a: Path, b: Path) -> bool:
    return a.expanduser().resolve() == b.expanduser().resolve()
