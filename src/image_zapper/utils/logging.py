"""日志初始化。"""

from __future__ import annotations

import logging

VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def level_for_verbosity(verbosity: int) -> int:
    """将 -v 次数映射到日志级别。"""

    index = max(0, min(verbosity, len(VERBOSITY_LEVELS) - 1))
    return VERBOSITY_LEVELS[index]


def setup_logging(level: int = logging.INFO) -> None:
    """初始化项目日志配置，日志写入 stderr。"""

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
    )
