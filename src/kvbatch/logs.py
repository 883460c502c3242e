from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Callable

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{function} | {message}"

_handler_id: int | None = None


def configure(level: str = "INFO", sink: Callable[[Any], None] | Any = sys.stderr) -> int:
    """Enable kvbatch log records and route them to `sink`.

    The package disables its own records on import, so nothing is emitted
    until this is called. Calling it again replaces the previous sink.
    """
    global _handler_id  # noqa: PLW0603

    if _handler_id is not None:
        logger.remove(_handler_id)

    _handler_id = logger.add(
        sink,
        level=level,
        format=_FORMAT,
        filter="kvbatch",
        backtrace=True,
        diagnose=False,
    )
    logger.enable("kvbatch")
    return _handler_id


def disable() -> None:
    global _handler_id  # noqa: PLW0603

    if _handler_id is not None:
        logger.remove(_handler_id)
        _handler_id = None
    logger.disable("kvbatch")
