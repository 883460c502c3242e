from __future__ import annotations

from loguru import logger

from kvbatch.batch import Batch, BatchState
from kvbatch.client import Client, Config
from kvbatch.client import new as new_client
from kvbatch.kernel.t_api.error import (
    BatchStateError,
    Error,
    ExecAbortError,
    InvalidArgumentTypeError,
    InvalidOptionError,
    MalformedArgumentListError,
    RequestError,
    UnsupportedCommandError,
)
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch.command import Command, RequestType

logger.disable("kvbatch")

__all__ = [
    "Batch",
    "BatchState",
    "BatchStateError",
    "Client",
    "Command",
    "Config",
    "Error",
    "ExecAbortError",
    "InvalidArgumentTypeError",
    "InvalidOptionError",
    "MalformedArgumentListError",
    "RequestError",
    "RequestType",
    "StatusCode",
    "UnsupportedCommandError",
    "new_batch",
    "new_client",
]


def new_batch(is_atomic: bool) -> Batch:  # noqa: FBT001
    return Batch(is_atomic)
