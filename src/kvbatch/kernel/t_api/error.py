from __future__ import annotations

from typing import Final

from kvbatch.kernel.t_api.status import StatusCode


class Error(Exception):
    def __init__(
        self,
        code: StatusCode,
        original_error: Exception | None = None,
        message: str | None = None,
    ) -> None:
        self.code: Final = code
        self.original_error: Final = original_error
        self.message: Final = message if message is not None else str(code)
        super().__init__(self.message)

    def unwrap(self) -> Exception | None:
        return self.original_error

    def is_(self, target: Exception) -> bool:
        return isinstance(target, Error) and target.code == self.code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.name}, {self.message!r})"


class InvalidArgumentTypeError(Error, TypeError):
    def __init__(self, value: object) -> None:
        super().__init__(
            StatusCode.STATUS_INVALID_ARGUMENT_TYPE,
            message=f"expected str or bytes argument, got {type(value).__name__}",
        )


class InvalidOptionError(Error, ValueError):
    def __init__(self, message: str) -> None:
        super().__init__(StatusCode.STATUS_INVALID_OPTION, message=message)


class UnsupportedCommandError(Error):
    def __init__(self, message: str) -> None:
        super().__init__(StatusCode.STATUS_UNSUPPORTED_COMMAND, message=message)


class BatchStateError(Error):
    def __init__(self, message: str) -> None:
        super().__init__(StatusCode.STATUS_BATCH_ALREADY_SUBMITTED, message=message)


class MalformedArgumentListError(Error):
    def __init__(self, message: str) -> None:
        super().__init__(StatusCode.STATUS_MALFORMED_ARGUMENT_LIST, message=message)


class RequestError(Error):
    """A single command failed at the store.

    Embedded in place in the result list of a non-atomic batch.
    """

    def __init__(self, message: str) -> None:
        super().__init__(StatusCode.STATUS_REQUEST_ERROR, message=message)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RequestError) and other.message == self.message

    def __hash__(self) -> int:
        return hash((RequestError, self.message))


class ExecAbortError(Error):
    """An atomic batch failed as a whole; no partial result exists."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(StatusCode.STATUS_EXEC_ABORT, original_error, message)

