from __future__ import annotations

from enum import IntEnum
from typing import override

MIN_SUCCESS_RANGE = 20000
MAX_SUCCESS_RANGE = 30000


class StatusCode(IntEnum):
    # Application level status (20000-49999)
    STATUS_OK = 20000

    STATUS_INVALID_ARGUMENT_TYPE = 40000
    STATUS_INVALID_OPTION = 40001
    STATUS_UNSUPPORTED_COMMAND = 40002
    STATUS_BATCH_ALREADY_SUBMITTED = 40900

    # Execution level status (42000-42999)
    STATUS_REQUEST_ERROR = 42000
    STATUS_EXEC_ABORT = 42001

    # Platform level status (50000-59999)
    STATUS_INTERNAL_SERVER_ERROR = 50000
    STATUS_MALFORMED_ARGUMENT_LIST = 50001
    STATUS_STORE_ERROR = 50004
    STATUS_CLIENT_CLOSED = 50300
    STATUS_SUBMISSION_QUEUE_FULL = 50302
    STATUS_TIMEOUT = 50400

    @override
    def __str__(self) -> str:
        messages = {
            self.STATUS_OK: "The request was successful",
            self.STATUS_INVALID_ARGUMENT_TYPE: "The argument type is invalid",
            self.STATUS_INVALID_OPTION: "The command option is invalid",
            self.STATUS_UNSUPPORTED_COMMAND: "The command is not supported in this mode",
            self.STATUS_BATCH_ALREADY_SUBMITTED: "The batch was already submitted",
            self.STATUS_REQUEST_ERROR: "The command failed",
            self.STATUS_EXEC_ABORT: "The transaction was aborted",
            self.STATUS_INTERNAL_SERVER_ERROR: "There was an internal server error",
            self.STATUS_MALFORMED_ARGUMENT_LIST: "The argument list is malformed",
            self.STATUS_STORE_ERROR: "There was an error in the store subsystem",
            self.STATUS_CLIENT_CLOSED: "The client is closed",
            self.STATUS_SUBMISSION_QUEUE_FULL: "The store submission queue is full",
            self.STATUS_TIMEOUT: "The batch timed out",
        }
        try:
            return messages[self]
        except KeyError as e:
            msg = f"Unknown status code {int(self)}"
            raise ValueError(msg) from e

    def is_successful(self) -> bool:
        return MIN_SUCCESS_RANGE <= self.value < MAX_SUCCESS_RANGE
