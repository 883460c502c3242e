from __future__ import annotations

from queue import Empty, Queue, ShutDown
from typing import TYPE_CHECKING, Final, Protocol

from loguru import logger

from kvbatch.kernel.bus import CQE, SQE
from kvbatch.kernel.t_api.error import Error
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch import Completion, Submission

if TYPE_CHECKING:
    from collections.abc import Callable

    from kvbatch.aio.subsystem import Subsystem


class AIO(Protocol):
    def add_subsystem(self, subsystem: Subsystem) -> None: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
    @property
    def errors(self) -> Queue[Error]: ...
    def flush(self, time: int) -> None: ...
    def dispatch(
        self,
        v: Submission | None,
        cb: Callable[[Completion | Exception], None],
    ) -> None: ...
    def enqueue_sqe(self, sqe: SQE[Submission, Completion]) -> None: ...
    def enqueue_cqe(self, cqe: CQE[Submission, Completion]) -> None: ...
    def dequeue_cqe(
        self, n: int, timeout: float | None = None
    ) -> list[CQE[Submission, Completion]]: ...


def new(size: int) -> _AIO:
    return _AIO(size)


class _AIO:
    def __init__(self, size: int) -> None:
        self.cq: Final = Queue[CQE[Submission, Completion]](size)
        self.subsystems: dict[str, Subsystem] = {}
        self._errors: Final = Queue[Error]()

    @property
    def errors(self) -> Queue[Error]:
        return self._errors

    def add_subsystem(self, subsystem: Subsystem) -> None:
        assert subsystem.kind() not in self.subsystems, "subsystem is already registered"
        self.subsystems[subsystem.kind()] = subsystem

    def start(self) -> None:
        for subsystem in self.subsystems.values():
            subsystem.start(self._errors)

    def stop(self) -> None:
        for subsystem in self.subsystems.values():
            subsystem.stop()
        self.cq.shutdown()

    def flush(self, time: int) -> None:
        for subsystem in self.subsystems.values():
            subsystem.flush(time)

    def dispatch(
        self,
        v: Submission | None,
        cb: Callable[[Completion | Exception], None],
    ) -> None:
        assert v is not None
        self.enqueue_sqe(SQE(callback=cb, submission=v))

    def enqueue_sqe(self, sqe: SQE[Submission, Completion]) -> None:
        subsystem = self.subsystems.get(sqe.submission.kind())
        assert subsystem is not None, "invalid aio submission"

        if not subsystem.enqueue(sqe):
            logger.warning("{} submission queue full", subsystem.kind())
            sqe.callback(Error(StatusCode.STATUS_SUBMISSION_QUEUE_FULL))

    def enqueue_cqe(self, cqe: CQE[Submission, Completion]) -> None:
        self.cq.put(cqe)

    def dequeue_cqe(
        self, n: int, timeout: float | None = None
    ) -> list[CQE[Submission, Completion]]:
        """Take up to `n` completions.

        With a timeout, waits at most that long for the first completion;
        the remaining ones are only taken if already available.
        """
        cqes: list[CQE[Submission, Completion]] = []

        for i in range(n):
            try:
                if i == 0 and timeout is not None:
                    cqe = self.cq.get(timeout=timeout)
                else:
                    cqe = self.cq.get_nowait()
            except (Empty, ShutDown):
                break

            cqes.append(cqe)

        return cqes
