from __future__ import annotations

from queue import Queue
from typing import TYPE_CHECKING, Final

from kvbatch.kernel.bus import CQE, SQE
from kvbatch.kernel.t_api.error import Error
from kvbatch.kernel.t_batch import Completion, Submission

if TYPE_CHECKING:
    from collections.abc import Callable
    from random import Random

    from kvbatch.aio.subsystem import SubsystemDST


def new(r: Random, p: float) -> _AIODst:
    return _AIODst(r, p)


class _AIODst:
    """Deterministic simulation of the aio layer.

    Submissions are processed only on `flush`, in a shuffled order, and each
    one fails with probability `p`, either before the store sees it or after
    the store executed it (the effects stay, the caller gets an error).
    """

    def __init__(self, r: Random, p: float) -> None:
        self.r: Final = r
        self.p: Final = p
        self.sqes: list[SQE[Submission, Completion]] = []
        self.cqes: list[CQE[Submission, Completion]] = []
        self.subsystems: dict[str, SubsystemDST] = {}
        self._errors: Final = Queue[Error]()

    @property
    def errors(self) -> Queue[Error]:
        return self._errors

    def add_subsystem(self, subsystem: SubsystemDST) -> None:
        self.subsystems[subsystem.kind()] = subsystem

    def start(self) -> None:
        for subsystem in self.subsystems.values():
            subsystem.start(None)

    def stop(self) -> None:
        for subsystem in self.subsystems.values():
            subsystem.stop()

    def flush(self, time: int) -> None:  # pyright: ignore[reportUnusedParameter]
        flush: dict[str, list[SQE[Submission, Completion]]] = {}
        for sqe in self.sqes:
            flush.setdefault(sqe.submission.kind(), []).append(sqe)

        for kind in sorted(flush):
            subsystem = self.subsystems.get(kind)
            assert subsystem is not None, "invalid aio submission"
            to_process: list[SQE[Submission, Completion]] = []
            pre_failure: dict[int, bool] = {}
            post_failure: dict[int, bool] = {}
            n: int = 0

            for i, sqe in enumerate(flush[kind]):
                # simulate p% chance of pre/post failure
                if self.r.random() < self.p:
                    match self.r.randint(0, 1):
                        case 0:
                            pre_failure[i] = True
                        case 1:
                            post_failure[n] = True
                        case _:
                            msg = "invalid path"
                            raise AssertionError(msg)

                if pre_failure.get(i, False):
                    self.enqueue_cqe(
                        CQE(sqe.callback, ConnectionError("simulated failure before processing"))
                    )
                else:
                    to_process.append(sqe)
                    n += 1

            for i, cqe in enumerate(subsystem.process(to_process)):
                if post_failure.get(i, False):
                    cqe.completion = ConnectionError("simulated failure after processing")
                self.enqueue_cqe(cqe)

        self.sqes.clear()

    def dispatch(
        self,
        v: Submission | None,
        cb: Callable[[Completion | Exception], None],
    ) -> None:
        assert v is not None
        self.enqueue_sqe(SQE(cb, v))

    def enqueue_sqe(self, sqe: SQE[Submission, Completion]) -> None:
        self.sqes.insert(self.r.randint(0, len(self.sqes)), sqe)

    def enqueue_cqe(self, cqe: CQE[Submission, Completion]) -> None:
        self.cqes.append(cqe)

    def dequeue_cqe(
        self,
        n: int,
        timeout: float | None = None,  # pyright: ignore[reportUnusedParameter]
    ) -> list[CQE[Submission, Completion]]:
        cqes = self.cqes[: min(n, len(self.cqes))]
        self.cqes = self.cqes[min(n, len(self.cqes)) :]
        return cqes
