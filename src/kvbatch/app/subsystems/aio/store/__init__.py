from __future__ import annotations

from dataclasses import dataclass
from queue import Empty, Full, Queue, ShutDown
from threading import Thread
from typing import TYPE_CHECKING, Final, Literal, Protocol

from loguru import logger

from kvbatch.kernel.bus import CQE, SQE
from kvbatch.kernel.t_api.error import Error
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch import Completion, Submission

if TYPE_CHECKING:
    from kvbatch.aio import AIO


class Store(Protocol):
    """The single primitive a transport offers.

    `execute` returns one entry per submission, in order. An entry is either a
    `Completion` holding one result per command, or an `Error` for a
    submission that failed as a whole (an aborted transaction).
    """

    def execute(self, submissions: list[Submission]) -> list[Completion | Error]: ...


def process(
    store: Store, sqes: list[SQE[Submission, Completion]]
) -> list[CQE[Submission, Completion]]:
    cqes: list[CQE[Submission, Completion]] = []
    submissions = [sqe.submission for sqe in sqes]

    err: Error | None = None
    results: list[Completion | Error] | None = None
    try:
        results = store.execute(submissions)
    except Exception as e:  # noqa: BLE001
        logger.warning("store failed executing {} submissions: {!r}", len(submissions), e)
        err = Error(StatusCode.STATUS_STORE_ERROR, e, f"store execution failed: {e}")
    else:
        assert len(submissions) == len(results), "submissions and results must have equal length"

    for i, sqe in enumerate(sqes):
        if err is not None:
            cqes.append(CQE(callback=sqe.callback, completion=err))
            continue

        assert results is not None
        result = results[i]
        if isinstance(result, Completion):
            assert len(result.results) == len(sqe.submission.commands), (
                "results and commands must have equal length"
            )
            if sqe.submission.is_atomic:
                assert not any(isinstance(r, Exception) for r in result.results), (
                    "atomic submission must not complete with per-command errors"
                )
        cqes.append(CQE(callback=sqe.callback, completion=result))

    return cqes


def collect(c: Queue[SQE[Submission, Completion]], n: int) -> list[SQE[Submission, Completion]]:
    assert n > 0, "batch size must be greater than 0"

    batch: list[SQE[Submission, Completion]] = []
    for _ in range(n):
        try:
            batch.append(c.get_nowait())
        except (Empty, ShutDown):
            break

    return batch


@dataclass(frozen=True)
class Config:
    size: int = 100
    batch_size: int = 10
    workers: int = 1


def new(aio: AIO, store: Store, config: Config) -> _StoreSubsystem:
    return _StoreSubsystem(aio, store, config)


class _StoreSubsystem:
    def __init__(self, aio: AIO, store: Store, config: Config) -> None:
        self.config: Final = config
        self.aio: Final = aio
        self.store: Final = store
        self.sq: Final = Queue[SQE[Submission, Completion]](config.size)
        self.workers: list[Thread] = [
            Thread(target=self._worker, daemon=True) for _ in range(config.workers)
        ]

    def kind(self) -> Literal["store"]:
        return "store"

    def start(self, errors: Queue[Error] | None) -> None:  # pyright: ignore[reportUnusedParameter]
        for w in self.workers:
            w.start()

    def stop(self) -> None:
        self.sq.shutdown()
        for w in self.workers:
            if w.is_alive():
                w.join()

        self.workers.clear()
        self.sq.join()

    def enqueue(self, sqe: SQE[Submission, Completion]) -> bool:
        try:
            self.sq.put_nowait(sqe)
        except (Full, ShutDown):
            return False
        else:
            return True

    def flush(self, time: int) -> None:  # pyright: ignore[reportUnusedParameter]
        return None

    def process(self, sqes: list[SQE[Submission, Completion]]) -> list[CQE[Submission, Completion]]:
        return process(self.store, sqes)

    def _worker(self) -> None:
        while True:
            try:
                sqe = self.sq.get()
            except ShutDown:
                break

            sqes = [sqe]
            if self.config.batch_size > 1:
                sqes.extend(collect(self.sq, self.config.batch_size - 1))

            for cqe in self.process(sqes):
                self.aio.enqueue_cqe(cqe)

            for _ in sqes:
                self.sq.task_done()
