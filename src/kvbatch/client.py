from __future__ import annotations

import contextlib
import time
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from loguru import logger

from kvbatch import aio as aio_
from kvbatch.app.subsystems.aio import store as store_
from kvbatch.kernel.t_api.error import Error, RequestError
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch import Completion

if TYPE_CHECKING:
    from datetime import timedelta
    from types import TracebackType

    from kvbatch.aio import AIO
    from kvbatch.app.subsystems.aio.store import Store
    from kvbatch.batch import Batch


@dataclass(frozen=True)
class Config:
    size: int = 100
    batch_size: int = 10
    workers: int = 1
    completion_batch_size: int = 10
    poll_interval: float = 0.01
    timeout: timedelta | None = None


def new(store: Store, config: Config | None = None) -> Client:
    config = config if config is not None else Config()
    aio = aio_.new(config.size)
    aio.add_subsystem(
        store_.new(
            aio,
            store,
            store_.Config(size=config.size, batch_size=config.batch_size, workers=config.workers),
        )
    )
    client = Client(aio, config)
    client.start()
    return client


class Client:
    """Submits batches to a store through an aio layer and waits for the result.

    `exec` returns a list holding one response per command of the batch, in
    command order. For an atomic batch that failed at the store, nothing is
    returned and `ExecAbortError` is raised. For a non-atomic batch, a failed
    command appears as a `RequestError` in its slot, unless `raise_on_error`
    asks for it to be raised.
    """

    def __init__(self, aio: AIO, config: Config) -> None:
        self.aio: Final = aio
        self.config: Final = config
        self._started = False
        self._closed = False

    def start(self) -> None:
        assert not self._started, "client already started"
        self.aio.start()
        self._started = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._started:
            self.aio.stop()

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def exec(
        self,
        batch: Batch,
        *,
        raise_on_error: bool = False,
        binary_output: bool = False,
        timeout: timedelta | None = None,
    ) -> list[Any]:
        if self._closed:
            raise Error(StatusCode.STATUS_CLIENT_CLOSED)

        submission = batch.submit()
        if not submission.commands:
            batch.finish(failed=False)
            return []

        future = Future[Completion]()

        def callback(completion: Completion | Exception) -> None:
            # a completion arriving after a timeout is dropped
            with contextlib.suppress(InvalidStateError):
                if isinstance(completion, Exception):
                    future.set_exception(completion)
                else:
                    future.set_result(completion)

        try:
            self.aio.dispatch(submission, callback)
            completion = self._wait(future, timeout if timeout is not None else self.config.timeout)
        except Exception as e:
            batch.finish(failed=True)
            logger.debug("batch of {} commands failed: {!r}", len(submission.commands), e)
            raise

        assert len(completion.results) == len(submission.commands), (
            "results and commands must have equal length"
        )
        batch.finish(failed=False)

        if raise_on_error:
            for result in completion.results:
                if isinstance(result, RequestError):
                    raise result

        if binary_output:
            return list(completion.results)
        return [decode(result) for result in completion.results]

    def _wait(self, future: Future[Completion], timeout: timedelta | None) -> Completion:
        deadline = None if timeout is None else time.monotonic() + timeout.total_seconds()

        while not future.done():
            self.aio.flush(int(time.time() * 1000))
            for cqe in self.aio.dequeue_cqe(
                self.config.completion_batch_size, timeout=self.config.poll_interval
            ):
                cqe.invoke()

            if deadline is not None and time.monotonic() >= deadline:
                with contextlib.suppress(InvalidStateError):
                    future.set_exception(Error(StatusCode.STATUS_TIMEOUT))

        return future.result()


def decode(value: Any) -> Any:
    """Turn bytes in a store response into text, recursively."""
    match value:
        case bytes():
            try:
                return value.decode()
            except UnicodeDecodeError:
                return value
        case list():
            return [decode(v) for v in value]
        case set():
            return {decode(v) for v in value}
        case dict():
            return {decode(k): decode(v) for k, v in value.items()}
        case _:
            return value
