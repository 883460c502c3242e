from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from queue import Queue

    from kvbatch.kernel.bus import CQE, SQE
    from kvbatch.kernel.t_api.error import Error
    from kvbatch.kernel.t_batch import Completion, Submission


class _SubsystemBase(Protocol):
    def kind(self) -> str: ...
    def start(self, errors: Queue[Error] | None) -> None: ...
    def stop(self) -> None: ...


class Subsystem(_SubsystemBase, Protocol):
    def enqueue(self, sqe: SQE[Submission, Completion]) -> bool: ...
    def flush(self, time: int) -> None: ...


class SubsystemDST(_SubsystemBase, Protocol):
    def process(
        self, sqes: list[SQE[Submission, Completion]]
    ) -> list[CQE[Submission, Completion]]: ...
