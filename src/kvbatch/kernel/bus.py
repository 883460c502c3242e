from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from kvbatch.kernel.t_batch import Completion, Submission


@dataclass(frozen=True)
class SQE[I: Submission, O: Completion]:
    callback: Callable[[O | Exception], None]
    submission: I


@dataclass
class CQE[I: Submission, O: Completion]:
    callback: Callable[[O | Exception], None]
    completion: O | Exception

    def invoke(self) -> None:
        return self.callback(self.completion)
