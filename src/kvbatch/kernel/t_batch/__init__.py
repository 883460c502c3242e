from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from kvbatch.kernel.t_batch.command import Command


class _Kind:
    def kind(self) -> Literal["store"]:
        return "store"


@dataclass(frozen=True)
class Submission(_Kind):
    """A frozen batch handed to the store: the command sequence and its mode."""

    commands: tuple[Command, ...]
    is_atomic: bool


@dataclass(frozen=True)
class Completion(_Kind):
    """Per-command responses, index aligned with `Submission.commands`.

    An entry may be a `RequestError` only for non-atomic submissions.
    """

    results: list[Any]
