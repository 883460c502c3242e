"""Range queries for sorted sets.

* `RangeByIndex` queries by rank.
* `RangeByScore` queries by score, bounded by `ScoreBoundary`.
* `RangeByLex` queries lexicographically, bounded by `LexBoundary`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from kvbatch.args import check_type_or_raise, encode_number

if TYPE_CHECKING:
    from kvbatch.args import Arg

LIMIT_KEYWORD = "LIMIT"
REVERSE_KEYWORD = "REV"
BY_SCORE_KEYWORD = "BYSCORE"
BY_LEX_KEYWORD = "BYLEX"


class InfBound(StrEnum):
    POSITIVE_INFINITY = "+"
    NEGATIVE_INFINITY = "-"


@dataclass(frozen=True)
class ScoreBoundary:
    value: str

    @classmethod
    def inclusive(cls, bound: float) -> ScoreBoundary:
        return cls(encode_number(bound))

    @classmethod
    def exclusive(cls, bound: float) -> ScoreBoundary:
        return cls("(" + encode_number(bound))

    @classmethod
    def infinite(cls, bound: InfBound) -> ScoreBoundary:
        return cls(bound.value + "inf")


@dataclass(frozen=True)
class LexBoundary:
    value: str | bytes

    @classmethod
    def inclusive(cls, bound: str | bytes) -> LexBoundary:
        return cls(_prefixed("[", bound))

    @classmethod
    def exclusive(cls, bound: str | bytes) -> LexBoundary:
        return cls(_prefixed("(", bound))

    @classmethod
    def infinite(cls, bound: InfBound) -> LexBoundary:
        return cls(bound.value)


def _prefixed(prefix: str, bound: str | bytes) -> str | bytes:
    match check_type_or_raise(bound):
        case bytes() as b:
            return prefix.encode() + b
        case str() as s:
            return prefix + s


@dataclass(frozen=True)
class Limit:
    offset: int
    # a negative count returns every element from offset
    count: int

    def to_args(self) -> list[Arg]:
        return [LIMIT_KEYWORD, encode_number(self.offset), encode_number(self.count)]


class RangeQuery(Protocol):
    def to_args(self) -> list[Arg]: ...


@dataclass(frozen=True)
class RangeByIndex:
    start: int
    end: int
    reverse: bool = False

    def to_args(self) -> list[Arg]:
        args: list[Arg] = [encode_number(self.start), encode_number(self.end)]
        if self.reverse:
            args.append(REVERSE_KEYWORD)
        return args


@dataclass(frozen=True)
class RangeByScore:
    start: ScoreBoundary
    end: ScoreBoundary
    reverse: bool = False
    limit: Limit | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = [self.start.value, self.end.value, BY_SCORE_KEYWORD]
        if self.reverse:
            args.append(REVERSE_KEYWORD)
        if self.limit is not None:
            args.extend(self.limit.to_args())
        return args


@dataclass(frozen=True)
class RangeByLex:
    start: LexBoundary
    end: LexBoundary
    reverse: bool = False
    limit: Limit | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = [self.start.value, self.end.value, BY_LEX_KEYWORD]
        if self.reverse:
            args.append(REVERSE_KEYWORD)
        if self.limit is not None:
            args.extend(self.limit.to_args())
        return args
