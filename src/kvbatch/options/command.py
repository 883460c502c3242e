from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from kvbatch.args import check_type_or_raise, encode_number
from kvbatch.kernel.t_api.error import InvalidOptionError

if TYPE_CHECKING:
    from kvbatch.args import Arg

REPLACE_KEYWORD = "REPLACE"
DB_KEYWORD = "DB"
RETURN_OLD_VALUE = "GET"
RANK_KEYWORD = "RANK"
MAX_LEN_KEYWORD = "MAXLEN"
ABSTTL_KEYWORD = "ABSTTL"


class ConditionalSet(StrEnum):
    ONLY_IF_EXISTS = "XX"
    ONLY_IF_DOES_NOT_EXIST = "NX"
    ONLY_IF_EQUALS = "IFEQ"


class ExpiryType(StrEnum):
    SECONDS = "EX"
    MILLISECONDS = "PX"
    UNIX_SECONDS = "EXAT"
    UNIX_MILLISECONDS = "PXAT"
    KEEP_EXISTING = "KEEPTTL"
    PERSIST = "PERSIST"


class EvictionType(StrEnum):
    IDLETIME = "IDLETIME"
    FREQ = "FREQ"


class InfoSection(StrEnum):
    SERVER = "server"
    CLIENTS = "clients"
    MEMORY = "memory"
    PERSISTENCE = "persistence"
    STATS = "stats"
    REPLICATION = "replication"
    CPU = "cpu"
    COMMANDSTATS = "commandstats"
    LATENCYSTATS = "latencystats"
    KEYSPACE = "keyspace"
    ERRORSTATS = "errorstats"
    ALL = "all"
    DEFAULT = "default"
    EVERYTHING = "everything"


class FlushMode(StrEnum):
    SYNC = "SYNC"
    ASYNC = "ASYNC"


class FunctionRestorePolicy(StrEnum):
    APPEND = "APPEND"
    FLUSH = "FLUSH"
    REPLACE = "REPLACE"


@dataclass(frozen=True)
class Expiry:
    """Lifetime of a value.

    Build it through `in_`, `at`, `keep_existing` or `persist` rather than
    directly; `type` decides which of `duration` and `timestamp` is used.
    """

    type: ExpiryType
    duration: int = 0
    timestamp: datetime | None = None

    @classmethod
    def in_(cls, duration: timedelta) -> Expiry:
        if duration % timedelta(seconds=1) == timedelta():
            return cls(ExpiryType.SECONDS, duration=int(duration.total_seconds()))
        return cls(ExpiryType.MILLISECONDS, duration=duration // timedelta(milliseconds=1))

    @classmethod
    def at(cls, timestamp: datetime) -> Expiry:
        if timestamp.microsecond == 0:
            return cls(ExpiryType.UNIX_SECONDS, timestamp=timestamp)
        return cls(ExpiryType.UNIX_MILLISECONDS, timestamp=timestamp)

    @classmethod
    def keep_existing(cls) -> Expiry:
        return cls(ExpiryType.KEEP_EXISTING)

    @classmethod
    def persist(cls) -> Expiry:
        return cls(ExpiryType.PERSIST)

    def time(self) -> int:
        match self.type:
            case ExpiryType.UNIX_SECONDS:
                return int(self._aware_timestamp().timestamp())
            case ExpiryType.UNIX_MILLISECONDS:
                return int(self._aware_timestamp().timestamp() * 1000)
            case _:
                return self.duration

    def _aware_timestamp(self) -> datetime:
        if self.timestamp is None:
            msg = f"{self.type.value} expiry requires a timestamp"
            raise InvalidOptionError(msg)
        if self.timestamp.tzinfo is None:
            return self.timestamp.replace(tzinfo=UTC)
        return self.timestamp

    def to_args(self, *allowed: ExpiryType) -> list[Arg]:
        if self.type not in allowed:
            msg = f"invalid expiry type {self.type.value}"
            raise InvalidOptionError(msg)

        match self.type:
            case ExpiryType.KEEP_EXISTING | ExpiryType.PERSIST:
                return [self.type.value]
            case _:
                if self.time() < 0:
                    msg = "expiry time must not be negative"
                    raise InvalidOptionError(msg)
                return [self.type.value, str(self.time())]


_TIMED_EXPIRIES = (
    ExpiryType.SECONDS,
    ExpiryType.MILLISECONDS,
    ExpiryType.UNIX_SECONDS,
    ExpiryType.UNIX_MILLISECONDS,
)


@dataclass(frozen=True)
class SetOptions:
    conditional_set: ConditionalSet | None = None
    # compared against the stored value when conditional_set is ONLY_IF_EQUALS
    comparison_value: str | bytes | None = None
    return_old_value: bool = False
    expiry: Expiry | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = []
        if self.conditional_set is not None:
            args.append(self.conditional_set.value)
            if self.conditional_set == ConditionalSet.ONLY_IF_EQUALS:
                if self.comparison_value is None:
                    msg = "IFEQ requires a comparison value"
                    raise InvalidOptionError(msg)
                args.append(check_type_or_raise(self.comparison_value))

        if self.return_old_value:
            args.append(RETURN_OLD_VALUE)

        if self.expiry is not None:
            args.extend(self.expiry.to_args(*_TIMED_EXPIRIES, ExpiryType.KEEP_EXISTING))

        return args


@dataclass(frozen=True)
class GetExOptions:
    expiry: Expiry | None = None

    def to_args(self) -> list[Arg]:
        if self.expiry is None:
            return []
        return self.expiry.to_args(*_TIMED_EXPIRIES, ExpiryType.PERSIST)


@dataclass(frozen=True)
class LPosOptions:
    rank: int | None = None
    max_len: int | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = []
        if self.rank is not None:
            args.extend([RANK_KEYWORD, encode_number(self.rank)])
        if self.max_len is not None:
            args.extend([MAX_LEN_KEYWORD, encode_number(self.max_len)])
        return args


@dataclass(frozen=True)
class Eviction:
    type: EvictionType
    count: int


@dataclass(frozen=True)
class RestoreOptions:
    replace: bool = False
    # ttl is an absolute unix timestamp in milliseconds
    abs_ttl: bool = False
    eviction: Eviction | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = []
        if self.replace:
            args.append(REPLACE_KEYWORD)
        if self.abs_ttl:
            args.append(ABSTTL_KEYWORD)
        if self.eviction is not None:
            args.extend([self.eviction.type.value, encode_number(self.eviction.count)])
        return args


@dataclass(frozen=True)
class ZPopOptions:
    count: int = 0

    def to_args(self) -> list[Arg]:
        if self.count <= 0:
            return []
        return [encode_number(self.count)]
