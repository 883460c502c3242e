from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING, Final, Self

from loguru import logger

from kvbatch.args import ArgsBuilder, check_all_or_raise, check_type_or_raise, new_args_builder
from kvbatch.kernel.t_api.error import BatchStateError, InvalidOptionError, UnsupportedCommandError
from kvbatch.kernel.t_batch import Submission
from kvbatch.kernel.t_batch.command import (
    CLUSTER_UNSUPPORTED,
    RequestType,
    build_command,
    resolve_custom,
)
from kvbatch.options.command import DB_KEYWORD, REPLACE_KEYWORD
from kvbatch.options.geo import geo_members_to_args

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping, Sequence

    from kvbatch.args import Arg
    from kvbatch.kernel.t_batch.command import Command
    from kvbatch.options import (
        FlushMode,
        FunctionRestorePolicy,
        GeoAddOptions,
        GeospatialData,
        GetExOptions,
        InfoSection,
        LPosOptions,
        RangeQuery,
        RestoreOptions,
        ScanOptions,
        SetOptions,
        ZPopOptions,
    )

type Key = str | bytes


class BatchState(Enum):
    BUILDING = auto()
    SUBMITTED = auto()
    COMPLETED = auto()
    FAILED = auto()


class Batch:
    """An ordered group of store commands executed in a single step.

    `is_atomic` decides how `Client.exec` runs the batch: as a transaction
    (all commands succeed or none take effect) or as a pipeline (commands run
    in order, each succeeding or failing on its own). Either way the result
    list holds one entry per command, in the order the commands were added.

        batch = Batch(is_atomic=True).set("key", "value").get("key")
        client.exec(batch)  # ["OK", "value"]

    Every operation validates its arguments before touching the batch, so a
    call that raises leaves the previously added commands as they were.
    """

    def __init__(self, is_atomic: bool, *, cluster_mode: bool = False) -> None:  # noqa: FBT001
        self.is_atomic: Final = is_atomic
        self.cluster_mode: Final = cluster_mode
        self._commands: list[Command] = []
        self._state = BatchState.BUILDING

    @property
    def commands(self) -> tuple[Command, ...]:
        return tuple(self._commands)

    @property
    def state(self) -> BatchState:
        return self._state

    def __len__(self) -> int:
        return len(self._commands)

    def __repr__(self) -> str:
        return (
            f"Batch(is_atomic={self.is_atomic}, cluster_mode={self.cluster_mode}, "
            f"commands={len(self._commands)}, state={self._state.name})"
        )

    def _append(self, request_type: RequestType, args: ArgsBuilder | Iterable[Arg]) -> Self:
        if self._state is not BatchState.BUILDING:
            msg = f"cannot add {request_type.value} to a batch in state {self._state.name}"
            raise BatchStateError(msg)

        if self.cluster_mode and request_type in CLUSTER_UNSUPPORTED:
            msg = f"{request_type.value} is not supported in cluster mode"
            raise UnsupportedCommandError(msg)

        command = build_command(
            request_type, args.to_args() if isinstance(args, ArgsBuilder) else args
        )
        self._commands.append(command)
        return self

    def submit(self) -> Submission:
        """Freeze the command sequence for execution.

        Moves the batch to `SUBMITTED`; no command can be added afterwards.
        A batch whose previous execution finished may be submitted again.
        """
        if self._state is BatchState.SUBMITTED:
            msg = "batch is already being executed"
            raise BatchStateError(msg)

        self._state = BatchState.SUBMITTED
        logger.debug(
            "submitting batch of {} commands (atomic={})", len(self._commands), self.is_atomic
        )
        return Submission(commands=tuple(self._commands), is_atomic=self.is_atomic)

    def finish(self, *, failed: bool) -> None:
        assert self._state is BatchState.SUBMITTED, "only a submitted batch can finish"
        self._state = BatchState.FAILED if failed else BatchState.COMPLETED

    # connection and server

    def ping(self, message: Key | None = None) -> Self:
        args = new_args_builder()
        if message is not None:
            args.add(check_type_or_raise(message))
        return self._append(RequestType.PING, args)

    def echo(self, message: Key) -> Self:
        return self._append(RequestType.ECHO, [check_type_or_raise(message)])

    def select(self, index: int) -> Self:
        """Change the selected database. Responds with `OK`."""
        return self._append(RequestType.SELECT, new_args_builder().add(index))

    def info(self, sections: Sequence[InfoSection] = ()) -> Self:
        return self._append(RequestType.INFO, [section.value for section in sections])

    def dbsize(self) -> Self:
        return self._append(RequestType.DBSIZE, [])

    def flushdb(self) -> Self:
        return self._append(RequestType.FLUSHDB, [])

    def custom_command(self, args: Sequence[Key]) -> Self:
        """Queue a command the catalogue does not cover, e.g. `["CLIENT", "ID"]`.

        In cluster mode a command naming a request type the cluster rejects is
        rejected here too, whatever the case of its name.
        """
        checked = check_all_or_raise(_not_empty(args, "custom command arguments"))
        if self.cluster_mode:
            _check_cluster_custom(checked)
        return self._append(RequestType.CUSTOM_COMMAND, checked)

    # generic

    def delete(self, keys: Sequence[Key]) -> Self:
        return self._append(RequestType.DEL, check_all_or_raise(_not_empty(keys, "keys")))

    def exists(self, keys: Sequence[Key]) -> Self:
        return self._append(RequestType.EXISTS, check_all_or_raise(_not_empty(keys, "keys")))

    def expire(self, key: Key, seconds: int) -> Self:
        return self._append(
            RequestType.EXPIRE, new_args_builder().add(check_type_or_raise(key)).add(seconds)
        )

    def ttl(self, key: Key) -> Self:
        return self._append(RequestType.TTL, [check_type_or_raise(key)])

    def persist(self, key: Key) -> Self:
        return self._append(RequestType.PERSIST, [check_type_or_raise(key)])

    def type(self, key: Key) -> Self:
        return self._append(RequestType.TYPE, [check_type_or_raise(key)])

    def rename(self, key: Key, new_key: Key) -> Self:
        return self._append(
            RequestType.RENAME, [check_type_or_raise(key), check_type_or_raise(new_key)]
        )

    def move(self, key: Key, db_index: int) -> Self:
        """Move `key` to database `db_index`.

        Responds with `True` if the key was moved, `False` if it already exists
        in the destination database or does not exist in the source one.
        """
        return self._append(
            RequestType.MOVE, new_args_builder().add(check_type_or_raise(key)).add(db_index)
        )

    def copy(
        self,
        source: Key,
        destination: Key,
        destination_db: int | None = None,
        replace: bool = False,  # noqa: FBT001, FBT002
    ) -> Self:
        """Copy the value at `source` to `destination`, optionally in another database.

        With `replace` the destination key is removed first if it exists.
        Responds with `True` if the value was copied.
        """
        args = (
            new_args_builder()
            .add(check_type_or_raise(source))
            .add(check_type_or_raise(destination))
        )
        if destination_db is not None:
            if self.cluster_mode:
                msg = "COPY with a destination database is not supported in cluster mode"
                raise UnsupportedCommandError(msg)
            args.add(DB_KEYWORD).add(destination_db)
        args.add_if(REPLACE_KEYWORD, replace)
        return self._append(RequestType.COPY, args)

    def scan(self, cursor: Key, options: ScanOptions | None = None) -> Self:
        """Iterate incrementally over the keys of the selected database.

        Responds with `[next_cursor, [keys...]]`; a next cursor of `"0"` marks
        the last iteration.
        """
        args = new_args_builder().add(check_type_or_raise(cursor))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.SCAN, args)

    def dump(self, key: Key) -> Self:
        return self._append(RequestType.DUMP, [check_type_or_raise(key)])

    def restore(
        self, key: Key, ttl: int, value: bytes, options: RestoreOptions | None = None
    ) -> Self:
        args = (
            new_args_builder()
            .add(check_type_or_raise(key))
            .add(ttl)
            .add(check_type_or_raise(value))
        )
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.RESTORE, args)

    # strings

    def set(self, key: Key, value: Key, options: SetOptions | None = None) -> Self:
        args = new_args_builder().add(check_type_or_raise(key)).add(check_type_or_raise(value))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.SET, args)

    def get(self, key: Key) -> Self:
        return self._append(RequestType.GET, [check_type_or_raise(key)])

    def getex(self, key: Key, options: GetExOptions | None = None) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.GETEX, args)

    def append(self, key: Key, value: Key) -> Self:
        return self._append(
            RequestType.APPEND, [check_type_or_raise(key), check_type_or_raise(value)]
        )

    def incr(self, key: Key) -> Self:
        return self._append(RequestType.INCR, [check_type_or_raise(key)])

    def incrby(self, key: Key, amount: int) -> Self:
        return self._append(
            RequestType.INCRBY, new_args_builder().add(check_type_or_raise(key)).add(amount)
        )

    def decr(self, key: Key) -> Self:
        return self._append(RequestType.DECR, [check_type_or_raise(key)])

    def decrby(self, key: Key, amount: int) -> Self:
        return self._append(
            RequestType.DECRBY, new_args_builder().add(check_type_or_raise(key)).add(amount)
        )

    def mset(self, key_values: Mapping[Key, Key]) -> Self:
        args = new_args_builder()
        for key, value in _not_empty(key_values, "key values").items():
            args.add(check_type_or_raise(key)).add(check_type_or_raise(value))
        return self._append(RequestType.MSET, args)

    def mget(self, keys: Sequence[Key]) -> Self:
        return self._append(RequestType.MGET, check_all_or_raise(_not_empty(keys, "keys")))

    def strlen(self, key: Key) -> Self:
        return self._append(RequestType.STRLEN, [check_type_or_raise(key)])

    # hashes

    def hset(self, key: Key, field_values: Mapping[Key, Key]) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        for field, value in _not_empty(field_values, "field values").items():
            args.add(check_type_or_raise(field)).add(check_type_or_raise(value))
        return self._append(RequestType.HSET, args)

    def hget(self, key: Key, field: Key) -> Self:
        return self._append(
            RequestType.HGET, [check_type_or_raise(key), check_type_or_raise(field)]
        )

    def hdel(self, key: Key, fields: Sequence[Key]) -> Self:
        return self._append(
            RequestType.HDEL,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(fields, "fields"))],
        )

    def hgetall(self, key: Key) -> Self:
        return self._append(RequestType.HGETALL, [check_type_or_raise(key)])

    def hexists(self, key: Key, field: Key) -> Self:
        return self._append(
            RequestType.HEXISTS, [check_type_or_raise(key), check_type_or_raise(field)]
        )

    def hlen(self, key: Key) -> Self:
        return self._append(RequestType.HLEN, [check_type_or_raise(key)])

    # lists

    def lpush(self, key: Key, elements: Sequence[Key]) -> Self:
        return self._append(
            RequestType.LPUSH,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(elements, "elements"))],
        )

    def rpush(self, key: Key, elements: Sequence[Key]) -> Self:
        return self._append(
            RequestType.RPUSH,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(elements, "elements"))],
        )

    def lpop(self, key: Key) -> Self:
        return self._append(RequestType.LPOP, [check_type_or_raise(key)])

    def rpop(self, key: Key) -> Self:
        return self._append(RequestType.RPOP, [check_type_or_raise(key)])

    def llen(self, key: Key) -> Self:
        return self._append(RequestType.LLEN, [check_type_or_raise(key)])

    def lrange(self, key: Key, start: int, end: int) -> Self:
        return self._append(
            RequestType.LRANGE, new_args_builder().add(check_type_or_raise(key)).add(start).add(end)
        )

    def lpos(self, key: Key, element: Key, options: LPosOptions | None = None) -> Self:
        args = new_args_builder().add(check_type_or_raise(key)).add(check_type_or_raise(element))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.LPOS, args)

    # sets

    def sadd(self, key: Key, members: Sequence[Key]) -> Self:
        return self._append(
            RequestType.SADD,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(members, "members"))],
        )

    def srem(self, key: Key, members: Sequence[Key]) -> Self:
        return self._append(
            RequestType.SREM,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(members, "members"))],
        )

    def smembers(self, key: Key) -> Self:
        return self._append(RequestType.SMEMBERS, [check_type_or_raise(key)])

    def sismember(self, key: Key, member: Key) -> Self:
        return self._append(
            RequestType.SISMEMBER, [check_type_or_raise(key), check_type_or_raise(member)]
        )

    def scard(self, key: Key) -> Self:
        return self._append(RequestType.SCARD, [check_type_or_raise(key)])

    # sorted sets

    def zadd(self, key: Key, members_scores: Mapping[Key, float]) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        for member, score in _not_empty(members_scores, "member scores").items():
            args.add(score).add(check_type_or_raise(member))
        return self._append(RequestType.ZADD, args)

    def zrem(self, key: Key, members: Sequence[Key]) -> Self:
        return self._append(
            RequestType.ZREM,
            [check_type_or_raise(key), *check_all_or_raise(_not_empty(members, "members"))],
        )

    def zscore(self, key: Key, member: Key) -> Self:
        return self._append(
            RequestType.ZSCORE, [check_type_or_raise(key), check_type_or_raise(member)]
        )

    def zcard(self, key: Key) -> Self:
        return self._append(RequestType.ZCARD, [check_type_or_raise(key)])

    def zrange(self, key: Key, query: RangeQuery) -> Self:
        return self._append(
            RequestType.ZRANGE,
            new_args_builder().add(check_type_or_raise(key)).add(query.to_args()),
        )

    def zpopmin(self, key: Key, options: ZPopOptions | None = None) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.ZPOPMIN, args)

    def zpopmax(self, key: Key, options: ZPopOptions | None = None) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        if options is not None:
            args.add(options.to_args())
        return self._append(RequestType.ZPOPMAX, args)

    # geo

    def geoadd(
        self,
        key: Key,
        members_to_geo: Mapping[Key, GeospatialData],
        options: GeoAddOptions | None = None,
    ) -> Self:
        args = new_args_builder().add(check_type_or_raise(key))
        if options is not None:
            args.add(options.to_args())
        args.add(geo_members_to_args(_not_empty(members_to_geo, "members")))
        return self._append(RequestType.GEOADD, args)

    # scripting and functions

    def function_load(
        self,
        library_code: Key,
        replace: bool = False,  # noqa: FBT001, FBT002
    ) -> Self:
        args = new_args_builder().add_if(REPLACE_KEYWORD, replace)
        return self._append(RequestType.FUNCTION_LOAD, args.add(check_type_or_raise(library_code)))

    def function_flush(self, mode: FlushMode | None = None) -> Self:
        return self._append(RequestType.FUNCTION_FLUSH, [] if mode is None else [mode.value])

    def function_dump(self) -> Self:
        return self._append(RequestType.FUNCTION_DUMP, [])

    def function_restore(
        self, payload: bytes, policy: FunctionRestorePolicy | None = None
    ) -> Self:
        args = new_args_builder().add(check_type_or_raise(payload))
        if policy is not None:
            args.add(policy.value)
        return self._append(RequestType.FUNCTION_RESTORE, args)

    def fcall(self, function: Key, keys: Sequence[Key] = (), arguments: Sequence[Key] = ()) -> Self:
        return self._append(RequestType.FCALL, _fcall_args(function, keys, arguments))

    def fcall_readonly(
        self, function: Key, keys: Sequence[Key] = (), arguments: Sequence[Key] = ()
    ) -> Self:
        return self._append(RequestType.FCALL_READONLY, _fcall_args(function, keys, arguments))


def _fcall_args(function: Key, keys: Sequence[Key], arguments: Sequence[Key]) -> ArgsBuilder:
    checked_keys = check_all_or_raise(keys)
    return (
        new_args_builder()
        .add(check_type_or_raise(function))
        .add(len(checked_keys))
        .add(checked_keys)
        .add(check_all_or_raise(arguments))
    )


def _not_empty[T: Collection[object]](values: T, what: str) -> T:
    if not values:
        msg = f"{what} must not be empty"
        raise InvalidOptionError(msg)
    return values


def _check_cluster_custom(args: Sequence[Arg]) -> None:
    resolved = resolve_custom(args)
    if resolved is None:
        return

    request_type, n = resolved
    if request_type in CLUSTER_UNSUPPORTED:
        msg = f"{request_type.value} is not supported in cluster mode"
        raise UnsupportedCommandError(msg)
    # source and destination come first, options after
    if request_type is RequestType.COPY and any(
        arg.upper() in (DB_KEYWORD, DB_KEYWORD.encode()) for arg in args[n + 2 :]
    ):
        msg = "COPY with a destination database is not supported in cluster mode"
        raise UnsupportedCommandError(msg)
