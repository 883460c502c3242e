from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from kvbatch.kernel.t_api.error import MalformedArgumentListError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

type Arg = str | bytes


class RequestType(StrEnum):
    # connection and server
    PING = "PING"
    ECHO = "ECHO"
    SELECT = "SELECT"
    INFO = "INFO"
    DBSIZE = "DBSIZE"
    FLUSHDB = "FLUSHDB"
    CUSTOM_COMMAND = "CUSTOM_COMMAND"

    # generic
    DEL = "DEL"
    EXISTS = "EXISTS"
    EXPIRE = "EXPIRE"
    TTL = "TTL"
    PERSIST = "PERSIST"
    TYPE = "TYPE"
    RENAME = "RENAME"
    MOVE = "MOVE"
    COPY = "COPY"
    SCAN = "SCAN"
    DUMP = "DUMP"
    RESTORE = "RESTORE"

    # strings
    SET = "SET"
    GET = "GET"
    GETEX = "GETEX"
    APPEND = "APPEND"
    INCR = "INCR"
    INCRBY = "INCRBY"
    DECR = "DECR"
    DECRBY = "DECRBY"
    MSET = "MSET"
    MGET = "MGET"
    STRLEN = "STRLEN"

    # hashes
    HSET = "HSET"
    HGET = "HGET"
    HDEL = "HDEL"
    HGETALL = "HGETALL"
    HEXISTS = "HEXISTS"
    HLEN = "HLEN"

    # lists
    LPUSH = "LPUSH"
    RPUSH = "RPUSH"
    LPOP = "LPOP"
    RPOP = "RPOP"
    LLEN = "LLEN"
    LRANGE = "LRANGE"
    LPOS = "LPOS"

    # sets
    SADD = "SADD"
    SREM = "SREM"
    SMEMBERS = "SMEMBERS"
    SISMEMBER = "SISMEMBER"
    SCARD = "SCARD"

    # sorted sets
    ZADD = "ZADD"
    ZREM = "ZREM"
    ZSCORE = "ZSCORE"
    ZCARD = "ZCARD"
    ZRANGE = "ZRANGE"
    ZPOPMIN = "ZPOPMIN"
    ZPOPMAX = "ZPOPMAX"

    # geo
    GEOADD = "GEOADD"

    # scripting and functions
    FUNCTION_LOAD = "FUNCTION LOAD"
    FUNCTION_FLUSH = "FUNCTION FLUSH"
    FUNCTION_DUMP = "FUNCTION DUMP"
    FUNCTION_RESTORE = "FUNCTION RESTORE"
    FCALL = "FCALL"
    FCALL_READONLY = "FCALL_RO"


# Minimum number of arguments each request type must carry. Types absent here
# accept an empty argument list.
MIN_ARITY: Final[dict[RequestType, int]] = {
    RequestType.ECHO: 1,
    RequestType.SELECT: 1,
    RequestType.CUSTOM_COMMAND: 1,
    RequestType.DEL: 1,
    RequestType.EXISTS: 1,
    RequestType.EXPIRE: 2,
    RequestType.TTL: 1,
    RequestType.PERSIST: 1,
    RequestType.TYPE: 1,
    RequestType.RENAME: 2,
    RequestType.MOVE: 2,
    RequestType.COPY: 2,
    RequestType.SCAN: 1,
    RequestType.DUMP: 1,
    RequestType.RESTORE: 3,
    RequestType.SET: 2,
    RequestType.GET: 1,
    RequestType.GETEX: 1,
    RequestType.APPEND: 2,
    RequestType.INCR: 1,
    RequestType.INCRBY: 2,
    RequestType.DECR: 1,
    RequestType.DECRBY: 2,
    RequestType.MSET: 2,
    RequestType.MGET: 1,
    RequestType.STRLEN: 1,
    RequestType.HSET: 3,
    RequestType.HGET: 2,
    RequestType.HDEL: 2,
    RequestType.HGETALL: 1,
    RequestType.HEXISTS: 2,
    RequestType.HLEN: 1,
    RequestType.LPUSH: 2,
    RequestType.RPUSH: 2,
    RequestType.LPOP: 1,
    RequestType.RPOP: 1,
    RequestType.LLEN: 1,
    RequestType.LRANGE: 3,
    RequestType.LPOS: 2,
    RequestType.SADD: 2,
    RequestType.SREM: 2,
    RequestType.SMEMBERS: 1,
    RequestType.SISMEMBER: 2,
    RequestType.SCARD: 1,
    RequestType.ZADD: 3,
    RequestType.ZREM: 2,
    RequestType.ZSCORE: 2,
    RequestType.ZCARD: 1,
    RequestType.ZRANGE: 3,
    RequestType.ZPOPMIN: 1,
    RequestType.ZPOPMAX: 1,
    RequestType.GEOADD: 4,
    RequestType.FUNCTION_LOAD: 1,
    RequestType.FUNCTION_RESTORE: 1,
    RequestType.FCALL: 2,
    RequestType.FCALL_READONLY: 2,
}

# Request types a clustered deployment cannot run inside a batch.
CLUSTER_UNSUPPORTED: Final[frozenset[RequestType]] = frozenset(
    {
        RequestType.SELECT,
        RequestType.MOVE,
        RequestType.SCAN,
    }
)


@dataclass(frozen=True)
class Command:
    request_type: RequestType
    args: tuple[Arg, ...]

    def name(self) -> str:
        return self.request_type.value


def build_command(request_type: RequestType, args: Iterable[Arg]) -> Command:
    args = tuple(args)
    minimum = MIN_ARITY.get(request_type, 0)
    if len(args) < minimum:
        msg = f"{request_type.value} requires at least {minimum} arguments, got {len(args)}"
        raise MalformedArgumentListError(msg)

    for arg in args:
        if not isinstance(arg, str | bytes):
            msg = f"{request_type.value} argument must be str or bytes, got {type(arg).__name__}"
            raise MalformedArgumentListError(msg)

    return Command(request_type, args)


def resolve_custom(args: Sequence[Arg]) -> tuple[RequestType, int] | None:
    """Match the leading words of a custom command to a catalogue request type.

    Returns the request type and how many words its name spans, e.g.
    `["function", "dump"]` resolves to `(FUNCTION_DUMP, 2)`. Names outside
    the catalogue resolve to None.
    """
    words = [_word(arg) for arg in args[:2]]
    candidates = [(" ".join(words), 2)] if len(words) == 2 else []
    candidates.extend((word, 1) for word in words[:1])

    for name, n in candidates:
        try:
            request_type = RequestType(name)
        except ValueError:
            continue
        if request_type is not RequestType.CUSTOM_COMMAND:
            return request_type, n

    return None


def _word(arg: Arg) -> str:
    return (arg.decode(errors="replace") if isinstance(arg, bytes) else arg).upper()
