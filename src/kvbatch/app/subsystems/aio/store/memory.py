from __future__ import annotations

import copy
import fnmatch
import marshal
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any, Final

from loguru import logger

from kvbatch.kernel.t_api.error import Error, ExecAbortError, RequestError
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch import Completion
from kvbatch.kernel.t_batch.command import MIN_ARITY, RequestType, resolve_custom

if TYPE_CHECKING:
    from collections.abc import Callable

    from kvbatch.kernel.t_batch import Submission
    from kvbatch.kernel.t_batch.command import Arg, Command

OK: Final = "OK"

WRONGTYPE: Final = "WRONGTYPE Operation against a key holding the wrong kind of value"
NOT_AN_INTEGER: Final = "ERR value is not an integer or out of range"
NOT_A_FLOAT: Final = "ERR value is not a valid float"
SYNTAX_ERROR: Final = "ERR syntax error"

_DUMP_MAGIC: Final = b"KVB\x01"

# Largest argument count of request types whose handlers take a fixed number
# of arguments. The smallest count is command.MIN_ARITY.
_MAX_ARITY: Final[dict[RequestType, int]] = {
    RequestType.PING: 1,
    RequestType.ECHO: 1,
    RequestType.SELECT: 1,
    RequestType.DBSIZE: 0,
    RequestType.FLUSHDB: 0,
    RequestType.EXPIRE: 2,
    RequestType.TTL: 1,
    RequestType.PERSIST: 1,
    RequestType.TYPE: 1,
    RequestType.RENAME: 2,
    RequestType.MOVE: 2,
    RequestType.DUMP: 1,
    RequestType.GET: 1,
    RequestType.APPEND: 2,
    RequestType.INCR: 1,
    RequestType.INCRBY: 2,
    RequestType.DECR: 1,
    RequestType.DECRBY: 2,
    RequestType.STRLEN: 1,
    RequestType.HGET: 2,
    RequestType.HGETALL: 1,
    RequestType.HEXISTS: 2,
    RequestType.HLEN: 1,
    RequestType.LPOP: 1,
    RequestType.RPOP: 1,
    RequestType.LLEN: 1,
    RequestType.LRANGE: 3,
    RequestType.SMEMBERS: 1,
    RequestType.SISMEMBER: 2,
    RequestType.SCARD: 1,
    RequestType.ZSCORE: 2,
    RequestType.ZCARD: 1,
    RequestType.ZPOPMIN: 2,
    RequestType.ZPOPMAX: 2,
    RequestType.FUNCTION_FLUSH: 1,
    RequestType.FUNCTION_DUMP: 0,
    RequestType.FUNCTION_RESTORE: 2,
}


class SortedSet(dict[bytes, float]):
    def ordered(self) -> list[tuple[bytes, float]]:
        return sorted(self.items(), key=lambda kv: (kv[1], kv[0]))


type Value = bytes | list[bytes] | set[bytes] | dict[bytes, bytes] | SortedSet


@dataclass(frozen=True)
class Config:
    databases: int = 16
    clock: Callable[[], float] = time.time


@dataclass
class _Database:
    data: dict[bytes, Value] = field(default_factory=dict)
    # absolute expiry, unix seconds
    expires: dict[bytes, float] = field(default_factory=dict)


@dataclass
class _State:
    databases: list[_Database]
    libraries: dict[bytes, bytes] = field(default_factory=dict)
    selected: int = 0


def new(config: Config) -> MemoryStore:
    return MemoryStore(config)


class MemoryStore:
    """A single-node key-value engine living in process memory.

    Atomic submissions run against a snapshot of the whole state that is
    restored if any command fails, so the failure leaves nothing behind.
    Non-atomic submissions run command by command; a failing command yields
    a `RequestError` in its slot and the others keep their effects.
    """

    def __init__(self, config: Config) -> None:
        assert config.databases > 0, "at least one database is required"
        self.config: Final = config
        self._state = _State(databases=[_Database() for _ in range(config.databases)])
        self._lock: Final = Lock()
        self._handlers: Final[dict[RequestType, Callable[[list[bytes]], Any]]] = {
            RequestType.PING: self._ping,
            RequestType.ECHO: self._echo,
            RequestType.SELECT: self._select,
            RequestType.INFO: self._info,
            RequestType.DBSIZE: self._dbsize,
            RequestType.FLUSHDB: self._flushdb,
            RequestType.DEL: self._del,
            RequestType.EXISTS: self._exists,
            RequestType.EXPIRE: self._expire,
            RequestType.TTL: self._ttl,
            RequestType.PERSIST: self._persist,
            RequestType.TYPE: self._type,
            RequestType.RENAME: self._rename,
            RequestType.MOVE: self._move,
            RequestType.COPY: self._copy,
            RequestType.SCAN: self._scan,
            RequestType.DUMP: self._dump,
            RequestType.RESTORE: self._restore,
            RequestType.SET: self._set,
            RequestType.GET: self._get,
            RequestType.GETEX: self._getex,
            RequestType.APPEND: self._append,
            RequestType.INCR: lambda args: self._incrby(args[0], 1),
            RequestType.INCRBY: lambda args: self._incrby(args[0], _int(args[1])),
            RequestType.DECR: lambda args: self._incrby(args[0], -1),
            RequestType.DECRBY: lambda args: self._incrby(args[0], -_int(args[1])),
            RequestType.MSET: self._mset,
            RequestType.MGET: self._mget,
            RequestType.STRLEN: self._strlen,
            RequestType.HSET: self._hset,
            RequestType.HGET: self._hget,
            RequestType.HDEL: self._hdel,
            RequestType.HGETALL: self._hgetall,
            RequestType.HEXISTS: self._hexists,
            RequestType.HLEN: self._hlen,
            RequestType.LPUSH: lambda args: self._push(args, left=True),
            RequestType.RPUSH: lambda args: self._push(args, left=False),
            RequestType.LPOP: lambda args: self._pop(args, left=True),
            RequestType.RPOP: lambda args: self._pop(args, left=False),
            RequestType.LLEN: self._llen,
            RequestType.LRANGE: self._lrange,
            RequestType.LPOS: self._lpos,
            RequestType.SADD: self._sadd,
            RequestType.SREM: self._srem,
            RequestType.SMEMBERS: self._smembers,
            RequestType.SISMEMBER: self._sismember,
            RequestType.SCARD: self._scard,
            RequestType.ZADD: self._zadd,
            RequestType.ZREM: self._zrem,
            RequestType.ZSCORE: self._zscore,
            RequestType.ZCARD: self._zcard,
            RequestType.ZRANGE: self._zrange,
            RequestType.ZPOPMIN: lambda args: self._zpop(args, reverse=False),
            RequestType.ZPOPMAX: lambda args: self._zpop(args, reverse=True),
            RequestType.GEOADD: self._geoadd,
            RequestType.FUNCTION_LOAD: self._function_load,
            RequestType.FUNCTION_FLUSH: self._function_flush,
            RequestType.FUNCTION_DUMP: self._function_dump,
            RequestType.FUNCTION_RESTORE: self._function_restore,
            RequestType.FCALL: self._fcall,
            RequestType.FCALL_READONLY: self._fcall,
        }

    def execute(self, submissions: list[Submission]) -> list[Completion | Error]:
        results: list[Completion | Error] = []
        with self._lock:
            for submission in submissions:
                try:
                    results.append(self._execute(submission))
                except Exception as e:  # noqa: BLE001
                    # fails this submission only, the others were applied already
                    logger.warning("store failed executing a submission: {!r}", e)
                    results.append(
                        Error(StatusCode.STATUS_STORE_ERROR, e, f"store execution failed: {e}")
                    )
        return results

    def _execute(self, submission: Submission) -> Completion | Error:
        if not submission.is_atomic:
            results: list[Any] = []
            for command in submission.commands:
                try:
                    results.append(self._run(command))
                except RequestError as e:
                    results.append(e)
            return Completion(results)

        snapshot = copy.deepcopy(self._state)
        results = []
        for i, command in enumerate(submission.commands):
            try:
                results.append(self._run(command))
            except RequestError as e:
                self._state = snapshot
                logger.info(
                    "transaction rolled back at command {} of {} ({}): {}",
                    i,
                    len(submission.commands),
                    command.name(),
                    e.message,
                )
                return ExecAbortError(
                    f"EXECABORT Transaction discarded because of: {e.message}", e
                )
            except Exception:
                self._state = snapshot
                raise
        return Completion(results)

    def _run(self, command: Command) -> Any:
        request_type = command.request_type
        args = [_b(arg) for arg in command.args]

        if request_type is RequestType.CUSTOM_COMMAND:
            request_type, args = _resolve_custom(args)

        handler = self._handlers.get(request_type)
        if handler is None:
            msg = f"ERR unknown command '{request_type.value}'"
            raise RequestError(msg)

        minimum = MIN_ARITY.get(request_type, 0)
        maximum = _MAX_ARITY.get(request_type, len(args))
        if not minimum <= len(args) <= maximum:
            msg = f"ERR wrong number of arguments for '{request_type.value.lower()}' command"
            raise RequestError(msg)
        return handler(args)

    # keyspace access

    @property
    def _db(self) -> _Database:
        return self._state.databases[self._state.selected]

    def _lookup(self, key: bytes, db: _Database | None = None) -> Value | None:
        db = db if db is not None else self._db
        expires_at = db.expires.get(key)
        if expires_at is not None and expires_at <= self.config.clock():
            db.data.pop(key, None)
            db.expires.pop(key, None)
        return db.data.get(key)

    def _lookup_typed[T](self, key: bytes, kind: type[T]) -> T | None:
        value = self._lookup(key)
        if value is None:
            return None
        # SortedSet is a dict; keep hashes and sorted sets apart
        if not isinstance(value, kind) or (kind is dict and isinstance(value, SortedSet)):
            raise RequestError(WRONGTYPE)
        return value

    def _remove(self, key: bytes, db: _Database | None = None) -> bool:
        db = db if db is not None else self._db
        db.expires.pop(key, None)
        return db.data.pop(key, None) is not None

    def _store(self, key: bytes, value: Value, *, keep_ttl: bool = False) -> None:
        self._db.data[key] = value
        if not keep_ttl:
            self._db.expires.pop(key, None)

    def _drop_if_empty(self, key: bytes) -> None:
        if not self._db.data.get(key):
            self._remove(key)

    def _database(self, index: int) -> _Database:
        if not 0 <= index < len(self._state.databases):
            msg = "ERR DB index is out of range"
            raise RequestError(msg)
        return self._state.databases[index]

    # connection and server

    def _ping(self, args: list[bytes]) -> Any:
        return args[0] if args else "PONG"

    def _echo(self, args: list[bytes]) -> bytes:
        return args[0]

    def _select(self, args: list[bytes]) -> str:
        index = _int(args[0])
        self._database(index)
        self._state.selected = index
        return OK

    def _info(self, args: list[bytes]) -> bytes:
        lines = ["# Keyspace"]
        for i, db in enumerate(self._state.databases):
            keys = [key for key in list(db.data) if self._lookup(key, db) is not None]
            if keys:
                lines.append(f"db{i}:keys={len(keys)},expires={len(db.expires)}")
        return ("\r\n".join(lines) + "\r\n").encode()

    def _dbsize(self, args: list[bytes]) -> int:
        return sum(1 for key in list(self._db.data) if self._lookup(key) is not None)

    def _flushdb(self, args: list[bytes]) -> str:
        self._db.data.clear()
        self._db.expires.clear()
        return OK

    # generic

    def _del(self, args: list[bytes]) -> int:
        return sum(1 for key in args if self._lookup(key) is not None and self._remove(key))

    def _exists(self, args: list[bytes]) -> int:
        return sum(1 for key in args if self._lookup(key) is not None)

    def _expire(self, args: list[bytes]) -> bool:
        key, seconds = args[0], _int(args[1])
        if self._lookup(key) is None:
            return False
        if seconds <= 0:
            self._remove(key)
        else:
            self._db.expires[key] = self.config.clock() + seconds
        return True

    def _ttl(self, args: list[bytes]) -> int:
        key = args[0]
        if self._lookup(key) is None:
            return -2
        expires_at = self._db.expires.get(key)
        if expires_at is None:
            return -1
        return round(expires_at - self.config.clock())

    def _persist(self, args: list[bytes]) -> bool:
        key = args[0]
        if self._lookup(key) is None:
            return False
        return self._db.expires.pop(key, None) is not None

    def _type(self, args: list[bytes]) -> str:
        return _type_name(self._lookup(args[0]))

    def _rename(self, args: list[bytes]) -> str:
        key, new_key = args
        value = self._lookup(key)
        if value is None:
            msg = "ERR no such key"
            raise RequestError(msg)
        expires_at = self._db.expires.get(key)
        self._remove(key)
        self._store(new_key, value)
        if expires_at is not None:
            self._db.expires[new_key] = expires_at
        return OK

    def _move(self, args: list[bytes]) -> bool:
        key, index = args[0], _int(args[1])
        destination = self._database(index)
        if destination is self._db:
            msg = "ERR source and destination objects are the same"
            raise RequestError(msg)

        value = self._lookup(key)
        if value is None or self._lookup(key, destination) is not None:
            return False

        destination.data[key] = value
        if key in self._db.expires:
            destination.expires[key] = self._db.expires[key]
        self._remove(key)
        return True

    def _copy(self, args: list[bytes]) -> bool:
        source, destination_key, rest = args[0], args[1], args[2:]
        destination = self._db
        replace = False
        while rest:
            match rest[0].upper():
                case b"DB" if len(rest) >= 2:  # noqa: PLR2004
                    destination = self._database(_int(rest[1]))
                    rest = rest[2:]
                case b"REPLACE":
                    replace = True
                    rest = rest[1:]
                case _:
                    raise RequestError(SYNTAX_ERROR)

        if destination is self._db and source == destination_key:
            msg = "ERR source and destination objects are the same"
            raise RequestError(msg)

        value = self._lookup(source)
        if value is None:
            return False
        if self._lookup(destination_key, destination) is not None:
            if not replace:
                return False
            self._remove(destination_key, destination)

        destination.data[destination_key] = copy.deepcopy(value)
        if source in self._db.expires:
            destination.expires[destination_key] = self._db.expires[source]
        return True

    def _scan(self, args: list[bytes]) -> list[Any]:
        try:
            cursor = int(args[0])
        except ValueError:
            msg = "ERR invalid cursor"
            raise RequestError(msg) from None

        pattern: bytes | None = None
        count = 10
        type_filter: str | None = None
        rest = args[1:]
        while rest:
            if len(rest) < 2:  # noqa: PLR2004
                raise RequestError(SYNTAX_ERROR)
            option, value, rest = rest[0].upper(), rest[1], rest[2:]
            match option:
                case b"MATCH":
                    pattern = value
                case b"COUNT":
                    count = _int(value)
                    if count <= 0:
                        raise RequestError(SYNTAX_ERROR)
                case b"TYPE":
                    type_filter = value.decode().lower()
                case _:
                    raise RequestError(SYNTAX_ERROR)

        keys = sorted(key for key in list(self._db.data) if self._lookup(key) is not None)
        window = keys[cursor : cursor + count]
        next_cursor = cursor + count if cursor + count < len(keys) else 0

        matched: list[bytes] = []
        for key in window:
            if pattern is not None and not fnmatch.fnmatchcase(
                key.decode("latin-1"), pattern.decode("latin-1")
            ):
                continue
            if type_filter is not None and _type_name(self._db.data[key]) != type_filter:
                continue
            matched.append(key)
        return [str(next_cursor).encode(), matched]

    def _dump(self, args: list[bytes]) -> bytes | None:
        value = self._lookup(args[0])
        if value is None:
            return None
        return _DUMP_MAGIC + marshal.dumps(_to_plain(value))

    def _restore(self, args: list[bytes]) -> str:
        key, ttl, payload, rest = args[0], _int(args[1]), args[2], args[3:]
        replace = abs_ttl = False
        while rest:
            match rest[0].upper():
                case b"REPLACE":
                    replace, rest = True, rest[1:]
                case b"ABSTTL":
                    abs_ttl, rest = True, rest[1:]
                case b"IDLETIME" | b"FREQ" if len(rest) >= 2:  # noqa: PLR2004
                    _int(rest[1])
                    rest = rest[2:]
                case _:
                    raise RequestError(SYNTAX_ERROR)

        if self._lookup(key) is not None and not replace:
            msg = "BUSYKEY Target key name already exists."
            raise RequestError(msg)

        value = _from_dump(payload)
        self._store(key, value)
        if ttl > 0:
            self._db.expires[key] = ttl / 1000 if abs_ttl else self.config.clock() + ttl / 1000
        return OK

    # strings

    def _set(self, args: list[bytes]) -> Any:
        key, value, rest = args[0], args[1], args[2:]
        condition: bytes | None = None
        comparison: bytes | None = None
        return_old = keep_ttl = False
        expires_at: float | None = None
        while rest:
            match rest[0].upper():
                case b"NX" | b"XX":
                    condition, rest = rest[0].upper(), rest[1:]
                case b"IFEQ" if len(rest) >= 2:  # noqa: PLR2004
                    condition, comparison, rest = b"IFEQ", rest[1], rest[2:]
                case b"GET":
                    return_old, rest = True, rest[1:]
                case b"KEEPTTL":
                    keep_ttl, rest = True, rest[1:]
                case b"EX" | b"PX" | b"EXAT" | b"PXAT" if len(rest) >= 2:  # noqa: PLR2004
                    expires_at = self._expiry_at(rest[0].upper(), _int(rest[1]))
                    rest = rest[2:]
                case _:
                    raise RequestError(SYNTAX_ERROR)

        current = self._lookup(key)
        if return_old and current is not None and not isinstance(current, bytes):
            raise RequestError(WRONGTYPE)

        match condition:
            case b"NX":
                allowed = current is None
            case b"XX":
                allowed = current is not None
            case b"IFEQ":
                allowed = current == comparison
            case _:
                allowed = True

        if allowed:
            self._store(key, value, keep_ttl=keep_ttl)
            if expires_at is not None:
                self._db.expires[key] = expires_at

        if return_old:
            return current
        return OK if allowed else None

    def _expiry_at(self, unit: bytes, amount: int) -> float:
        if amount <= 0 and unit in (b"EX", b"PX"):
            msg = "ERR invalid expire time in 'set' command"
            raise RequestError(msg)
        match unit:
            case b"EX":
                return self.config.clock() + amount
            case b"PX":
                return self.config.clock() + amount / 1000
            case b"EXAT":
                return float(amount)
            case _:
                return amount / 1000

    def _get(self, args: list[bytes]) -> bytes | None:
        return self._lookup_typed(args[0], bytes)

    def _getex(self, args: list[bytes]) -> bytes | None:
        key, rest = args[0], args[1:]
        value = self._lookup_typed(key, bytes)
        match rest:
            case []:
                pass
            case [b"PERSIST"]:
                if value is not None:
                    self._db.expires.pop(key, None)
            case [unit, amount] if unit.upper() in (b"EX", b"PX", b"EXAT", b"PXAT"):
                expires_at = self._expiry_at(unit.upper(), _int(amount))
                if value is not None:
                    self._db.expires[key] = expires_at
            case _:
                raise RequestError(SYNTAX_ERROR)
        return value

    def _append(self, args: list[bytes]) -> int:
        key, value = args
        current = self._lookup_typed(key, bytes) or b""
        self._store(key, current + value, keep_ttl=True)
        return len(current) + len(value)

    def _incrby(self, key: bytes, amount: int) -> int:
        current = self._lookup_typed(key, bytes)
        number = _int(current) + amount if current is not None else amount
        self._store(key, str(number).encode(), keep_ttl=True)
        return number

    def _mset(self, args: list[bytes]) -> str:
        if len(args) % 2:
            msg = "ERR wrong number of arguments for 'mset' command"
            raise RequestError(msg)
        for key, value in zip(args[::2], args[1::2], strict=True):
            self._store(key, value)
        return OK

    def _mget(self, args: list[bytes]) -> list[bytes | None]:
        values: list[bytes | None] = []
        for key in args:
            value = self._lookup(key)
            values.append(value if isinstance(value, bytes) else None)
        return values

    def _strlen(self, args: list[bytes]) -> int:
        return len(self._lookup_typed(args[0], bytes) or b"")

    # hashes

    def _hset(self, args: list[bytes]) -> int:
        key, rest = args[0], args[1:]
        if len(rest) % 2:
            msg = "ERR wrong number of arguments for 'hset' command"
            raise RequestError(msg)
        hash_ = self._lookup_typed(key, dict)
        if hash_ is None:
            hash_ = {}
            self._store(key, hash_)
        added = 0
        for field_, value in zip(rest[::2], rest[1::2], strict=True):
            added += field_ not in hash_
            hash_[field_] = value
        return added

    def _hget(self, args: list[bytes]) -> bytes | None:
        hash_ = self._lookup_typed(args[0], dict)
        return None if hash_ is None else hash_.get(args[1])

    def _hdel(self, args: list[bytes]) -> int:
        hash_ = self._lookup_typed(args[0], dict)
        if hash_ is None:
            return 0
        removed = sum(1 for field_ in args[1:] if hash_.pop(field_, None) is not None)
        self._drop_if_empty(args[0])
        return removed

    def _hgetall(self, args: list[bytes]) -> dict[bytes, bytes]:
        return dict(self._lookup_typed(args[0], dict) or {})

    def _hexists(self, args: list[bytes]) -> bool:
        return args[1] in (self._lookup_typed(args[0], dict) or {})

    def _hlen(self, args: list[bytes]) -> int:
        return len(self._lookup_typed(args[0], dict) or {})

    # lists

    def _push(self, args: list[bytes], *, left: bool) -> int:
        key, elements = args[0], args[1:]
        list_ = self._lookup_typed(key, list)
        if list_ is None:
            list_ = []
            self._store(key, list_)
        for element in elements:
            if left:
                list_.insert(0, element)
            else:
                list_.append(element)
        return len(list_)

    def _pop(self, args: list[bytes], *, left: bool) -> bytes | None:
        list_ = self._lookup_typed(args[0], list)
        if not list_:
            return None
        element = list_.pop(0 if left else -1)
        self._drop_if_empty(args[0])
        return element

    def _llen(self, args: list[bytes]) -> int:
        return len(self._lookup_typed(args[0], list) or [])

    def _lrange(self, args: list[bytes]) -> list[bytes]:
        list_ = self._lookup_typed(args[0], list) or []
        start, end = _normalize_range(_int(args[1]), _int(args[2]), len(list_))
        return list_[start : end + 1]

    def _lpos(self, args: list[bytes]) -> int | None:
        key, element, rest = args[0], args[1], args[2:]
        rank, max_len = 1, 0
        while rest:
            if len(rest) < 2:  # noqa: PLR2004
                raise RequestError(SYNTAX_ERROR)
            match rest[0].upper():
                case b"RANK":
                    rank = _int(rest[1])
                    if rank == 0:
                        msg = "ERR RANK can't be zero"
                        raise RequestError(msg)
                case b"MAXLEN":
                    max_len = _int(rest[1])
                case _:
                    raise RequestError(SYNTAX_ERROR)
            rest = rest[2:]

        list_ = self._lookup_typed(key, list) or []
        indices = range(len(list_)) if rank > 0 else range(len(list_) - 1, -1, -1)
        remaining = abs(rank)
        for compared, i in enumerate(indices):
            if max_len and compared >= max_len:
                break
            if list_[i] == element:
                remaining -= 1
                if remaining == 0:
                    return i
        return None

    # sets

    def _sadd(self, args: list[bytes]) -> int:
        key, members = args[0], args[1:]
        set_ = self._lookup_typed(key, set)
        if set_ is None:
            set_ = set()
            self._store(key, set_)
        before = len(set_)
        set_.update(members)
        return len(set_) - before

    def _srem(self, args: list[bytes]) -> int:
        set_ = self._lookup_typed(args[0], set)
        if set_ is None:
            return 0
        before = len(set_)
        set_.difference_update(args[1:])
        self._drop_if_empty(args[0])
        return before - len(set_)

    def _smembers(self, args: list[bytes]) -> set[bytes]:
        return set(self._lookup_typed(args[0], set) or ())

    def _sismember(self, args: list[bytes]) -> bool:
        return args[1] in (self._lookup_typed(args[0], set) or ())

    def _scard(self, args: list[bytes]) -> int:
        return len(self._lookup_typed(args[0], set) or ())

    # sorted sets

    def _zset(self, key: bytes, *, create: bool) -> SortedSet | None:
        zset = self._lookup_typed(key, SortedSet)
        if zset is None and create:
            zset = SortedSet()
            self._store(key, zset)
        return zset

    def _zadd(self, args: list[bytes]) -> int:
        key, rest = args[0], args[1:]
        if len(rest) % 2:
            raise RequestError(SYNTAX_ERROR)
        pairs = [
            (member, _float(score)) for score, member in zip(rest[::2], rest[1::2], strict=True)
        ]
        zset = self._zset(key, create=True)
        assert zset is not None
        added = 0
        for member, score in pairs:
            added += member not in zset
            zset[member] = score
        return added

    def _zrem(self, args: list[bytes]) -> int:
        zset = self._zset(args[0], create=False)
        if zset is None:
            return 0
        removed = sum(1 for member in args[1:] if zset.pop(member, None) is not None)
        self._drop_if_empty(args[0])
        return removed

    def _zscore(self, args: list[bytes]) -> float | None:
        zset = self._zset(args[0], create=False)
        return None if zset is None else zset.get(args[1])

    def _zcard(self, args: list[bytes]) -> int:
        return len(self._zset(args[0], create=False) or {})

    def _zrange(self, args: list[bytes]) -> list[bytes]:
        key, start, end, rest = args[0], args[1], args[2], args[3:]
        by: bytes | None = None
        reverse = False
        limit: tuple[int, int] | None = None
        while rest:
            match rest[0].upper():
                case b"BYSCORE" | b"BYLEX":
                    by, rest = rest[0].upper(), rest[1:]
                case b"REV":
                    reverse, rest = True, rest[1:]
                case b"LIMIT" if len(rest) >= 3:  # noqa: PLR2004
                    limit, rest = (_int(rest[1]), _int(rest[2])), rest[3:]
                case _:
                    raise RequestError(SYNTAX_ERROR)

        ordered = (self._zset(key, create=False) or SortedSet()).ordered()
        if reverse:
            ordered.reverse()
            if by is not None:
                # REV takes score and lex ranges as max then min
                start, end = end, start

        match by:
            case None:
                if limit is not None:
                    raise RequestError(SYNTAX_ERROR)
                first, last = _normalize_range(_int(start), _int(end), len(ordered))
                return [member for member, _ in ordered[first : last + 1]]
            case b"BYSCORE":
                low, high = _score_bound(start), _score_bound(end)
                selected = [m for m, s in ordered if _within(s, low, high)]
            case _:
                low_lex, high_lex = _lex_bound(start), _lex_bound(end)
                selected = [m for m, _ in ordered if _within(m, low_lex, high_lex)]

        if limit is not None:
            offset, count = limit
            selected = selected[offset:] if count < 0 else selected[offset : offset + count]
        return selected

    def _zpop(self, args: list[bytes], *, reverse: bool) -> dict[bytes, float]:
        count = _int(args[1]) if len(args) > 1 else 1
        zset = self._zset(args[0], create=False)
        if zset is None:
            return {}
        ordered = zset.ordered()
        if reverse:
            ordered.reverse()
        popped = dict(ordered[:count])
        for member in popped:
            del zset[member]
        self._drop_if_empty(args[0])
        return popped

    # geo

    def _geoadd(self, args: list[bytes]) -> int:
        key, rest = args[0], args[1:]
        condition: bytes | None = None
        changed = False
        while rest and rest[0].upper() in (b"NX", b"XX", b"CH"):
            if rest[0].upper() == b"CH":
                changed = True
            else:
                condition = rest[0].upper()
            rest = rest[1:]
        if not rest or len(rest) % 3:
            raise RequestError(SYNTAX_ERROR)

        points = [
            (member, _geohash(_float(longitude), _float(latitude)))
            for longitude, latitude, member in zip(rest[::3], rest[1::3], rest[2::3], strict=True)
        ]
        zset = self._zset(key, create=True)
        assert zset is not None
        counted = 0
        for member, score in points:
            exists = member in zset
            if (condition == b"NX" and exists) or (condition == b"XX" and not exists):
                continue
            if not exists or (changed and zset[member] != score):
                counted += 1
            zset[member] = score
        self._drop_if_empty(key)
        return counted

    # scripting and functions

    def _function_load(self, args: list[bytes]) -> bytes:
        replace = args[0].upper() == b"REPLACE"
        code = args[-1]
        header = code.split(b"\n", 1)[0]
        name = next(
            (part[len(b"name=") :] for part in header.split() if part.startswith(b"name=")), None
        )
        if not header.startswith(b"#!") or not name:
            msg = "ERR Missing library metadata"
            raise RequestError(msg)
        if name in self._state.libraries and not replace:
            msg = f"ERR Library '{name.decode()}' already exists"
            raise RequestError(msg)
        self._state.libraries[name] = code
        return name

    def _function_flush(self, args: list[bytes]) -> str:
        self._state.libraries.clear()
        return OK

    def _function_dump(self, args: list[bytes]) -> bytes:
        return _DUMP_MAGIC + marshal.dumps(dict(self._state.libraries))

    def _function_restore(self, args: list[bytes]) -> str:
        payload = args[0]
        policy = args[1].upper() if len(args) > 1 else b"APPEND"
        libraries = _unmarshal(payload)
        if not isinstance(libraries, dict):
            msg = "ERR payload is not a function dump"
            raise RequestError(msg)

        match policy:
            case b"FLUSH":
                self._state.libraries = dict(libraries)
            case b"REPLACE":
                self._state.libraries.update(libraries)
            case b"APPEND":
                clash = next((name for name in libraries if name in self._state.libraries), None)
                if clash is not None:
                    msg = f"ERR Library {clash.decode()} already exists"
                    raise RequestError(msg)
                self._state.libraries.update(libraries)
            case _:
                raise RequestError(SYNTAX_ERROR)
        return OK

    def _fcall(self, args: list[bytes]) -> Any:
        function, numkeys = args[0], _int(args[1])
        if numkeys < 0 or numkeys > len(args) - 2:
            msg = "ERR Number of keys can't be greater than number of args"
            raise RequestError(msg)
        needle = b"'" + function + b"'"
        if not any(needle in code for code in self._state.libraries.values()):
            msg = "ERR Function not found"
            raise RequestError(msg)
        msg = "ERR function execution is not supported by the in-memory store"
        raise RequestError(msg)


def _b(arg: Arg) -> bytes:
    return arg.encode() if isinstance(arg, str) else arg


def _int(value: bytes) -> int:
    try:
        return int(value)
    except ValueError:
        raise RequestError(NOT_AN_INTEGER) from None


def _float(value: bytes) -> float:
    try:
        return float(value)
    except ValueError:
        raise RequestError(NOT_A_FLOAT) from None


def _type_name(value: Value | None) -> str:
    match value:
        case None:
            return "none"
        case bytes():
            return "string"
        case list():
            return "list"
        case set():
            return "set"
        case SortedSet():
            return "zset"
        case _:
            return "hash"


def _normalize_range(start: int, end: int, length: int) -> tuple[int, int]:
    if start < 0:
        start = max(length + start, 0)
    if end < 0:
        end = length + end
    return start, min(end, length - 1)


def _score_bound(raw: bytes) -> tuple[float, bool]:
    # (value, exclusive)
    if raw.startswith(b"("):
        return _float(raw[1:]), True
    return _float(raw), False


def _lex_bound(raw: bytes) -> tuple[bytes | None, bool] | bool:
    # True/False stand for +/- infinity
    match raw[:1]:
        case b"+":
            return True
        case b"-":
            return False
        case b"[":
            return raw[1:], False
        case b"(":
            return raw[1:], True
        case _:
            msg = "ERR min or max not valid string range item"
            raise RequestError(msg)


def _within(value: Any, low: Any, high: Any) -> bool:
    def above(bound: Any) -> bool:
        if bound is False:
            return True
        if bound is True:
            return False
        limit, exclusive = bound
        return value > limit if exclusive else value >= limit

    def below(bound: Any) -> bool:
        if bound is True:
            return True
        if bound is False:
            return False
        limit, exclusive = bound
        return value < limit if exclusive else value <= limit

    return above(low) and below(high)


def _geohash(longitude: float, latitude: float) -> float:
    if not (-180 <= longitude <= 180 and -85.05112878 <= latitude <= 85.05112878):  # noqa: PLR2004
        msg = f"ERR invalid longitude,latitude pair {longitude:f},{latitude:f}"
        raise RequestError(msg)
    # 26 interleaved bits per coordinate, as a 52 bit score
    lat = int((latitude + 85.05112878) / 170.10225756 * (1 << 26))
    lon = int((longitude + 180) / 360 * (1 << 26))
    lat, lon = min(lat, (1 << 26) - 1), min(lon, (1 << 26) - 1)
    score = 0
    for bit in range(25, -1, -1):
        score = (score << 2) | (((lon >> bit) & 1) << 1) | ((lat >> bit) & 1)
    return float(score)


def _resolve_custom(args: list[bytes]) -> tuple[RequestType, list[bytes]]:
    resolved = resolve_custom(args)
    if resolved is None:
        msg = f"ERR unknown command '{args[0].decode(errors='replace')}'"
        raise RequestError(msg)
    request_type, n = resolved
    return request_type, args[n:]


def _to_plain(value: Value) -> tuple[str, Any]:
    match value:
        case SortedSet():
            return "zset", dict(value)
        case bytes() | list() | set() | dict():
            return _type_name(value), copy.deepcopy(value)
        case _:
            msg = f"cannot serialize {type(value).__name__}"
            raise AssertionError(msg)


def _unmarshal(payload: bytes) -> Any:
    if not payload.startswith(_DUMP_MAGIC):
        msg = "ERR DUMP payload version or checksum are wrong"
        raise RequestError(msg)
    try:
        return marshal.loads(payload[len(_DUMP_MAGIC) :])  # noqa: S302
    except (EOFError, ValueError, TypeError):
        msg = "ERR DUMP payload version or checksum are wrong"
        raise RequestError(msg) from None


def _from_dump(payload: bytes) -> Value:
    match _unmarshal(payload):
        case ("zset", dict() as members):
            return SortedSet(members)
        case ("string", bytes() as data):
            return data
        case ("list" | "set" | "hash", list() | set() | dict() as data):
            return data
        case _:
            msg = "ERR DUMP payload version or checksum are wrong"
            raise RequestError(msg)
