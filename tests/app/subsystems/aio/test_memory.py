from __future__ import annotations

from typing import Any

import pytest

from kvbatch.app.subsystems.aio.store import memory
from kvbatch.batch import Batch
from kvbatch.kernel.t_api.error import Error, ExecAbortError, RequestError
from kvbatch.kernel.t_api.status import StatusCode
from kvbatch.kernel.t_batch import Completion
from kvbatch.kernel.t_batch.command import RequestType
from kvbatch.options import (
    ConditionalSet,
    GeoAddOptions,
    GeospatialData,
    InfBound,
    LexBoundary,
    Limit,
    LPosOptions,
    ObjectType,
    RangeByIndex,
    RangeByLex,
    RangeByScore,
    RestoreOptions,
    ScanOptions,
    ScoreBoundary,
    SetOptions,
    ZPopOptions,
)


class Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def run(store: memory.MemoryStore, batch: Batch) -> Completion | Error:
    result = store.execute([batch.submit()])[0]
    batch.finish(failed=not isinstance(result, Completion))
    return result


def results(store: memory.MemoryStore, batch: Batch) -> list[Any]:
    result = run(store, batch)
    assert isinstance(result, Completion)
    return result.results


@pytest.fixture
def store() -> memory.MemoryStore:
    return memory.new(memory.Config())


def test_pipeline_commands_fail_independently(store: memory.MemoryStore) -> None:
    batch = Batch(is_atomic=False).set("a", "1").lpush("a", ["x"]).set("b", "2")

    assert results(store, batch) == ["OK", RequestError(memory.WRONGTYPE), "OK"]
    assert results(store, Batch(is_atomic=False).mget(["a", "b"])) == [[b"1", b"2"]]


def test_transaction_rolls_back_on_failure(store: memory.MemoryStore) -> None:
    results(store, Batch(is_atomic=False).set("a", "1"))

    batch = (
        Batch(is_atomic=True).set("a", "2").set("b", "2").select(1).incr("b").lpush("b", ["x"])
    )
    aborted = run(store, batch)

    assert isinstance(aborted, ExecAbortError)
    assert memory.WRONGTYPE in aborted.message
    assert aborted.unwrap() == RequestError(memory.WRONGTYPE)

    # values and the selected database are as before the transaction
    assert results(store, Batch(is_atomic=False).get("a").get("b").dbsize()) == [b"1", None, 1]


def test_transaction_applies_every_command(store: memory.MemoryStore) -> None:
    batch = Batch(is_atomic=True).set("a", "1").incrby("a", 4).get("a").exists(["a", "b"])

    assert results(store, batch) == ["OK", 5, b"5", 1]


def test_select_then_copy_across_databases(store: memory.MemoryStore) -> None:
    results(store, Batch(is_atomic=False).select(1).set("k1", "v").select(0))

    batch = Batch(is_atomic=True).select(1).copy("k1", "k2", 2, False)  # noqa: FBT003
    assert results(store, batch) == ["OK", True]
    assert results(store, Batch(is_atomic=False).select(2).get("k2").select(1).get("k1")) == [
        "OK",
        b"v",
        "OK",
        b"v",
    ]


def test_copy(store: memory.MemoryStore) -> None:
    results(store, Batch(is_atomic=False).set("a", "1").set("b", "2"))

    batch = (
        Batch(is_atomic=False)
        .copy("a", "b")
        .copy("a", "b", replace=True)
        .copy("missing", "c")
        .copy("a", "a")
        .copy("a", "x", destination_db=99)
        .get("b")
    )

    assert results(store, batch) == [
        False,
        True,
        False,
        RequestError("ERR source and destination objects are the same"),
        RequestError("ERR DB index is out of range"),
        b"1",
    ]


def test_move(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .set("a", "1")
        .move("a", 1)
        .move("a", 1)
        .get("a")
        .select(1)
        .get("a")
        .move("a", 1)
    )

    assert results(store, batch) == [
        "OK",
        True,
        False,
        None,
        "OK",
        b"1",
        RequestError("ERR source and destination objects are the same"),
    ]


def test_scan_walks_every_key(store: memory.MemoryStore) -> None:
    batch = Batch(is_atomic=False).mset({"k1": "1", "k2": "2", "k3": "3"}).sadd("other", ["x"])
    results(store, batch)

    first = results(store, Batch(is_atomic=False).scan("0", ScanOptions(count=2)))
    assert first == [[b"2", [b"k1", b"k2"]]]

    second = results(store, Batch(is_atomic=False).scan("2", ScanOptions(count=2)))
    assert second == [[b"0", [b"k3", b"other"]]]

    filtered = Batch(is_atomic=False).scan("0", ScanOptions(match_pattern="k*")).scan(
        "0", ScanOptions(type=ObjectType.SET)
    )
    assert results(store, filtered) == [[b"0", [b"k1", b"k2", b"k3"]], [b"0", [b"other"]]]


def test_set_options(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .set("a", "1", SetOptions(conditional_set=ConditionalSet.ONLY_IF_EXISTS))
        .set("a", "1", SetOptions(conditional_set=ConditionalSet.ONLY_IF_DOES_NOT_EXIST))
        .set("a", "2", SetOptions(return_old_value=True))
        .set(
            "a",
            "3",
            SetOptions(conditional_set=ConditionalSet.ONLY_IF_EQUALS, comparison_value="1"),
        )
        .set(
            "a",
            "3",
            SetOptions(conditional_set=ConditionalSet.ONLY_IF_EQUALS, comparison_value="2"),
        )
        .get("a")
    )

    assert results(store, batch) == [None, "OK", b"1", None, "OK", b"3"]


def test_expiry_follows_the_clock() -> None:
    clock = Clock()
    store = memory.new(memory.Config(clock=clock))

    results(store, Batch(is_atomic=False).set("a", "1").expire("a", 10).set("b", "1"))
    assert results(store, Batch(is_atomic=False).ttl("a").ttl("b").ttl("c")) == [10, -1, -2]

    clock.now += 11
    assert results(store, Batch(is_atomic=False).get("a").exists(["a"]).dbsize()) == [None, 0, 1]

    results(store, Batch(is_atomic=False).expire("b", 5).persist("b"))
    clock.now += 100
    assert results(store, Batch(is_atomic=False).get("b")) == [b"1"]


def test_strings_and_counters(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .append("s", "ab")
        .append("s", "cd")
        .strlen("s")
        .incr("s")
        .decrby("n", 3)
        .decr("n")
        .type("s")
        .type("missing")
        .rename("s", "t")
        .rename("s", "u")
    )

    assert results(store, batch) == [
        2,
        4,
        4,
        RequestError(memory.NOT_AN_INTEGER),
        -3,
        -4,
        "string",
        "none",
        "OK",
        RequestError("ERR no such key"),
    ]


def test_hashes(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .hset("h", {"f1": "v1", "f2": "v2"})
        .hset("h", {"f1": "v3"})
        .hget("h", "f1")
        .hexists("h", "f3")
        .hdel("h", ["f2", "f3"])
        .hlen("h")
        .hgetall("h")
        .type("h")
    )

    assert results(store, batch) == [2, 0, b"v3", False, 1, 1, {b"f1": b"v3"}, "hash"]


def test_lists(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .rpush("l", ["a", "b", "c", "b"])
        .lpush("l", ["z"])
        .lrange("l", 0, -1)
        .lpos("l", "b")
        .lpos("l", "b", LPosOptions(rank=-1))
        .lpos("l", "b", LPosOptions(rank=1, max_len=2))
        .lpop("l")
        .rpop("l")
        .llen("l")
    )

    assert results(store, batch) == [
        4,
        5,
        [b"z", b"a", b"b", b"c", b"b"],
        2,
        4,
        None,
        b"z",
        b"b",
        3,
    ]


def test_sets(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .sadd("s", ["a", "b", "a"])
        .srem("s", ["a", "x"])
        .sismember("s", "b")
        .smembers("s")
        .scard("s")
        .srem("s", ["b"])
        .exists(["s"])
    )

    assert results(store, batch) == [2, 1, True, {b"b"}, 1, 1, 0]


def test_sorted_sets(store: memory.MemoryStore) -> None:
    results(store, Batch(is_atomic=False).zadd("z", {"a": 1, "b": 2, "c": 3, "d": 4}))

    batch = (
        Batch(is_atomic=False)
        .zrange("z", RangeByIndex(0, 1))
        .zrange("z", RangeByIndex(0, 1, reverse=True))
        .zrange("z", RangeByScore(ScoreBoundary.exclusive(1), ScoreBoundary.inclusive(3)))
        .zrange(
            "z",
            RangeByScore(
                ScoreBoundary.infinite(InfBound.POSITIVE_INFINITY),
                ScoreBoundary.infinite(InfBound.NEGATIVE_INFINITY),
                reverse=True,
                limit=Limit(1, 2),
            ),
        )
        .zrange("z", RangeByLex(LexBoundary.inclusive("b"), LexBoundary.exclusive("d")))
        .zscore("z", "c")
        .zpopmin("z")
        .zpopmax("z", ZPopOptions(2))
        .zcard("z")
        .zrem("z", ["b", "x"])
    )

    assert results(store, batch) == [
        [b"a", b"b"],
        [b"d", b"c"],
        [b"b", b"c"],
        [b"c", b"b"],
        [b"b", b"c"],
        3.0,
        {b"a": 1.0},
        {b"d": 4.0, b"c": 3.0},
        1,
        1,
    ]


def test_geoadd(store: memory.MemoryStore) -> None:
    palermo = GeospatialData(13.361389, 38.115556)
    catania = GeospatialData(15.087269, 37.502669)

    batch = (
        Batch(is_atomic=False)
        .geoadd("Sicily", {"Palermo": palermo, "Catania": catania})
        .geoadd("Sicily", {"Palermo": catania}, GeoAddOptions(changed=True))
        .geoadd("Sicily", {"Ragusa": palermo}, GeoAddOptions(ConditionalSet.ONLY_IF_EXISTS))
        .zcard("Sicily")
    )

    assert results(store, batch) == [2, 1, 0, 2]


def test_dump_and_restore(store: memory.MemoryStore) -> None:
    results(store, Batch(is_atomic=False).hset("h", {"f": "v"}))
    (payload,) = results(store, Batch(is_atomic=False).dump("h"))
    assert isinstance(payload, bytes)

    batch = (
        Batch(is_atomic=False)
        .restore("h", 0, payload)
        .restore("h", 0, payload, RestoreOptions(replace=True))
        .restore("copy", 0, payload)
        .hgetall("copy")
        .restore("bad", 0, b"garbage")
        .dump("missing")
    )

    (busy, replaced, restored, value, bad, missing) = results(store, batch)
    assert isinstance(busy, RequestError)
    assert busy.message.startswith("BUSYKEY")
    assert replaced == "OK"
    assert restored == "OK"
    assert value == {b"f": b"v"}
    assert isinstance(bad, RequestError)
    assert missing is None


def test_functions(store: memory.MemoryStore) -> None:
    code = "#!lua name=mylib\nredis.register_function('myfunc', function() return 1 end)"

    batch = (
        Batch(is_atomic=False)
        .function_load(code)
        .function_load(code)
        .function_load(code, True)  # noqa: FBT003
        .function_load("return 1")
        .fcall("unknown")
        .function_dump()
        .function_flush()
    )

    loaded, duplicate, replaced, missing_header, unknown, dump, flushed = results(store, batch)
    assert loaded == b"mylib"
    assert duplicate == RequestError("ERR Library 'mylib' already exists")
    assert replaced == b"mylib"
    assert missing_header == RequestError("ERR Missing library metadata")
    assert unknown == RequestError("ERR Function not found")
    assert flushed == "OK"

    restore = Batch(is_atomic=False).function_restore(dump).function_restore(dump)
    assert results(store, restore) == ["OK", RequestError("ERR Library mylib already exists")]


def test_custom_command(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .custom_command(["set", "k", "v"])
        .custom_command(["GET", "k"])
        .custom_command(["FUNCTION", "FLUSH"])
        .custom_command(["NOPE"])
    )

    assert results(store, batch) == ["OK", b"v", "OK", RequestError("ERR unknown command 'NOPE'")]


def test_server_commands(store: memory.MemoryStore) -> None:
    batch = (
        Batch(is_atomic=False)
        .ping()
        .ping("hi")
        .echo(b"\xff")
        .set("a", "1")
        .dbsize()
        .flushdb()
        .dbsize()
        .select(42)
    )

    assert results(store, batch) == [
        "PONG",
        b"hi",
        b"\xff",
        "OK",
        1,
        "OK",
        0,
        RequestError("ERR DB index is out of range"),
    ]


@pytest.mark.parametrize(
    ("args", "name"),
    [
        (["GET"], "get"),
        (["GET", "a", "b"], "get"),
        (["SET", "k"], "set"),
        (["RENAME", "a"], "rename"),
        (["APPEND", "a", "b", "c"], "append"),
        (["FCALL", "fn"], "fcall"),
        (["FUNCTION", "DUMP", "extra"], "function dump"),
    ],
)
def test_custom_command_arity_fails_in_place(
    store: memory.MemoryStore, args: list[str], name: str
) -> None:
    batch = Batch(is_atomic=False).set("a", "1").custom_command(args).get("a")

    assert results(store, batch) == [
        "OK",
        RequestError(f"ERR wrong number of arguments for '{name}' command"),
        b"1",
    ]


def test_custom_command_arity_aborts_transaction(store: memory.MemoryStore) -> None:
    aborted = run(store, Batch(is_atomic=True).set("a", "1").custom_command(["SET", "k"]))

    assert isinstance(aborted, ExecAbortError)
    assert aborted.unwrap() == RequestError("ERR wrong number of arguments for 'set' command")
    assert results(store, Batch(is_atomic=False).exists(["a"])) == [0]


def test_unexpected_failure_fails_only_its_submission(
    store: memory.MemoryStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken(args: list[bytes]) -> Any:
        msg = "handler bug"
        raise RuntimeError(msg)

    monkeypatch.setitem(store._handlers, RequestType.ECHO, broken)  # noqa: SLF001

    good = Batch(is_atomic=False).set("x", "1")
    bad = Batch(is_atomic=True).set("y", "1").echo("boom")
    after = Batch(is_atomic=False).get("x").get("y")

    first, second, third = store.execute([good.submit(), bad.submit(), after.submit()])

    assert isinstance(first, Completion)
    assert first.results == ["OK"]
    assert isinstance(second, Error)
    assert second.code == StatusCode.STATUS_STORE_ERROR
    assert isinstance(second.unwrap(), RuntimeError)
    # the transaction was rolled back before the failure was reported
    assert isinstance(third, Completion)
    assert third.results == [b"1", None]
