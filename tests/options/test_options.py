from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from kvbatch.kernel.t_api.error import InvalidArgumentTypeError, InvalidOptionError
from kvbatch.options import (
    ConditionalSet,
    Eviction,
    EvictionType,
    Expiry,
    ExpiryType,
    GeoAddOptions,
    GeospatialData,
    GetExOptions,
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


@pytest.mark.parametrize(
    ("duration", "expected"),
    [
        (timedelta(seconds=10), ["EX", "10"]),
        (timedelta(minutes=1), ["EX", "60"]),
        (timedelta(milliseconds=1500), ["PX", "1500"]),
    ],
)
def test_expiry_in_picks_the_coarsest_unit(duration: timedelta, expected: list[str]) -> None:
    assert SetOptions(expiry=Expiry.in_(duration)).to_args() == expected


def test_expiry_at() -> None:
    at = datetime(2030, 1, 1, tzinfo=UTC)
    assert Expiry.at(at).type == ExpiryType.UNIX_SECONDS
    assert SetOptions(expiry=Expiry.at(at)).to_args() == ["EXAT", str(int(at.timestamp()))]

    precise = at.replace(microsecond=250_000)
    assert GetExOptions(Expiry.at(precise)).to_args() == [
        "PXAT",
        str(int(at.timestamp()) * 1000 + 250),
    ]


def test_set_options_order() -> None:
    options = SetOptions(
        conditional_set=ConditionalSet.ONLY_IF_DOES_NOT_EXIST,
        return_old_value=True,
        expiry=Expiry.in_(timedelta(seconds=5)),
    )

    assert options.to_args() == ["NX", "GET", "EX", "5"]


def test_set_options_if_equals() -> None:
    options = SetOptions(conditional_set=ConditionalSet.ONLY_IF_EQUALS, comparison_value="old")
    assert options.to_args() == ["IFEQ", "old"]

    with pytest.raises(InvalidOptionError):
        SetOptions(conditional_set=ConditionalSet.ONLY_IF_EQUALS).to_args()

    with pytest.raises(InvalidArgumentTypeError):
        SetOptions(
            conditional_set=ConditionalSet.ONLY_IF_EQUALS,
            comparison_value=3,  # pyright: ignore[reportArgumentType]
        ).to_args()


def test_set_options_keep_ttl_and_reject_persist() -> None:
    assert SetOptions(expiry=Expiry.keep_existing()).to_args() == ["KEEPTTL"]

    with pytest.raises(InvalidOptionError):
        SetOptions(expiry=Expiry.persist()).to_args()


def test_getex_options() -> None:
    assert GetExOptions().to_args() == []
    assert GetExOptions(Expiry.persist()).to_args() == ["PERSIST"]

    with pytest.raises(InvalidOptionError):
        GetExOptions(Expiry.keep_existing()).to_args()


def test_lpos_options() -> None:
    assert LPosOptions().to_args() == []
    assert LPosOptions(rank=-1).to_args() == ["RANK", "-1"]
    assert LPosOptions(rank=2, max_len=10).to_args() == ["RANK", "2", "MAXLEN", "10"]


def test_restore_options() -> None:
    options = RestoreOptions(
        replace=True, abs_ttl=True, eviction=Eviction(EvictionType.FREQ, 5)
    )

    assert options.to_args() == ["REPLACE", "ABSTTL", "FREQ", "5"]
    assert RestoreOptions().to_args() == []


def test_zpop_options() -> None:
    assert ZPopOptions().to_args() == []
    assert ZPopOptions(3).to_args() == ["3"]
    assert ZPopOptions(-1).to_args() == []


def test_scan_options() -> None:
    options = ScanOptions(match_pattern="user:*", count=100, type=ObjectType.HASH)

    assert options.to_args() == ["MATCH", "user:*", "COUNT", "100", "TYPE", "hash"]
    assert ScanOptions().to_args() == []

    with pytest.raises(InvalidOptionError):
        ScanOptions(count=0).to_args()


def test_range_by_index() -> None:
    assert RangeByIndex(0, -1).to_args() == ["0", "-1"]
    assert RangeByIndex(0, 2, reverse=True).to_args() == ["0", "2", "REV"]


def test_range_by_score() -> None:
    query = RangeByScore(
        ScoreBoundary.exclusive(1.5),
        ScoreBoundary.infinite(InfBound.POSITIVE_INFINITY),
        reverse=True,
        limit=Limit(0, 10),
    )

    assert query.to_args() == ["(1.5", "+inf", "BYSCORE", "REV", "LIMIT", "0", "10"]
    assert RangeByScore(ScoreBoundary.inclusive(1), ScoreBoundary.inclusive(2)).to_args() == [
        "1",
        "2",
        "BYSCORE",
    ]


def test_range_by_lex() -> None:
    query = RangeByLex(LexBoundary.inclusive("a"), LexBoundary.exclusive(b"z"))
    assert query.to_args() == ["[a", b"(z", "BYLEX"]

    unbounded = RangeByLex(
        LexBoundary.infinite(InfBound.NEGATIVE_INFINITY),
        LexBoundary.infinite(InfBound.POSITIVE_INFINITY),
        limit=Limit(1, -1),
    )
    assert unbounded.to_args() == ["-", "+", "BYLEX", "LIMIT", "1", "-1"]


def test_geoadd_options() -> None:
    assert GeoAddOptions().to_args() == []
    assert GeoAddOptions(ConditionalSet.ONLY_IF_EXISTS, changed=True).to_args() == ["XX", "CH"]

    with pytest.raises(InvalidOptionError):
        GeoAddOptions(ConditionalSet.ONLY_IF_EQUALS).to_args()


def test_geospatial_data() -> None:
    assert GeospatialData(13.361389, 38.115556).to_args() == ["13.361389", "38.115556"]

    with pytest.raises(InvalidOptionError):
        GeospatialData(0, 86).to_args()
    with pytest.raises(InvalidOptionError):
        GeospatialData(181, 0).to_args()
