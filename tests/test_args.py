from __future__ import annotations

import math

import pytest

from kvbatch.args import check_all_or_raise, check_type_or_raise, encode_number, new_args_builder
from kvbatch.kernel.t_api.error import InvalidArgumentTypeError
from kvbatch.kernel.t_api.status import StatusCode


@pytest.mark.parametrize("value", ["key", b"key", "", b""])
def test_check_type_accepts_text_and_bytes(value: str | bytes) -> None:
    assert check_type_or_raise(value) is value


@pytest.mark.parametrize("value", [1, 1.5, None, True, ["key"], bytearray(b"key"), object()])
def test_check_type_rejects_everything_else(value: object) -> None:
    with pytest.raises(InvalidArgumentTypeError) as exc_info:
        check_type_or_raise(value)

    assert exc_info.value.code == StatusCode.STATUS_INVALID_ARGUMENT_TYPE
    assert type(value).__name__ in str(exc_info.value)


def test_invalid_argument_type_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        check_type_or_raise(42)


def test_check_all_keeps_a_bare_key_whole() -> None:
    assert check_all_or_raise("key") == ["key"]
    assert check_all_or_raise(b"key") == [b"key"]
    assert check_all_or_raise(["a", b"b"]) == ["a", b"b"]

    with pytest.raises(InvalidArgumentTypeError):
        check_all_or_raise(["a", 2])


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, "0"),
        (-7, "-7"),
        (2.0, "2"),
        (1.5, "1.5"),
        (13.361389, "13.361389"),
        (math.inf, "+inf"),
        (-math.inf, "-inf"),
    ],
)
def test_encode_number(value: float, expected: str) -> None:
    assert encode_number(value) == expected


def test_encode_number_rejects_bool() -> None:
    with pytest.raises(InvalidArgumentTypeError):
        encode_number(True)  # noqa: FBT003


def test_builder_keeps_insertion_order_and_flattens() -> None:
    args = new_args_builder().add("k").add(3).add(["a", b"b"]).add(("x", 1.5)).to_args()

    assert args == ["k", "3", "a", b"b", "x", "1.5"]


def test_add_if_omits_the_argument_entirely() -> None:
    builder = new_args_builder().add("k").add_if("REPLACE", False)  # noqa: FBT003

    assert builder.to_args() == ["k"]
    assert len(builder) == 1

    builder.add_if("REPLACE", True)  # noqa: FBT003
    assert builder.to_args() == ["k", "REPLACE"]


def test_builder_rejects_unsupported_values() -> None:
    builder = new_args_builder().add("k")

    with pytest.raises(InvalidArgumentTypeError):
        builder.add(None)  # pyright: ignore[reportArgumentType]
    with pytest.raises(InvalidArgumentTypeError):
        builder.add(True)  # noqa: FBT003

    assert builder.to_args() == ["k"]


def test_to_args_returns_a_copy() -> None:
    builder = new_args_builder().add("k")
    args = builder.to_args()
    args.append("mutated")

    assert builder.to_args() == ["k"]
