from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Self, overload

from kvbatch.kernel.t_api.error import InvalidArgumentTypeError

type Arg = str | bytes
type Primitive = str | bytes | int | float


@overload
def check_type_or_raise(value: str) -> str: ...
@overload
def check_type_or_raise(value: bytes) -> bytes: ...
@overload
def check_type_or_raise(value: object) -> Arg: ...
def check_type_or_raise(value: object) -> Arg:
    match value:
        case str() | bytes():
            return value
        case _:
            raise InvalidArgumentTypeError(value)


def check_all_or_raise(values: Iterable[object]) -> list[Arg]:
    if isinstance(values, str | bytes):
        # a bare key where a sequence is expected would otherwise be split per character
        return [values]
    return [check_type_or_raise(v) for v in values]


def encode_number(value: float) -> str:
    match value:
        case bool():
            raise InvalidArgumentTypeError(value)
        case int():
            return str(value)
        case float() if math.isinf(value):
            return "+inf" if value > 0 else "-inf"
        case float() if value.is_integer():
            return str(int(value))
        case float():
            return repr(value)
        case _:
            raise InvalidArgumentTypeError(value)


class ArgsBuilder:
    """Collects the ordered argument list of a single command."""

    def __init__(self) -> None:
        self._args: list[Arg] = []

    def add(self, value: Primitive | Iterable[Primitive]) -> Self:
        match value:
            case str() | bytes():
                self._args.append(value)
            case bool():
                raise InvalidArgumentTypeError(value)
            case int() | float():
                self._args.append(encode_number(value))
            case Iterable():
                for v in value:
                    self.add(v)
            case _:
                raise InvalidArgumentTypeError(value)
        return self

    def add_if(
        self,
        value: Primitive | Iterable[Primitive],
        predicate: bool,  # noqa: FBT001
    ) -> Self:
        if predicate:
            self.add(value)
        return self

    def to_args(self) -> list[Arg]:
        return list(self._args)

    def __len__(self) -> int:
        return len(self._args)


def new_args_builder() -> ArgsBuilder:
    return ArgsBuilder()
