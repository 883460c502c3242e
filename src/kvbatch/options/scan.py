from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from kvbatch.args import check_type_or_raise, encode_number
from kvbatch.kernel.t_api.error import InvalidOptionError

if TYPE_CHECKING:
    from kvbatch.args import Arg

MATCH_KEYWORD = "MATCH"
COUNT_KEYWORD = "COUNT"
TYPE_KEYWORD = "TYPE"


class ObjectType(StrEnum):
    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"
    STREAM = "stream"


@dataclass(frozen=True)
class ScanOptions:
    match_pattern: str | bytes | None = None
    count: int | None = None
    type: ObjectType | None = None

    def to_args(self) -> list[Arg]:
        args: list[Arg] = []
        if self.match_pattern is not None:
            args.extend([MATCH_KEYWORD, check_type_or_raise(self.match_pattern)])
        if self.count is not None:
            if self.count <= 0:
                msg = "scan count must be positive"
                raise InvalidOptionError(msg)
            args.extend([COUNT_KEYWORD, encode_number(self.count)])
        if self.type is not None:
            args.extend([TYPE_KEYWORD, self.type.value])
        return args
