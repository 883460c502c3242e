from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from kvbatch.args import check_type_or_raise, encode_number
from kvbatch.kernel.t_api.error import InvalidOptionError
from kvbatch.options.command import ConditionalSet

if TYPE_CHECKING:
    from collections.abc import Mapping

    from kvbatch.args import Arg

CHANGED_KEYWORD = "CH"

MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
MIN_LATITUDE = -85.05112878
MAX_LATITUDE = 85.05112878


@dataclass(frozen=True)
class GeospatialData:
    longitude: float
    latitude: float

    def to_args(self) -> list[Arg]:
        if not MIN_LONGITUDE <= self.longitude <= MAX_LONGITUDE:
            msg = f"longitude {self.longitude} out of range"
            raise InvalidOptionError(msg)
        if not MIN_LATITUDE <= self.latitude <= MAX_LATITUDE:
            msg = f"latitude {self.latitude} out of range"
            raise InvalidOptionError(msg)
        return [encode_number(self.longitude), encode_number(self.latitude)]


def geo_members_to_args(members: Mapping[str | bytes, GeospatialData]) -> list[Arg]:
    # longitude, latitude, member
    args: list[Arg] = []
    for member, data in members.items():
        args.extend(data.to_args())
        args.append(check_type_or_raise(member))
    return args


@dataclass(frozen=True)
class GeoAddOptions:
    conditional_change: ConditionalSet | None = None
    # count changed elements instead of added ones
    changed: bool = False

    def to_args(self) -> list[Arg]:
        args: list[Arg] = []
        match self.conditional_change:
            case None:
                pass
            case ConditionalSet.ONLY_IF_EXISTS | ConditionalSet.ONLY_IF_DOES_NOT_EXIST:
                args.append(self.conditional_change.value)
            case _:
                msg = f"GEOADD does not support {self.conditional_change.value}"
                raise InvalidOptionError(msg)
        if self.changed:
            args.append(CHANGED_KEYWORD)
        return args
