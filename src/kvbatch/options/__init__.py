from __future__ import annotations

from kvbatch.options.command import (
    ConditionalSet,
    Eviction,
    EvictionType,
    Expiry,
    ExpiryType,
    FlushMode,
    FunctionRestorePolicy,
    GetExOptions,
    InfoSection,
    LPosOptions,
    RestoreOptions,
    SetOptions,
    ZPopOptions,
)
from kvbatch.options.geo import GeoAddOptions, GeospatialData
from kvbatch.options.scan import ObjectType, ScanOptions
from kvbatch.options.zrange import (
    InfBound,
    LexBoundary,
    Limit,
    RangeByIndex,
    RangeByLex,
    RangeByScore,
    RangeQuery,
    ScoreBoundary,
)

__all__ = [
    "ConditionalSet",
    "Eviction",
    "EvictionType",
    "Expiry",
    "ExpiryType",
    "FlushMode",
    "FunctionRestorePolicy",
    "GeoAddOptions",
    "GeospatialData",
    "GetExOptions",
    "InfBound",
    "InfoSection",
    "LPosOptions",
    "LexBoundary",
    "Limit",
    "ObjectType",
    "RangeByIndex",
    "RangeByLex",
    "RangeByScore",
    "RangeQuery",
    "RestoreOptions",
    "ScanOptions",
    "ScoreBoundary",
    "SetOptions",
    "ZPopOptions",
]
