from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RouteErrorKind(str, Enum):
    TOO_FAR_FROM_RIVERS = "too_far_from_rivers"
    TIMED_OUT = "timed_out"
    NO_PATH = "no_path"
    UNKNOWN = "unknown"


FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "geometry_type_unsupported",
        "geometry_coordinates_invalid",
        "geometry_filter_invalid",
        "query_point_invalid",
    }
)


@dataclass
class GeometryInputError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def normalize_reason_code(reason_code: str, *, default: str = "geometry_coordinates_invalid") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


def normalize_error_kind(value: object) -> RouteErrorKind:
    if isinstance(value, RouteErrorKind):
        return value
    lowered = str(value or "").strip().lower()
    for kind in RouteErrorKind:
        if lowered == kind.value:
            return kind
    if "timeout" in lowered or "timed out" in lowered or "deadline" in lowered:
        return RouteErrorKind.TIMED_OUT
    if "too far" in lowered:
        return RouteErrorKind.TOO_FAR_FROM_RIVERS
    if "no path" in lowered or "unreachable" in lowered:
        return RouteErrorKind.NO_PATH
    return RouteErrorKind.UNKNOWN
