from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import RouteErrorKind


class LonLat(BaseModel):
    lon: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    @field_validator("lon", "lat")
    @classmethod
    def finite(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("coordinate must be finite")
        return v

    def as_tuple(self) -> tuple[float, float]:
        return (float(self.lon), float(self.lat))


class GeoJSONLineString(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[tuple[float, float]]  # [lon, lat]


class GeoJSONMultiLineString(BaseModel):
    type: Literal["MultiLineString"] = "MultiLineString"
    coordinates: list[list[tuple[float, float]]]


class RiverPathResult(BaseModel):
    """Outcome of one river path query.

    ``path`` always holds a drawable line: the river route on success, the
    straight start-end line otherwise.
    """

    success: bool
    path: GeoJSONLineString
    distance: float = Field(..., ge=0.0)  # miles
    error: RouteErrorKind | None = None

    @model_validator(mode="after")
    def error_matches_success(self) -> "RiverPathResult":
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed result must carry an error")
        return self
