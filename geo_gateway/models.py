from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

SEARCH_MODES = ("autocomplete", "point", "rectangle", "polyline")

_TEXT_FIELDS = ("mode", "q", "name", "lang", "bbox")
_SCALAR_FIELDS = _TEXT_FIELDS + ("limit", "lat", "lon", "radius", "max_polyline_points", "debug")


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def to_param(self) -> str:
        """Photon order: minLon,minLat,maxLon,maxLat."""
        return f"{self.min_lon},{self.min_lat},{self.max_lon},{self.max_lat}"

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat < lat < self.max_lat and self.min_lon < lon < self.max_lon


def _as_str_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


class CanonicalQuery(BaseModel):
    """One search request after query-string and body fields were merged."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", allow_inf_nan=False)

    mode: Optional[str] = None
    q: Optional[str] = None
    name: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)
    lang: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    bbox: Optional[str] = None

    # Photon passthrough filters, each repeated on the upstream URL
    layer: Optional[List[str]] = None
    osm_key: Optional[List[str]] = None
    osm_value: Optional[List[str]] = None
    osm_tag: Optional[List[str]] = None

    categories: Optional[List[str]] = None
    osm_tags: Optional[Dict[str, List[str]]] = Field(None, alias="osmTags")

    geometry_list: Optional[List[Tuple[float, float]]] = Field(None, alias="geometryList")
    radius: Optional[float] = None
    max_polyline_points: Optional[int] = Field(None, alias="maxPolylinePoints", ge=2)
    debug: bool = False

    @field_validator(*_SCALAR_FIELDS, mode="before")
    @classmethod
    def _single_value(cls, value: Any, info: ValidationInfo) -> Any:
        # Repeated query keys arrive as lists; the first occurrence wins
        if isinstance(value, list):
            value = value[0] if value else None
        if info.field_name in _TEXT_FIELDS and value is not None and not isinstance(value, dict):
            value = str(value)
        return value

    @field_validator("layer", "osm_key", "osm_value", "osm_tag", "categories", mode="before")
    @classmethod
    def _str_list(cls, value: Any) -> Optional[List[str]]:
        return _as_str_list(value)

    @field_validator("osm_tags", mode="before")
    @classmethod
    def _tag_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        tags: Dict[str, List[str]] = {}
        for key, values in value.items():
            deduped: List[str] = []
            for v in _as_str_list(values) or []:
                if v not in deduped:
                    deduped.append(v)
            tags[str(key)] = deduped
        return tags

    @field_validator("geometry_list", mode="before")
    @classmethod
    def _geometry_from_json(cls, value: Any) -> Any:
        # A query string can only carry the list JSON-encoded
        if isinstance(value, list) and len(value) == 1 and isinstance(value[0], str):
            value = value[0]
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError as e:
                raise ValueError(f"`geometryList` is not valid JSON: {e}") from e
        return value

    @property
    def has_geometry(self) -> bool:
        return self.geometry_list is not None

    def text(self, field: str) -> Optional[str]:
        """Stripped value of a text field, or None when absent or blank."""
        value = getattr(self, field)
        if value is None:
            return None
        value = value.strip()
        return value or None
