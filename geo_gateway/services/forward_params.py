from __future__ import annotations

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from multidict import MultiDict

from geo_gateway.models import CanonicalQuery

OsmTagSet = Dict[str, List[str]]

# Label -> Photon "key:value" tag. Extend via GATEWAY_EXTRA_CATEGORIES.
DEFAULT_CATEGORY_TAGS: Mapping[str, str] = MappingProxyType(
    {
        "cafe": "amenity:cafe",
        "restaurant": "amenity:restaurant",
        "bar": "amenity:bar",
        "pub": "amenity:pub",
        "fast_food": "amenity:fast_food",
        "supermarket": "shop:supermarket",
        "convenience": "shop:convenience",
        "museum": "tourism:museum",
        "park": "leisure:park",
        "hotel": "tourism:hotel",
        "hostel": "tourism:hostel",
        "pharmacy": "amenity:pharmacy",
        "bank": "amenity:bank",
        "atm": "amenity:atm",
        "fuel": "amenity:fuel",
    }
)

FALLBACK_QUERY = "poi"

PASSTHROUGH_KEYS = ("layer", "osm_key", "osm_value", "osm_tag")


def build_category_table(extra: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    table = dict(DEFAULT_CATEGORY_TAGS)
    for label, tag in (extra or {}).items():
        if ":" not in tag:
            raise ValueError(f"Category '{label}' must map to 'key:value', got '{tag}'")
        table[label.strip().lower()] = tag
    return MappingProxyType(table)


class ForwardParamBuilder:
    """Maps a :class:`CanonicalQuery` onto Photon ``/api`` query parameters."""

    def __init__(self, category_tags: Mapping[str, str] = DEFAULT_CATEGORY_TAGS) -> None:
        self._category_tags = category_tags

    def categories(self) -> Dict[str, Dict[str, str]]:
        out = {}
        for label, tag in sorted(self._category_tags.items()):
            key, value = tag.split(":", 1)
            out[label] = {"key": key, "value": value}
        return out

    def categories_to_osm_tags(self, categories: Optional[List[str]]) -> Optional[OsmTagSet]:
        if not categories:
            return None
        out: OsmTagSet = {}
        for raw in categories:
            tag = self._category_tags.get(str(raw).strip().lower())
            if not tag:
                continue
            key, value = tag.split(":", 1)
            values = out.setdefault(key, [])
            if value not in values:
                values.append(value)
        return out or None

    def resolve_osm_tags(self, query: CanonicalQuery) -> Optional[OsmTagSet]:
        # Explicit tags win over categories
        if query.osm_tags is not None:
            return query.osm_tags or None
        return self.categories_to_osm_tags(query.categories)

    def fallback_query(self, query: CanonicalQuery, osm_tags: Optional[OsmTagSet] = None) -> str:
        """Search term: q, then name, then first category, then first tag value/key, then "poi"."""
        for field in ("q", "name"):
            text = query.text(field)
            if text:
                return text

        if query.categories:
            first = query.categories[0].strip().lower()
            if first:
                return first

        if osm_tags is None:
            osm_tags = self.resolve_osm_tags(query)
        if osm_tags:
            key, values = next(iter(osm_tags.items()))
            if values and values[0]:
                return values[0]
            if key:
                return key

        return FALLBACK_QUERY

    def build(self, query: CanonicalQuery) -> Tuple[MultiDict, Optional[OsmTagSet]]:
        osm_tags = self.resolve_osm_tags(query)
        params: MultiDict = MultiDict()
        params["q"] = self.fallback_query(query, osm_tags)

        if query.limit is not None:
            params["limit"] = str(query.limit)
        if query.lang is not None:
            params["lang"] = query.lang
        if query.lat is not None:
            params["lat"] = str(query.lat)
        if query.lon is not None:
            params["lon"] = str(query.lon)
        if query.bbox:
            params["bbox"] = query.bbox

        for key in PASSTHROUGH_KEYS:
            for value in getattr(query, key) or []:
                params.add(key, value)

        for key, values in (osm_tags or {}).items():
            for value in values:
                params.add("osm_tag", f"{key}:{value}")

        return params, osm_tags
