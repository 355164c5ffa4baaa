from __future__ import annotations

import json
from typing import Any, Dict, Hashable, Iterable, List, Optional


def feature_identity(feature: Dict[str, Any]) -> Hashable:
    """(osm_type, osm_id) when both are set, else the feature id, else its geometry."""
    props = feature.get("properties") or {}
    osm_type = props.get("osm_type")
    osm_id = props.get("osm_id")
    if osm_type and osm_id:
        return ("osm", str(osm_type), str(osm_id))
    if feature.get("id") is not None:
        return ("id", str(feature["id"]))
    return ("geometry", json.dumps(feature.get("geometry"), sort_keys=True))


def dedupe_features(features: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out = []
    for feature in features:
        key = feature_identity(feature)
        if key in seen:
            continue
        seen.add(key)
        out.append(feature)
    return out


def aggregate_features(batches: Iterable[Optional[List[Dict[str, Any]]]], limit: int) -> Dict[str, Any]:
    """Concatenate per-call feature lists in order, drop duplicates, cap at ``limit``."""
    collected: List[Dict[str, Any]] = []
    for batch in batches:
        collected.extend(batch or [])
    return {"type": "FeatureCollection", "features": dedupe_features(collected)[:limit]}
