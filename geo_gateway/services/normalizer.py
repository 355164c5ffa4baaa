from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from pydantic import ValidationError

from geo_gateway.models import CanonicalQuery

# target field <- source field, applied when the target is absent or blank
FIELD_ALIASES: Tuple[Tuple[str, str], ...] = (("q", "name"),)


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def collect_query_items(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Fold query-string pairs into a dict; a repeated key becomes a list in order."""
    out: Dict[str, Any] = {}
    for key, value in items:
        if key not in out:
            out[key] = value
        elif isinstance(out[key], list):
            out[key].append(value)
        else:
            out[key] = [out[key], value]
    return out


def merge_inputs(query_items: Iterable[Tuple[str, str]], body: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Merge query-string and JSON-body fields into one mapping.

    Precedence: body fields override same-named query fields. Afterwards the
    alias table fills blank targets (``name`` -> ``q``) and ``mode`` is
    lowercased. Nothing else is validated here.
    """
    merged = collect_query_items(query_items)
    merged.update(body or {})

    for target, source in FIELD_ALIASES:
        if _is_blank(merged.get(target)) and merged.get(source):
            merged[target] = merged[source]

    if merged.get("mode") is not None and not isinstance(merged["mode"], (list, dict)):
        merged["mode"] = str(merged["mode"]).strip().lower()
    return merged


def to_canonical_query(fields: Mapping[str, Any]) -> CanonicalQuery:
    """Build the immutable request model; raises ``ValueError`` on shape errors."""
    try:
        return CanonicalQuery.model_validate(dict(fields))
    except ValidationError as e:
        raise ValueError(_describe_validation_error(e)) from e


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"`{loc}`: {item.get('msg')}" if loc else str(item.get("msg")))
    return "Invalid request: " + "; ".join(parts)
