from __future__ import annotations

import pytest

from geo_gateway.services.normalizer import collect_query_items, merge_inputs, to_canonical_query


def test_repeated_query_keys_become_lists():
    items = [("layer", "house"), ("q", "pizza"), ("layer", "street"), ("layer", "city")]
    assert collect_query_items(items) == {"layer": ["house", "street", "city"], "q": "pizza"}


def test_body_fields_override_query_fields():
    merged = merge_inputs([("q", "from-query"), ("limit", "5")], {"q": "from-body"})
    assert merged["q"] == "from-body"
    assert merged["limit"] == "5"


def test_name_fills_blank_query():
    assert merge_inputs([("name", "Gamla stan")], None)["q"] == "Gamla stan"
    assert merge_inputs([("q", "  ")], {"name": "Södermalm"})["q"] == "Södermalm"
    assert merge_inputs([("q", "pizza"), ("name", "Gamla stan")], None)["q"] == "pizza"


def test_mode_is_lowercased():
    assert merge_inputs([("mode", " PolyLine ")], None)["mode"] == "polyline"
    assert merge_inputs([], {"mode": "Point"})["mode"] == "point"


def test_merge_does_not_validate():
    merged = merge_inputs([("mode", "teleport")], {"geometryList": "nonsense"})
    assert merged == {"mode": "teleport", "geometryList": "nonsense"}


def test_canonical_query_from_query_string():
    fields = merge_inputs(
        [
            ("mode", "point"),
            ("q", "cafe"),
            ("limit", "10"),
            ("radius", "500"),
            ("geometryList", "[[59.33, 18.06]]"),
            ("debug", "true"),
            ("categories", "cafe"),
        ],
        None,
    )
    query = to_canonical_query(fields)

    assert query.mode == "point"
    assert query.limit == 10
    assert query.radius == 500.0
    assert query.geometry_list == [(59.33, 18.06)]
    assert query.debug is True
    assert query.categories == ["cafe"]


def test_canonical_query_from_json_body():
    query = to_canonical_query(
        merge_inputs(
            [],
            {
                "mode": "polyline",
                "geometryList": [[59.0, 18.0], [59.1, 18.2]],
                "osmTags": {"amenity": "cafe", "shop": ["bakery", "bakery"]},
                "maxPolylinePoints": 50,
                "osm_key": ["amenity", "shop"],
            },
        )
    )

    assert query.geometry_list == [(59.0, 18.0), (59.1, 18.2)]
    assert query.osm_tags == {"amenity": ["cafe"], "shop": ["bakery"]}
    assert query.max_polyline_points == 50
    assert query.osm_key == ["amenity", "shop"]


def test_canonical_query_is_immutable():
    query = to_canonical_query({"mode": "autocomplete", "q": "pizza"})
    with pytest.raises(Exception):
        query.q = "sushi"
    assert query.model_copy(update={"limit": 5}).limit == 5
    assert query.limit is None


@pytest.mark.parametrize(
    "fields",
    [
        {"limit": "many"},
        {"limit": 0},
        {"geometryList": [[59.0]]},
        {"geometryList": [["north", "east"]]},
        {"geometryList": "[[59.0, 18.0"},
        {"maxPolylinePoints": 1},
        {"osmTags": "amenity"},
        {"geometryList": [[float("nan"), 18.0], [59.0, 18.0]]},
        {"radius": float("inf")},
        {"lat": float("nan")},
    ],
)
def test_shape_errors_raise_value_error(fields):
    with pytest.raises(ValueError, match="Invalid request|geometryList"):
        to_canonical_query(fields)
