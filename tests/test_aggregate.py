from __future__ import annotations

from geo_gateway.services.aggregate import aggregate_features, dedupe_features, feature_identity

from fakes import feature


def test_duplicates_collapse_to_first_occurrence():
    first = feature("N", 1, "first")
    features = [feature("W", 7, "way"), first, feature("N", 2), feature("N", 1, "second copy")]

    out = dedupe_features(features)

    assert [f["properties"]["name"] for f in out] == ["way", "first", ""]
    assert out[1] is first


def test_same_id_different_type_are_distinct():
    out = dedupe_features([feature("N", 1), feature("W", 1)])
    assert len(out) == 2


def test_identity_falls_back_to_feature_id_then_geometry():
    with_id = feature(None, None, id="abc")
    assert feature_identity(with_id) == ("id", "abc")

    bare = feature("N", None)
    assert feature_identity(bare)[0] == "geometry"
    assert dedupe_features([bare, feature(None, None)]) == [bare]


def test_aggregate_concatenates_in_order_and_truncates():
    batches = [
        [feature("N", 1, "a"), feature("N", 2, "b")],
        None,
        [feature("N", 2, "b again"), feature("N", 3, "c"), feature("N", 4, "d")],
    ]

    data = aggregate_features(batches, limit=3)

    assert data["type"] == "FeatureCollection"
    assert [f["properties"]["name"] for f in data["features"]] == ["a", "b", "c"]
