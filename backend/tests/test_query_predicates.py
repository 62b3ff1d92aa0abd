# backend/tests/test_query_predicates.py

"""
Unit tests for the predicate tree, MongoDB renderer and in-memory evaluation
"""

import pytest

from query_predicates import (
    AllOf,
    AnyOf,
    ElemMatch,
    Equals,
    FieldPath,
    InvalidPathSegmentError,
    MatchAll,
    Range,
    conjoin,
    disjoin,
    evaluate,
    merge_into_query,
    render_mongo,
)

COLOR = FieldPath.of("properties", "color")
WIDTH = FieldPath.of("properties_normalized", "width")
VARIANTS = FieldPath.of("variants")


class TestFieldPath:
    """Test path validation"""

    def test_dotted(self):
        assert COLOR.dotted() == "properties.color"
        assert str(FieldPath.of("variants").child("sku")) == "variants.sku"

    @pytest.mark.parametrize("segment", ["", "  ", "$where", "a.b", "x\x00"])
    def test_rejects_unsafe_segments(self, segment):
        with pytest.raises(InvalidPathSegmentError) as exc_info:
            FieldPath.of("properties", segment)
        assert exc_info.value.error_code == "INVALID_PATH_SEGMENT"

    def test_rejects_empty_path(self):
        with pytest.raises(InvalidPathSegmentError):
            FieldPath(())


class TestComposition:
    """Test conjoin / disjoin"""

    def test_conjoin_collapses(self):
        eq = Equals(COLOR, "red")
        assert conjoin([]) == MatchAll()
        assert conjoin([MatchAll()]) == MatchAll()
        assert conjoin([eq]) == eq
        assert conjoin([eq, MatchAll(), eq]) == AllOf((eq, eq))

    def test_disjoin_collapses(self):
        eq = Equals(COLOR, "red")
        assert disjoin([eq]) == eq
        assert disjoin([eq, MatchAll()]) == MatchAll()
        assert disjoin([eq, eq]) == AnyOf((eq, eq))


class TestMongoRenderer:
    """Test MongoDB rendering"""

    def test_render_leaves(self):
        assert render_mongo(MatchAll()) == {}
        assert render_mongo(Equals(COLOR, "red")) == {"properties.color": "red"}
        assert render_mongo(Range(WIDTH, gte=1.0, lte=2.0)) == {
            "properties_normalized.width": {"$gte": 1.0, "$lte": 2.0}
        }
        assert render_mongo(Range(WIDTH, gte=1.0)) == {"properties_normalized.width": {"$gte": 1.0}}

    def test_render_tree(self):
        eq = Equals(COLOR, "red")
        predicate = AllOf((
            AnyOf((eq, ElemMatch(VARIANTS, eq))),
            ElemMatch(VARIANTS, AllOf((Range(WIDTH, gte=1.0), Range(WIDTH, lte=2.0)))),
        ))
        assert render_mongo(predicate) == {
            "$and": [
                {"$or": [
                    {"properties.color": "red"},
                    {"variants": {"$elemMatch": {"properties.color": "red"}}},
                ]},
                {"variants": {"$elemMatch": {"$and": [
                    {"properties_normalized.width": {"$gte": 1.0}},
                    {"properties_normalized.width": {"$lte": 2.0}},
                ]}}},
            ]
        }

    def test_render_unknown_node(self):
        with pytest.raises(TypeError):
            render_mongo("not a predicate")

    def test_merge_into_query_flattens_and(self):
        query = {"category": "pipe"}
        merge_into_query(query, {"$and": [{"a": 1}, {"b": 2}]})
        merge_into_query(query, {"$or": [{"c": 3}, {"d": 4}]})
        merge_into_query(query, {})
        assert query == {
            "category": "pipe",
            "$and": [{"a": 1}, {"b": 2}, {"$or": [{"c": 3}, {"d": 4}]}],
        }


class TestEvaluate:
    """Test in-memory evaluation"""

    def test_equality_on_nested_path(self):
        assert evaluate(Equals(COLOR, "red"), {"properties": {"color": "red"}})
        assert not evaluate(Equals(COLOR, "red"), {"properties": {"color": "blue"}})
        assert not evaluate(Equals(COLOR, "red"), {"name": "no properties"})

    def test_equality_matches_array_element(self):
        assert evaluate(Equals(COLOR, "red"), {"properties": {"color": ["blue", "red"]}})

    def test_range_only_matches_numbers(self):
        rng = Range(WIDTH, gte=10, lte=20)
        assert evaluate(rng, {"properties_normalized": {"width": 15}})
        assert not evaluate(rng, {"properties_normalized": {"width": "15"}})
        assert not evaluate(rng, {"properties_normalized": {"width": True}})
        assert not evaluate(rng, {"properties_normalized": {"width": 25}})

    def test_range_bounds_may_hold_on_different_elements(self):
        rng = Range(FieldPath.of("a"), gte=5, lte=10)
        assert evaluate(rng, {"a": [1, 20]})
        assert not evaluate(rng, {"a": [1, 2]})
        assert not evaluate(ElemMatch(FieldPath.of("items"), Range(FieldPath.of("a"), gte=5, lte=10)),
                            {"items": [{"a": 1}, {"a": 20}]})

    def test_elem_match_requires_single_element(self):
        a = FieldPath.of("a")
        b = FieldPath.of("b")
        both = ElemMatch(VARIANTS, AllOf((Equals(a, 1), Equals(b, 1))))
        split = {"variants": [{"a": 1, "b": 2}, {"a": 2, "b": 1}]}
        together = {"variants": [{"a": 2, "b": 2}, {"a": 1, "b": 1}]}
        assert not evaluate(both, split)
        assert evaluate(both, together)
        assert not evaluate(both, {"variants": "not a list"})

    def test_match_all(self):
        assert evaluate(MatchAll(), {})
