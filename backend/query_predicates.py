# backend/query_predicates.py

"""
Query Predicates - Store-independent predicate tree

The property query builder emits these nodes; a renderer turns them into a
concrete store query. Two renderers ship here:
- MongoQueryRenderer: MongoDB filter documents ($and/$or/$gte/$lte/$elemMatch)
- evaluate(): in-memory matching with MongoDB semantics

Paths are explicit segment tuples, never concatenated strings, so a property
key from a request can not smuggle operators or extra path levels into a query.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import numbers

# ==================== ERROR CLASSES ====================

class InvalidPathSegmentError(ValueError):
    """Path segment is empty, operator-like or contains a separator"""
    def __init__(self, segment: Any):
        self.error_code = "INVALID_PATH_SEGMENT"
        self.field = "path"
        self.message = f"Invalid field path segment: {segment!r}"
        super().__init__(self.message)

# ==================== PATHS ====================

@dataclass(frozen=True)
class FieldPath:
    """Field path made of validated segments, e.g. properties -> width"""
    segments: Tuple[str, ...]

    def __post_init__(self):
        if not self.segments:
            raise InvalidPathSegmentError("")
        for segment in self.segments:
            if (
                not isinstance(segment, str)
                or not segment.strip()
                or segment.startswith("$")
                or "." in segment
                or "\x00" in segment
            ):
                raise InvalidPathSegmentError(segment)

    @classmethod
    def of(cls, *segments: str) -> "FieldPath":
        return cls(tuple(segments))

    def child(self, segment: str) -> "FieldPath":
        return FieldPath(self.segments + (segment,))

    def dotted(self) -> str:
        return ".".join(self.segments)

    def __str__(self) -> str:
        return self.dotted()

# ==================== NODES ====================

@dataclass(frozen=True)
class MatchAll:
    """Matches every document"""


@dataclass(frozen=True)
class Equals:
    path: FieldPath
    value: Any


@dataclass(frozen=True)
class Range:
    """Inclusive numeric range; a missing side is unconstrained"""
    path: FieldPath
    gte: Optional[float] = None
    lte: Optional[float] = None


@dataclass(frozen=True)
class ElemMatch:
    """Some element of the array at array_path satisfies predicate (paths relative to the element)"""
    array_path: FieldPath
    predicate: "Predicate"


@dataclass(frozen=True)
class AllOf:
    children: Tuple["Predicate", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["Predicate", ...] = field(default_factory=tuple)


Predicate = Union[MatchAll, Equals, Range, ElemMatch, AllOf, AnyOf]


def conjoin(predicates: Iterable[Predicate]) -> Predicate:
    """AND of predicates; MatchAll children drop out, a single child is returned as-is"""
    children = tuple(p for p in predicates if not isinstance(p, MatchAll))
    if not children:
        return MatchAll()
    if len(children) == 1:
        return children[0]
    return AllOf(children)


def disjoin(predicates: Iterable[Predicate]) -> Predicate:
    """OR of predicates; a MatchAll child makes the whole OR match everything"""
    children = tuple(predicates)
    if not children or any(isinstance(p, MatchAll) for p in children):
        return MatchAll()
    if len(children) == 1:
        return children[0]
    return AnyOf(children)

# ==================== MONGODB RENDERER ====================

class MongoQueryRenderer:
    """Render a predicate tree into a MongoDB filter document"""

    def render(self, predicate: Predicate) -> Dict[str, Any]:
        if isinstance(predicate, MatchAll):
            return {}
        if isinstance(predicate, Equals):
            return {predicate.path.dotted(): predicate.value}
        if isinstance(predicate, Range):
            return {predicate.path.dotted(): self._range(predicate)}
        if isinstance(predicate, ElemMatch):
            return {predicate.array_path.dotted(): {"$elemMatch": self.render(predicate.predicate)}}
        if isinstance(predicate, AllOf):
            return {"$and": [self.render(p) for p in predicate.children]}
        if isinstance(predicate, AnyOf):
            return {"$or": [self.render(p) for p in predicate.children]}
        raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")

    @staticmethod
    def _range(predicate: Range) -> Dict[str, float]:
        bounds: Dict[str, float] = {}
        if predicate.gte is not None:
            bounds["$gte"] = predicate.gte
        if predicate.lte is not None:
            bounds["$lte"] = predicate.lte
        return bounds


def render_mongo(predicate: Predicate) -> Dict[str, Any]:
    return MongoQueryRenderer().render(predicate)


def merge_into_query(base_query: Dict[str, Any], property_query: Dict[str, Any]) -> Dict[str, Any]:
    """
    AND a rendered property query into an existing filter document.

    A top-level $and in property_query is flattened into base_query's $and.
    base_query is modified in place and returned.
    """
    if not property_query:
        return base_query
    conditions = property_query["$and"] if list(property_query) == ["$and"] else [property_query]
    base_query.setdefault("$and", []).extend(conditions)
    return base_query

# ==================== IN-MEMORY EVALUATION ====================

_MISSING = object()


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _resolve(document: Any, segments: Tuple[str, ...]) -> List[Any]:
    """All values reachable at segments, descending into arrays like MongoDB does"""
    if not segments:
        return [document]
    if isinstance(document, list):
        found: List[Any] = []
        for item in document:
            found.extend(_resolve(item, segments))
        return found
    if not isinstance(document, dict):
        return []
    value = document.get(segments[0], _MISSING)
    if value is _MISSING:
        return []
    return _resolve(value, segments[1:])


def _candidates(values: List[Any]) -> List[Any]:
    """Values plus the elements of any array values"""
    expanded: List[Any] = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _in_range(values: List[Any], predicate: Range) -> bool:
    """Each bound may be met by a different array element, as in MongoDB"""
    numbers_found = [v for v in values if _is_number(v)]
    if not numbers_found:
        return False
    if predicate.gte is not None and not any(v >= predicate.gte for v in numbers_found):
        return False
    if predicate.lte is not None and not any(v <= predicate.lte for v in numbers_found):
        return False
    return True


def evaluate(predicate: Predicate, document: Dict[str, Any]) -> bool:
    """
    Evaluate a predicate against a document with MongoDB matching semantics:
    equality matches any element of an array value, each range bound may be
    met by a different element (use ElemMatch to force one element), and
    ranges only compare numbers (a string never satisfies $gte/$lte).
    """
    if isinstance(predicate, MatchAll):
        return True
    if isinstance(predicate, Equals):
        return any(v == predicate.value for v in _candidates(_resolve(document, predicate.path.segments)))
    if isinstance(predicate, Range):
        return _in_range(_candidates(_resolve(document, predicate.path.segments)), predicate)
    if isinstance(predicate, ElemMatch):
        for array in _resolve(document, predicate.array_path.segments):
            if isinstance(array, list) and any(
                isinstance(element, dict) and evaluate(predicate.predicate, element)
                for element in array
            ):
                return True
        return False
    if isinstance(predicate, AllOf):
        return all(evaluate(p, document) for p in predicate.children)
    if isinstance(predicate, AnyOf):
        return any(evaluate(p, document) for p in predicate.children)
    raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")
