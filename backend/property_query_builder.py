# backend/property_query_builder.py

"""
Property Query Builder - Cross-unit faceted search over product properties

Turns {property_key: filter_spec} into one predicate that matches a product
when the property matches on the product itself OR on any of its variants,
whether the stored value is legacy (raw, in properties) or normalized to the
base unit (in properties_normalized).

Filter specs:
    "red" / 12                       exact match, no conversion
    {"value": 12, "unit": "in"}      normalized match within tolerance (+ legacy exact)
    {"min": 10, "max": 14,
     "unit": "in", "minUnit": ...}   normalized range (+ legacy range when both bounds given)

Keys are ANDed (each filter narrows the result). Building never raises on a
bad filter: unknown units, unknown properties, failed metadata lookups and
invalid keys degrade to exact match or skip the key.
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field, ValidationError
import asyncio
import json
import logging

from unit_registry import MeasurementType, measurement_type_for_unit, resolve_unit_code
from unit_normalization import MATCH_TOLERANCE, normalize_to_base, parse_measurement
from property_metadata import PropertyMetadata, PropertyMetadataLookup
from query_predicates import (
    AllOf,
    ElemMatch,
    Equals,
    FieldPath,
    InvalidPathSegmentError,
    MatchAll,
    MongoQueryRenderer,
    Predicate,
    Range,
    conjoin,
    disjoin,
)

logger = logging.getLogger(__name__)

PROPERTIES_FIELD = "properties"
NORMALIZED_FIELD = "properties_normalized"
VARIANTS_FIELD = "variants"

# ==================== ERROR CLASSES ====================

class InvalidFilterError(ValueError):
    """Filter parameter could not be decoded"""
    def __init__(self, message: str):
        self.error_code = "INVALID_PROPERTY_FILTER"
        self.field = "properties"
        self.message = message
        super().__init__(self.message)

# ==================== DATA MODELS ====================

class PropertyFilter(BaseModel):
    """Object form of a filter spec"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    value: Any = None
    unit: Optional[str] = None
    min: Any = None
    max: Any = None
    min_unit: Optional[str] = Field(default=None, alias="minUnit")
    max_unit: Optional[str] = Field(default=None, alias="maxUnit")

    @property
    def has_range(self) -> bool:
        return self.min is not None or self.max is not None


class FilterScope(str, Enum):
    """Where a property may be stored"""
    DOCUMENT_AND_VARIANTS = "DOCUMENT_AND_VARIANTS"
    VARIANTS_ONLY = "VARIANTS_ONLY"


def parse_filter_param(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode a JSON-encoded filter map from a query string parameter.

    Raises:
        InvalidFilterError: If raw is not a JSON object
    """
    if raw is None or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidFilterError(f"Property filters must be valid JSON: {e.msg}")
    if not isinstance(decoded, dict):
        raise InvalidFilterError("Property filters must be a JSON object keyed by property")
    return decoded


def _is_blank(spec: Any) -> bool:
    return spec is None or (isinstance(spec, str) and spec == "")


def _is_scalar(spec: Any) -> bool:
    return isinstance(spec, (str, int, float, bool))

# ==================== BUILDER ====================

class PropertyQueryBuilder:
    """
    Build property filter predicates.

    The resolver is awaited once per object-form filter key; lookups for
    different keys run concurrently.
    """

    def __init__(
        self,
        resolver: Optional[PropertyMetadataLookup] = None,
        tolerance: float = MATCH_TOLERANCE,
        properties_field: str = PROPERTIES_FIELD,
        normalized_field: str = NORMALIZED_FIELD,
        variants_field: str = VARIANTS_FIELD,
        renderer: Optional[MongoQueryRenderer] = None,
    ):
        self.resolver = resolver
        self.tolerance = tolerance
        self.properties_field = properties_field
        self.normalized_field = normalized_field
        self.variants_path = FieldPath.of(variants_field)
        self.renderer = renderer or MongoQueryRenderer()

    # ---------- public API ----------

    async def build_predicate(self, filters: Optional[Dict[str, Any]]) -> Predicate:
        """Predicate over product and variant properties"""
        return await self._build(filters, FilterScope.DOCUMENT_AND_VARIANTS)

    async def build_variant_predicate(self, filters: Optional[Dict[str, Any]]) -> Predicate:
        """Predicate over variant properties only"""
        return await self._build(filters, FilterScope.VARIANTS_ONLY)

    async def build_property_query(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """MongoDB filter document ({} when nothing applies)"""
        return self.renderer.render(await self.build_predicate(filters))

    async def build_variant_property_query(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return self.renderer.render(await self.build_variant_predicate(filters))

    # ---------- internals ----------

    async def _lookup(self, key: str) -> PropertyMetadata:
        if self.resolver is None:
            return PropertyMetadata.unresolved(key)
        try:
            return await self.resolver(key)
        except Exception as e:
            # Lookup failures mean "unit unresolved", never a failed search
            logger.warning(f"Property metadata lookup failed for '{key}': {e}")
            return PropertyMetadata.unresolved(key)

    def _paths(self, key: str) -> Tuple[FieldPath, FieldPath]:
        """(raw path, normalized path), relative to a product or a variant"""
        return (
            FieldPath.of(self.properties_field, key),
            FieldPath.of(self.normalized_field, key),
        )

    def _everywhere(self, predicate: Predicate, scope: FilterScope) -> List[Predicate]:
        """The same predicate on the product and inside any variant"""
        in_variants = ElemMatch(self.variants_path, predicate)
        if scope == FilterScope.VARIANTS_ONLY:
            return [in_variants]
        return [predicate, in_variants]

    async def _build(self, filters: Optional[Dict[str, Any]], scope: FilterScope) -> Predicate:
        if not filters:
            return MatchAll()

        entries: List[Tuple[str, Any, Tuple[FieldPath, FieldPath]]] = []
        for key, spec in filters.items():
            if _is_blank(spec):
                continue
            try:
                paths = self._paths(key)
            except InvalidPathSegmentError as e:
                logger.warning(f"Skipping property filter: {e.message}")
                continue
            if not _is_scalar(spec) and not isinstance(spec, dict):
                logger.debug(f"Skipping property filter '{key}': unsupported spec type {type(spec).__name__}")
                continue
            entries.append((key, spec, paths))

        object_keys = [key for key, spec, _ in entries if isinstance(spec, dict)]
        resolved = await asyncio.gather(*(self._lookup(key) for key in object_keys))
        metadata = dict(zip(object_keys, resolved))

        conditions: List[Predicate] = []
        for key, spec, paths in entries:
            if _is_scalar(spec):
                conditions.append(self._exact(paths[0], spec, scope))
                continue
            condition = self._object_condition(key, spec, metadata[key], paths, scope)
            if condition is not None:
                conditions.append(condition)

        # Faceted filtering: every key must match
        return conjoin(conditions)

    def _exact(self, raw_path: FieldPath, value: Any, scope: FilterScope) -> Predicate:
        return disjoin(self._everywhere(Equals(raw_path, value), scope))

    def _object_condition(
        self,
        key: str,
        spec: Dict[str, Any],
        meta: PropertyMetadata,
        paths: Tuple[FieldPath, FieldPath],
        scope: FilterScope,
    ) -> Optional[Predicate]:
        raw_path, normalized_path = paths
        try:
            flt = PropertyFilter.model_validate(spec)
        except ValidationError as e:
            logger.warning(f"Skipping property filter '{key}': {e.error_count()} invalid field(s)")
            return None

        unit = resolve_unit_code(flt.unit) or meta.unit
        measurement_type = meta.measurement_type or measurement_type_for_unit(unit)

        if not unit or measurement_type in (None, MeasurementType.OTHER):
            # Can't normalize: exact match on the original value
            if flt.value is None:
                return None
            return self._exact(raw_path, flt.value, scope)

        tol = self.tolerance
        alternatives: List[Predicate] = []

        if flt.has_range:
            min_norm = (
                normalize_to_base(parse_measurement(flt.min), flt.min_unit or unit, measurement_type)
                if flt.min is not None else None
            )
            max_norm = (
                normalize_to_base(parse_measurement(flt.max), flt.max_unit or unit, measurement_type)
                if flt.max is not None else None
            )
            if min_norm is not None or max_norm is not None:
                normalized_range = Range(
                    normalized_path,
                    gte=min_norm - tol if min_norm is not None else None,
                    lte=max_norm + tol if max_norm is not None else None,
                )
                alternatives.extend(self._everywhere(normalized_range, scope))

                # Legacy documents store the raw number without a normalized copy
                raw_min, raw_max = parse_measurement(flt.min), parse_measurement(flt.max)
                if raw_min is not None and raw_max is not None:
                    legacy_range = AllOf((
                        Range(raw_path, gte=raw_min - tol),
                        Range(raw_path, lte=raw_max + tol),
                    ))
                    alternatives.extend(self._everywhere(legacy_range, scope))

        if flt.value is not None:
            value_norm = normalize_to_base(parse_measurement(flt.value), unit, measurement_type)
            if value_norm is not None:
                around = Range(normalized_path, gte=value_norm - tol, lte=value_norm + tol)
                alternatives.extend(self._everywhere(around, scope))
            alternatives.extend(self._everywhere(Equals(raw_path, flt.value), scope))

        if not alternatives:
            return None
        return disjoin(alternatives)

# ==================== MODULE HELPERS ====================

async def build_property_query(
    filters: Optional[Dict[str, Any]],
    resolver: Optional[PropertyMetadataLookup] = None,
    **options
) -> Dict[str, Any]:
    """Render a product + variant property query for MongoDB"""
    return await PropertyQueryBuilder(resolver, **options).build_property_query(filters)


async def build_variant_property_query(
    filters: Optional[Dict[str, Any]],
    resolver: Optional[PropertyMetadataLookup] = None,
    **options
) -> Dict[str, Any]:
    """Render a variant-only property query for MongoDB"""
    return await PropertyQueryBuilder(resolver, **options).build_variant_property_query(filters)
