# backend/property_normalization.py

"""
Property Normalization Service

Computes the normalized copy of a product's properties that the query
builder searches: properties_normalized (base-unit numbers) and
property_units (the unit each raw value was read in). Applied to the product
and to each of its variants.
"""

from typing import Optional, Dict, Any, Tuple
from pydantic import BaseModel
import asyncio
import logging

from unit_registry import MeasurementType
from unit_normalization import normalize_to_base, parse_leading_number, parse_measurement
from property_metadata import PropertyMetadata, PropertyMetadataLookup, PropertyDataType
from property_query_builder import PROPERTIES_FIELD, NORMALIZED_FIELD, VARIANTS_FIELD

logger = logging.getLogger(__name__)

PROPERTY_UNITS_FIELD = "property_units"


class NormalizedProperty(BaseModel):
    normalized_value: Optional[float] = None
    unit: Optional[str] = None
    measurement_type: Optional[MeasurementType] = None


class PropertyNormalizationService:
    """Normalize raw property values using resolved property metadata"""

    def __init__(self, resolver: PropertyMetadataLookup):
        self.resolver = resolver

    @staticmethod
    def normalize_with_metadata(value: Any, meta: PropertyMetadata) -> NormalizedProperty:
        """
        Normalize one raw value.

        Properties without a unit or with type 'other' are not normalized.
        Fraction-typed properties go through parse_measurement ("1 1/2\"" -> 1.5).
        Other strings try parse_measurement, then the leading number ("4 ft" -> 4).
        """
        if value is None or value == "":
            return NormalizedProperty()

        unit = meta.unit
        measurement_type = meta.measurement_type
        if not unit or measurement_type in (None, MeasurementType.OTHER):
            return NormalizedProperty()

        if meta.data_type == PropertyDataType.FRACTION:
            number = parse_measurement(value)
        elif isinstance(value, str):
            number = parse_measurement(value)
            if number is None:
                number = parse_leading_number(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            number = float(value)
        else:
            number = None

        if number is None:
            return NormalizedProperty(unit=unit, measurement_type=measurement_type)

        normalized = normalize_to_base(number, unit, measurement_type)
        return NormalizedProperty(
            normalized_value=normalized if normalized is not None else number,
            unit=unit,
            measurement_type=measurement_type,
        )

    async def normalize_property(self, key: str, value: Any) -> NormalizedProperty:
        if value is None or value == "":
            return NormalizedProperty()
        try:
            meta = await self.resolver(key)
        except Exception as e:
            # Lookup failures leave the property unnormalized, never fail the product
            logger.warning(f"Property metadata lookup failed for '{key}': {e}")
            meta = PropertyMetadata.unresolved(key)
        return self.normalize_with_metadata(value, meta)

    async def normalize_properties(
        self,
        properties: Optional[Dict[str, Any]]
    ) -> Tuple[Dict[str, float], Dict[str, str]]:
        """
        Returns:
            (properties_normalized, property_units)
        """
        normalized: Dict[str, float] = {}
        units: Dict[str, str] = {}
        if not properties:
            return normalized, units

        keys = list(properties)
        results = await asyncio.gather(*(self.normalize_property(k, properties[k]) for k in keys))
        for key, result in zip(keys, results):
            if result.normalized_value is not None:
                normalized[key] = result.normalized_value
            if result.unit:
                units[key] = result.unit
        return normalized, units

    async def normalize_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fill properties_normalized / property_units on a product document and
        each of its variants. The document is modified in place and returned.
        """
        targets = [product] + [v for v in product.get(VARIANTS_FIELD) or [] if isinstance(v, dict)]
        for target in targets:
            normalized, units = await self.normalize_properties(target.get(PROPERTIES_FIELD))
            target[NORMALIZED_FIELD] = normalized
            target[PROPERTY_UNITS_FIELD] = units
        logger.debug(
            f"Normalized properties for product {product.get('id')} "
            f"({len(targets) - 1} variant(s))"
        )
        return product
