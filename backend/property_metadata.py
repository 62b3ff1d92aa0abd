# backend/property_metadata.py

"""
Property Metadata - Resolve a property key to its measurement type and unit

Backed by the property_definitions collection (with a TTL cache), with
key-name heuristics for properties that have no definition.
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Union, Callable, Awaitable
from pydantic import BaseModel, ConfigDict, Field
import asyncio
import re
import time
import logging

from unit_registry import (
    MeasurementType,
    UnitSystem,
    measurement_type_for_unit,
    resolve_unit_code,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300  # seconds

# ==================== ENUMS ====================

class PropertyCategory(str, Enum):
    DIMENSION = "dimension"
    MATERIAL = "material"
    SPECIFICATION = "specification"
    PERFORMANCE = "performance"
    OTHER = "other"


class PropertyDataType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    FRACTION = "fraction"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"

# ==================== DATA MODELS ====================

class PropertyDefinition(BaseModel):
    """Property definition record (property_definitions collection)"""
    model_config = ConfigDict(extra="ignore")

    key: str
    label: str
    description: Optional[str] = None
    category: PropertyCategory = PropertyCategory.OTHER
    data_type: PropertyDataType
    unit: Optional[str] = None  # free text, e.g. "inches"
    unit_of_measure_id: Optional[str] = None
    unit_system: UnitSystem = UnitSystem.IMPERIAL
    aliases: List[str] = []
    tolerance: float = Field(default=0.01, ge=0)
    is_active: bool = True

    def matches(self, key: str) -> bool:
        return self.key == key or key in self.aliases


class PropertyMetadata(BaseModel):
    """What the query builder needs to know about a property"""
    key: str
    measurement_type: Optional[MeasurementType] = None
    unit: Optional[str] = None
    data_type: Optional[PropertyDataType] = None

    @property
    def resolved(self) -> bool:
        return self.measurement_type is not None

    @classmethod
    def unresolved(cls, key: str) -> "PropertyMetadata":
        return cls(key=key)


PropertyMetadataLookup = Callable[[str], Awaitable[PropertyMetadata]]

# ==================== INFERENCE ====================

_TEMPERATURE_WORDS = ("temperature", "temp")
_WEIGHT_WORDS = ("weight", "mass")
_AREA_WORDS = ("area", "coverage")
_VOLUME_WORDS = ("volume", "capacity")
_LENGTH_WORDS = (
    "dimension", "width", "height", "length", "thickness",
    "diameter", "gauge", "size", "depth", "radius",
)


def _tokens(key: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", key.lower()) if t]


def infer_measurement_type_from_key(key: str) -> MeasurementType:
    """
    Guess the measurement type of an undefined property from its key.

    Long words match anywhere in the key; short unit-like words
    ('sq', 'gal', 'l') only as whole tokens.
    """
    lowered = key.lower()
    tokens = _tokens(key)
    if any(w in lowered for w in _TEMPERATURE_WORDS):
        return MeasurementType.TEMPERATURE
    if any(w in lowered for w in _WEIGHT_WORDS):
        return MeasurementType.WEIGHT
    if any(w in lowered for w in _AREA_WORDS) or "sq" in tokens:
        return MeasurementType.AREA
    if any(w in lowered for w in _VOLUME_WORDS) or any(t in ("gal", "l", "liters") for t in tokens):
        return MeasurementType.VOLUME
    if any(w in lowered for w in _LENGTH_WORDS):
        return MeasurementType.LENGTH
    return MeasurementType.OTHER


def infer_measurement_type(
    key: str,
    definition: Optional[PropertyDefinition],
    unit: Optional[str]
) -> MeasurementType:
    """
    Measurement type for a property.

    Order: the declared unit's type, then the definition's category,
    then key heuristics (only when there is no definition at all).
    """
    unit_type = measurement_type_for_unit(unit)
    if definition is None:
        return unit_type or infer_measurement_type_from_key(key)

    if unit_type is not None:
        return unit_type
    if definition.category == PropertyCategory.DIMENSION:
        return MeasurementType.LENGTH
    if definition.category == PropertyCategory.PERFORMANCE:
        if any(w in key.lower() for w in _TEMPERATURE_WORDS):
            return MeasurementType.TEMPERATURE
    return MeasurementType.OTHER

# ==================== RESOLVERS ====================

class PropertyMetadataResolver:
    """
    Resolve property metadata from MongoDB.

    Active definitions are cached for cache_ttl seconds; one reload serves
    all concurrent callers.
    """

    def __init__(self, db, cache_ttl: float = DEFAULT_CACHE_TTL):
        """
        Args:
            db: Motor database instance
            cache_ttl: Seconds before definitions are reloaded
        """
        self.db = db
        self.cache_ttl = cache_ttl
        self._definitions: Optional[List[PropertyDefinition]] = None
        self._loaded_at: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None

    def invalidate(self) -> None:
        self._definitions = None
        self._loaded_at = None

    def _expired(self) -> bool:
        return (
            self._definitions is None
            or self._loaded_at is None
            or time.monotonic() - self._loaded_at > self.cache_ttl
        )

    async def _load_definitions(self) -> List[PropertyDefinition]:
        # Bound to the running event loop on first load
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if not self._expired():
                return self._definitions
            docs = await self.db.property_definitions.find({"is_active": True}, {"_id": 0}).to_list(5000)
            definitions = []
            for doc in docs:
                try:
                    definitions.append(PropertyDefinition(**doc))
                except ValueError as e:
                    logger.warning(f"Skipping invalid property definition {doc.get('key')}: {e}")
            self._definitions = definitions
            self._loaded_at = time.monotonic()
            logger.debug(f"Loaded {len(definitions)} property definitions")
            return definitions

    async def get_property_definition(self, key: str) -> Optional[PropertyDefinition]:
        """Definition whose key or aliases match key"""
        if self._expired():
            definitions = await self._load_definitions()
        else:
            definitions = self._definitions
        return next((d for d in definitions if d.matches(key)), None)

    async def _unit_from_catalog(self, unit_of_measure_id: str) -> Optional[str]:
        uom = await self.db.units_of_measure.find_one({"id": unit_of_measure_id}, {"_id": 0})
        if not uom:
            return None
        return resolve_unit_code(uom.get("abbreviation") or uom.get("code"))

    async def _unit_for(self, definition: Optional[PropertyDefinition]) -> Optional[str]:
        if definition is None:
            return None
        if definition.unit_of_measure_id:
            unit = await self._unit_from_catalog(definition.unit_of_measure_id)
            if unit:
                return unit
        return resolve_unit_code(definition.unit)

    async def get_property_unit(self, key: str) -> Optional[str]:
        """Declared unit code of a property (None when it has none)"""
        return await self._unit_for(await self.get_property_definition(key))

    async def get_measurement_type(self, key: str) -> MeasurementType:
        definition = await self.get_property_definition(key)
        return infer_measurement_type(key, definition, await self._unit_for(definition))

    async def resolve(self, key: str) -> PropertyMetadata:
        definition = await self.get_property_definition(key)
        unit = await self._unit_for(definition)
        return PropertyMetadata(
            key=key,
            measurement_type=infer_measurement_type(key, definition, unit),
            unit=unit,
            data_type=definition.data_type if definition else None,
        )

    async def __call__(self, key: str) -> PropertyMetadata:
        return await self.resolve(key)


class StaticPropertyMetadataResolver:
    """
    In-memory resolver.

    mapping values may be PropertyMetadata, a dict of its fields, or a
    (measurement_type, unit) tuple. Unknown keys fall back to key heuristics.
    """

    def __init__(self, mapping: Optional[Dict[str, Union[PropertyMetadata, Dict[str, Any], tuple]]] = None):
        self._metadata: Dict[str, PropertyMetadata] = {}
        for key, entry in (mapping or {}).items():
            if isinstance(entry, PropertyMetadata):
                metadata = entry
            elif isinstance(entry, tuple):
                measurement_type, unit = entry
                metadata = PropertyMetadata(key=key, measurement_type=measurement_type, unit=unit)
            else:
                metadata = PropertyMetadata(key=key, **entry)
            if metadata.unit:
                metadata = metadata.model_copy(update={"unit": resolve_unit_code(metadata.unit)})
            self._metadata[key] = metadata

    async def resolve(self, key: str) -> PropertyMetadata:
        if key in self._metadata:
            return self._metadata[key]
        return PropertyMetadata(key=key, measurement_type=infer_measurement_type_from_key(key))

    async def __call__(self, key: str) -> PropertyMetadata:
        return await self.resolve(key)
