# backend/unit_registry.py

"""
Unit Registry - Static unit table and optional unit catalog

This module is responsible for:
- Base unit assignment per measurement type
- Linear conversion factors to the base unit
- Unit code / alias resolution (case-insensitive, trimmed)
- The richer unit catalog (symbols, display settings, standard values)
  loaded from the units_of_measure collection

INVARIANTS:
1) Exactly one base unit per measurement type, with factor 1
2) Temperature has no linear factor (affine transform only)
3) Unknown units are NOT errors here - callers decide how to degrade
4) The conversion table is static; the catalog never changes conversion math
"""

from enum import Enum
from typing import Optional, List, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
import logging

logger = logging.getLogger(__name__)

# ==================== ENUMS ====================

class MeasurementType(str, Enum):
    """Groups of mutually convertible units"""
    LENGTH = "length"
    AREA = "area"
    VOLUME = "volume"
    WEIGHT = "weight"
    TEMPERATURE = "temperature"
    TIME = "time"
    COUNT = "count"
    OTHER = "other"


class UnitSystem(str, Enum):
    """Informational only, never affects conversion"""
    IMPERIAL = "imperial"
    METRIC = "metric"
    BOTH = "both"


class DisplayFormat(str, Enum):
    DECIMAL = "decimal"
    FRACTION = "fraction"
    MIXED = "mixed"


class _NoLinearFactor:
    """Sentinel for units that need an affine transform (temperature)"""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_LINEAR_FACTOR"

    def __bool__(self) -> bool:
        return False


NO_LINEAR_FACTOR = _NoLinearFactor()

# ==================== BASE UNITS ====================

BASE_UNITS: Dict[MeasurementType, Optional[str]] = {
    MeasurementType.LENGTH: "mm",
    MeasurementType.AREA: "sq_m",
    MeasurementType.VOLUME: "l",
    MeasurementType.WEIGHT: "kg",
    MeasurementType.TEMPERATURE: "c",
    MeasurementType.TIME: "s",
    MeasurementType.COUNT: "ea",
    MeasurementType.OTHER: None,
}

# ==================== CONVERSION TABLE ====================

# Multiply by the factor to get the base unit of the same type
CONVERSION_TO_BASE: Dict[str, Union[float, _NoLinearFactor]] = {
    # Length (to mm)
    "in": 25.4,
    "ft": 304.8,
    "yd": 914.4,
    "mi": 1609344.0,
    "mm": 1.0,
    "cm": 10.0,
    "m": 1000.0,
    "km": 1000000.0,

    # Area (to sq_m)
    "sq_ft": 0.092903,
    "sq_in": 0.00064516,
    "sq_yd": 0.836127,
    "sq_m": 1.0,
    "sq_km": 1000000.0,

    # Volume (to liters)
    "gal": 3.78541,
    "qt": 0.946353,
    "pt": 0.473176,
    "fl_oz": 0.0295735,
    "l": 1.0,
    "ml": 0.001,

    # Weight (to kg)
    "lb": 0.453592,
    "oz": 0.0283495,
    "kg": 1.0,
    "g": 0.001,
    "ton": 907.185,  # US short ton

    # Temperature (affine, see unit_normalization)
    "f": NO_LINEAR_FACTOR,
    "c": NO_LINEAR_FACTOR,

    # Time (to seconds)
    "s": 1.0,
    "min": 60.0,
    "hr": 3600.0,
    "day": 86400.0,

    # Count
    "ea": 1.0,
    "pcs": 1.0,
    "ct": 1.0,
}

UNIT_MEASUREMENT_TYPES: Dict[str, MeasurementType] = {
    **{code: MeasurementType.LENGTH for code in ("in", "ft", "yd", "mi", "mm", "cm", "m", "km")},
    **{code: MeasurementType.AREA for code in ("sq_ft", "sq_in", "sq_yd", "sq_m", "sq_km")},
    **{code: MeasurementType.VOLUME for code in ("gal", "qt", "pt", "fl_oz", "l", "ml")},
    **{code: MeasurementType.WEIGHT for code in ("lb", "oz", "kg", "g", "ton")},
    **{code: MeasurementType.TEMPERATURE for code in ("f", "c")},
    **{code: MeasurementType.TIME for code in ("s", "min", "hr", "day")},
    **{code: MeasurementType.COUNT for code in ("ea", "pcs", "ct")},
}

UNIT_SYSTEMS: Dict[str, UnitSystem] = {
    **{code: UnitSystem.IMPERIAL for code in (
        "in", "ft", "yd", "mi", "sq_ft", "sq_in", "sq_yd",
        "gal", "qt", "pt", "fl_oz", "lb", "oz", "ton", "f",
    )},
    **{code: UnitSystem.METRIC for code in (
        "mm", "cm", "m", "km", "sq_m", "sq_km", "l", "ml", "kg", "g", "c",
    )},
    **{code: UnitSystem.BOTH for code in ("s", "min", "hr", "day", "ea", "pcs", "ct")},
}

# ==================== UNIT ALIAS MAPPING ====================

UNIT_ALIASES: Dict[str, str] = {
    # Length
    "inch": "in",
    "inches": "in",
    '"': "in",
    "foot": "ft",
    "feet": "ft",
    "'": "ft",
    "yard": "yd",
    "yards": "yd",
    "mile": "mi",
    "miles": "mi",
    "millimeter": "mm",
    "millimeters": "mm",
    "millimetre": "mm",
    "millimetres": "mm",
    "centimeter": "cm",
    "centimeters": "cm",
    "meter": "m",
    "meters": "m",
    "metre": "m",
    "metres": "m",
    "kilometer": "km",
    "kilometers": "km",

    # Area
    "square feet": "sq_ft",
    "sq ft": "sq_ft",
    "sqft": "sq_ft",
    "ft2": "sq_ft",
    "square inches": "sq_in",
    "sq in": "sq_in",
    "square yards": "sq_yd",
    "sq yd": "sq_yd",
    "square meters": "sq_m",
    "sq m": "sq_m",
    "m2": "sq_m",
    "square kilometers": "sq_km",
    "sq km": "sq_km",

    # Volume
    "gallon": "gal",
    "gallons": "gal",
    "quart": "qt",
    "quarts": "qt",
    "pint": "pt",
    "pints": "pt",
    "fl oz": "fl_oz",
    "fluid ounces": "fl_oz",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "ltr": "l",
    "milliliter": "ml",
    "milliliters": "ml",

    # Weight
    "pound": "lb",
    "pounds": "lb",
    "lbs": "lb",
    "ounce": "oz",
    "ounces": "oz",
    "kilogram": "kg",
    "kilograms": "kg",
    "kgs": "kg",
    "gram": "g",
    "grams": "g",
    "tons": "ton",

    # Temperature
    "°f": "f",
    "fahrenheit": "f",
    "°c": "c",
    "celsius": "c",

    # Time
    "sec": "s",
    "seconds": "s",
    "minutes": "min",
    "hour": "hr",
    "hours": "hr",
    "h": "hr",
    "days": "day",

    # Count
    "each": "ea",
    "pieces": "pcs",
    "count": "ct",
}

# ==================== ERROR CLASSES ====================

class UnitRegistryError(Exception):
    """Base registry error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None):
        self.error_code = error_code
        self.message = message
        self.field = field
        super().__init__(self.message)


class UnknownUnitError(UnitRegistryError):
    """Unit code has no catalog or table entry"""
    def __init__(self, unit: str):
        super().__init__(
            "UNKNOWN_UNIT",
            f"Unit '{unit}' is not recognized.",
            field="code"
        )

# ==================== DATA MODELS ====================

class StandardValue(BaseModel):
    """Common discrete magnitude offered by UI pickers"""
    display_value: str
    normalized_value: float
    aliases: List[str] = []


class UnitDefinition(BaseModel):
    """Static table entry for a unit code"""
    model_config = ConfigDict(frozen=True)

    code: str
    measurement_type: MeasurementType
    system: UnitSystem
    conversion_factor: Optional[float] = None  # None for affine units
    base_unit: Optional[str] = None

    @property
    def is_base(self) -> bool:
        return self.code == self.base_unit

    @property
    def is_linear(self) -> bool:
        return self.conversion_factor is not None


class UnitOfMeasure(BaseModel):
    """Unit catalog record (units_of_measure collection)"""
    model_config = ConfigDict(extra="ignore")

    code: str
    name: str
    abbreviation: str
    symbol: Optional[str] = None
    system: UnitSystem = UnitSystem.IMPERIAL
    category: MeasurementType
    conversion_factor: float = 1.0
    base_unit: Optional[str] = None
    used_for: List[str] = []
    decimal_places: int = Field(default=2, ge=0)
    display_format: DisplayFormat = DisplayFormat.DECIMAL
    is_active: bool = True
    standard_values: List[StandardValue] = []

    @field_validator("code", "base_unit")
    @classmethod
    def _upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

# ==================== LOOKUPS ====================

def resolve_unit_code(unit: Optional[str]) -> Optional[str]:
    """
    Resolve a unit code or alias to its canonical lowercase code.

    Returns:
        Canonical code, the cleaned input if it is not a known alias,
        or None for empty input
    """
    if unit is None:
        return None
    code = str(unit).strip().lower()
    if not code:
        return None
    return UNIT_ALIASES.get(code, code)


def base_unit_for(measurement_type: Union[MeasurementType, str, None]) -> Optional[str]:
    """Canonical base unit for a measurement type (None for 'other' / unknown)"""
    try:
        return BASE_UNITS.get(MeasurementType(measurement_type))
    except ValueError:
        return None


def conversion_factor_for(unit: Optional[str]) -> Union[float, _NoLinearFactor, None]:
    """
    Multiplicative factor from unit to its base unit.

    Returns:
        float factor, NO_LINEAR_FACTOR for temperature units,
        or None when the unit is unknown (caller must treat as "cannot normalize")
    """
    code = resolve_unit_code(unit)
    if code is None:
        return None
    return CONVERSION_TO_BASE.get(code)


def measurement_type_for_unit(unit: Optional[str]) -> Optional[MeasurementType]:
    code = resolve_unit_code(unit)
    if code is None:
        return None
    return UNIT_MEASUREMENT_TYPES.get(code)


def lookup_unit(unit: Optional[str]) -> Optional[UnitDefinition]:
    """Static table entry for a unit code or alias, None if unknown"""
    code = resolve_unit_code(unit)
    if code is None or code not in CONVERSION_TO_BASE:
        return None
    factor = CONVERSION_TO_BASE[code]
    measurement_type = UNIT_MEASUREMENT_TYPES[code]
    return UnitDefinition(
        code=code,
        measurement_type=measurement_type,
        system=UNIT_SYSTEMS.get(code, UnitSystem.BOTH),
        conversion_factor=None if factor is NO_LINEAR_FACTOR else factor,
        base_unit=BASE_UNITS[measurement_type],
    )


def units_for_type(measurement_type: Union[MeasurementType, str]) -> List[str]:
    """All unit codes of a measurement type, base unit first"""
    try:
        mt = MeasurementType(measurement_type)
    except ValueError:
        return []
    codes = [code for code, t in UNIT_MEASUREMENT_TYPES.items() if t == mt]
    base = BASE_UNITS.get(mt)
    return sorted(codes, key=lambda c: (c != base, codes.index(c)))

# ==================== SEED CATALOG ====================

_UNIT_NAMES: Dict[str, tuple] = {
    # code: (name, symbol)
    "in": ("Inches", '"'),
    "ft": ("Feet", "'"),
    "yd": ("Yards", "yd"),
    "mi": ("Miles", "mi"),
    "mm": ("Millimeters", "mm"),
    "cm": ("Centimeters", "cm"),
    "m": ("Meters", "m"),
    "km": ("Kilometers", "km"),
    "sq_ft": ("Square Feet", "ft²"),
    "sq_in": ("Square Inches", "in²"),
    "sq_yd": ("Square Yards", "yd²"),
    "sq_m": ("Square Meters", "m²"),
    "sq_km": ("Square Kilometers", "km²"),
    "gal": ("Gallons", "gal"),
    "qt": ("Quarts", "qt"),
    "pt": ("Pints", "pt"),
    "fl_oz": ("Fluid Ounces", "fl oz"),
    "l": ("Liters", "L"),
    "ml": ("Milliliters", "mL"),
    "lb": ("Pounds", "lb"),
    "oz": ("Ounces", "oz"),
    "kg": ("Kilograms", "kg"),
    "g": ("Grams", "g"),
    "ton": ("Tons", "ton"),
    "f": ("Fahrenheit", "°F"),
    "c": ("Celsius", "°C"),
    "s": ("Seconds", "s"),
    "min": ("Minutes", "min"),
    "hr": ("Hours", "h"),
    "day": ("Days", "d"),
    "ea": ("Each", "ea"),
    "pcs": ("Pieces", "pcs"),
    "ct": ("Count", "ct"),
}

_USED_FOR: Dict[MeasurementType, List[str]] = {
    MeasurementType.LENGTH: ["dimension", "thickness", "diameter", "width", "height", "length"],
    MeasurementType.AREA: ["coverage", "area"],
    MeasurementType.VOLUME: ["capacity", "volume"],
    MeasurementType.WEIGHT: ["weight"],
    MeasurementType.TEMPERATURE: ["temperature", "rating"],
    MeasurementType.TIME: ["duration"],
    MeasurementType.COUNT: ["quantity"],
}

_FRACTIONAL_INCHES = [
    ("1/8", 0.125), ("1/4", 0.25), ("3/8", 0.375), ("1/2", 0.5), ("5/8", 0.625),
    ("3/4", 0.75), ("7/8", 0.875), ("1", 1.0), ("1 1/4", 1.25), ("1 1/2", 1.5),
    ("2", 2.0), ("2 1/2", 2.5), ("3", 3.0), ("4", 4.0), ("6", 6.0), ("8", 8.0),
    ("10", 10.0), ("12", 12.0),
]

_WHOLE_STANDARD_VALUES: Dict[str, List[float]] = {
    "ft": [1, 2, 3, 4, 5, 6, 8, 10, 12, 15, 20, 25, 50, 100],
    "mm": [6, 10, 12, 15, 20, 25, 32, 40, 50, 65, 80, 100, 150, 200, 300],
    "cm": [1, 2, 2.5, 5, 7.5, 10, 15, 20, 25, 30, 50, 100],
    "m": [0.5, 1, 1.5, 2, 3, 4, 5, 6, 10, 12],
    "gal": [1, 2, 5, 10, 55],
    "l": [1, 4, 5, 10, 20, 200, 1000],
}


def _fraction_standard_values() -> List[StandardValue]:
    values = []
    for display, normalized in _FRACTIONAL_INCHES:
        aliases = [display, f"{normalized:g}", f'{normalized:g}"']
        if " " in display:
            aliases.append(display.replace(" ", "-"))
        values.append(StandardValue(
            display_value=f'{display}"',
            normalized_value=normalized,
            aliases=aliases
        ))
    return values


def _whole_standard_values(code: str) -> List[StandardValue]:
    return [
        StandardValue(
            display_value=f"{v:g}",
            normalized_value=float(v),
            aliases=[f"{v:g}{code}", f"{float(v)}"]
        )
        for v in _WHOLE_STANDARD_VALUES.get(code, [])
    ]


def default_catalog() -> List[UnitOfMeasure]:
    """
    Seed records for the units_of_measure collection, built from the static
    table so catalog factors always agree with the conversion math.
    """
    records = []
    for code, factor in CONVERSION_TO_BASE.items():
        measurement_type = UNIT_MEASUREMENT_TYPES[code]
        name, symbol = _UNIT_NAMES.get(code, (code, code))
        if code == "in":
            standard_values = _fraction_standard_values()
            display_format = DisplayFormat.FRACTION
        else:
            standard_values = _whole_standard_values(code)
            display_format = DisplayFormat.DECIMAL
        records.append(UnitOfMeasure(
            code=code,
            name=name,
            abbreviation=code,
            symbol=symbol,
            system=UNIT_SYSTEMS.get(code, UnitSystem.BOTH),
            category=measurement_type,
            # Affine units carry factor 1 in the catalog; the engine never reads it
            conversion_factor=1.0 if factor is NO_LINEAR_FACTOR else factor,
            base_unit=BASE_UNITS[measurement_type],
            used_for=_USED_FOR.get(measurement_type, []),
            decimal_places=0 if code in ("mm", "ea", "pcs", "ct") else 2,
            display_format=display_format,
            standard_values=standard_values,
        ))
    return records


def validate_catalog(records: List[UnitOfMeasure]) -> List[str]:
    """
    Check the one-base-unit-per-type invariant.

    Returns:
        List of human readable violations (empty when the catalog is valid)
    """
    problems: List[str] = []
    bases: Dict[MeasurementType, List[str]] = {}
    for record in records:
        if record.base_unit and record.code == record.base_unit:
            bases.setdefault(record.category, []).append(record.code)
            if record.conversion_factor != 1:
                problems.append(
                    f"Base unit {record.code} has conversion factor {record.conversion_factor}, expected 1"
                )
    for measurement_type in {r.category for r in records}:
        found = bases.get(measurement_type, [])
        if measurement_type == MeasurementType.OTHER:
            continue
        if len(found) != 1:
            problems.append(
                f"Measurement type '{measurement_type.value}' has {len(found)} base units: {found}"
            )
    return problems

# ==================== REGISTRY ====================

class UnitRegistry:
    """
    Process-wide, read-only unit registry.

    Conversion lookups always use the static table. The catalog adds display
    metadata and standard values and is optional.
    """

    def __init__(self, catalog: Optional[List[UnitOfMeasure]] = None):
        self._catalog: Dict[str, UnitOfMeasure] = {}
        if catalog:
            self._index(catalog)

    def _index(self, records: List[UnitOfMeasure]) -> None:
        self._catalog = {r.code.lower(): r for r in records}

    @property
    def catalog_loaded(self) -> bool:
        return bool(self._catalog)

    async def load_catalog(self, db) -> int:
        """
        Load active unit catalog records from MongoDB.

        Args:
            db: Motor database instance

        Returns:
            Number of records loaded
        """
        if db is None:
            return 0
        docs = await db.units_of_measure.find({"is_active": True}, {"_id": 0}).to_list(1000)
        records = []
        for doc in docs:
            try:
                records.append(UnitOfMeasure(**doc))
            except ValueError as e:
                logger.warning(f"Skipping invalid unit catalog record {doc.get('code')}: {e}")
        self._index(records)

        problems = validate_catalog(records)
        for problem in problems:
            logger.warning(f"Unit catalog: {problem}")
        logger.info(f"Loaded {len(records)} unit catalog records")
        return len(records)

    def base_unit_for(self, measurement_type) -> Optional[str]:
        return base_unit_for(measurement_type)

    def conversion_factor_for(self, unit: Optional[str]):
        return conversion_factor_for(unit)

    def lookup(self, unit: Optional[str]) -> Optional[UnitDefinition]:
        return lookup_unit(unit)

    def get_unit(self, unit: str) -> UnitOfMeasure:
        """
        Catalog record for a unit.

        Raises:
            UnknownUnitError: If the unit is in neither the catalog nor the table
        """
        code = resolve_unit_code(unit)
        if code and code in self._catalog:
            return self._catalog[code]
        for record in default_catalog():
            if record.code.lower() == code:
                return record
        raise UnknownUnitError(unit)

    def list_units(
        self,
        system: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[UnitOfMeasure]:
        records = list(self._catalog.values()) if self._catalog else default_catalog()
        if system:
            records = [r for r in records if r.system.value == system]
        if category:
            records = [r for r in records if r.category.value == category]
        return sorted(records, key=lambda r: (r.category.value, r.name))

    def standard_values_for(self, unit: str) -> List[StandardValue]:
        try:
            return self.get_unit(unit).standard_values
        except UnknownUnitError:
            return []

    def match_standard_value(self, unit: str, raw: Any) -> Optional[StandardValue]:
        """Find the standard value whose display value or alias equals raw"""
        if raw is None:
            return None
        needle = str(raw).strip().lower()
        for sv in self.standard_values_for(unit):
            candidates = [sv.display_value] + list(sv.aliases)
            if needle in (c.strip().lower() for c in candidates):
                return sv
        return None


default_registry = UnitRegistry()
