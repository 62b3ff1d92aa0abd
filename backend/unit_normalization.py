# backend/unit_normalization.py

"""
Normalization Engine - Pure unit conversion within a measurement type

This engine is responsible for:
- Normalizing a value to the base unit of its measurement type
- Converting a normalized value back to any unit of that type
- Comparing values expressed in different units (within tolerance)
- Range membership across units
- Presentational formatting

LENIENCY (ENFORCED):
- Unknown units are NOT errors: the value passes through unconverted so a
  filter degrades to exact-match instead of breaking the whole search
- Missing / non-numeric values normalize to None; comparisons on None are False
- Nothing in this module raises on bad input
"""

from enum import Enum
from fractions import Fraction
from typing import Optional, Any, Union
from pydantic import BaseModel
import math
import re
import logging

from unit_registry import (
    MeasurementType,
    NO_LINEAR_FACTOR,
    base_unit_for,
    conversion_factor_for,
    measurement_type_for_unit,
    resolve_unit_code,
)

logger = logging.getLogger(__name__)

# Absolute epsilon for float comparisons on normalized values (all types)
MATCH_TOLERANCE = 0.01

Number = Union[int, float]

# ==================== VALUE PARSING ====================

_MIXED_NUMBER = re.compile(r"^(\d+)\s*[- ]\s*(\d+)\s*/\s*(\d+)$")
_SIMPLE_FRACTION = re.compile(r"^(\d+)\s*/\s*(\d+)$")
_DECIMAL = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)$")
_LEADING_NUMBER = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)")


def coerce_number(value: Any) -> Optional[float]:
    """
    Numeric value of an int, float or numeric string.

    Returns:
        float, or None for None / NaN / booleans / non-numeric input
    """
    # Booleans are flags, not quantities (True is not 1 inch)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def parse_measurement(raw: Any) -> Optional[float]:
    """
    Parse a measurement as typed by a user or stored by an old import.

    Supports: 2, "2", "2.5\"", "1/2\"", "1 1/2\"", "1-1/2"

    Returns:
        float, or None if the value cannot be read as a number
    """
    number = coerce_number(raw)
    if number is not None or not isinstance(raw, str):
        return number

    text = raw.replace('"', "").replace("”", "").strip()
    if not text or text == "-":
        return None

    match = _MIXED_NUMBER.match(text)
    if match:
        whole, num, den = (int(g) for g in match.groups())
        if den == 0:
            return None
        return float(whole + Fraction(num, den))

    match = _SIMPLE_FRACTION.match(text)
    if match:
        num, den = (int(g) for g in match.groups())
        if den == 0:
            return None
        return float(Fraction(num, den))

    if _DECIMAL.match(text):
        return float(text)

    return None


def parse_leading_number(raw: Any) -> Optional[float]:
    """
    Leading number of a unit-suffixed string: "4 ft" -> 4, "12in" -> 12.

    Returns:
        float, or None when raw does not start with a number
    """
    number = coerce_number(raw)
    if number is not None or not isinstance(raw, str):
        return number
    match = _LEADING_NUMBER.match(raw.strip())
    if not match:
        return None
    return float(match.group(0))

# ==================== TEMPERATURE ====================

def fahrenheit_to_celsius(f: Number) -> float:
    return (f - 32) * 5 / 9


def celsius_to_fahrenheit(c: Number) -> float:
    return (c * 9 / 5) + 32

# ==================== RESULT TYPE ====================

class NormalizationStatus(str, Enum):
    """Outcome of a normalization attempt"""
    NORMALIZED = "NORMALIZED"    # converted with a known factor / formula
    PASSTHROUGH = "PASSTHROUGH"  # no unit given, value already in base
    UNRESOLVED = "UNRESOLVED"    # unknown unit, original value carried for fallback
    INVALID = "INVALID"          # missing or non-numeric value


class NormalizationOutcome(BaseModel):
    """Normalized value, or the reason it could not be normalized"""
    status: NormalizationStatus
    value: Optional[float] = None
    original_value: Any = None
    unit: Optional[str] = None
    base_unit: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (NormalizationStatus.NORMALIZED, NormalizationStatus.PASSTHROUGH)


def _measurement_type(measurement_type: Any) -> Optional[MeasurementType]:
    try:
        return MeasurementType(measurement_type)
    except ValueError:
        return None


def resolve_normalization(
    value: Any,
    unit: Optional[str],
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH
) -> NormalizationOutcome:
    """
    Normalize a value to the base unit of its measurement type.

    Args:
        value: Numeric value (int, float or numeric string)
        unit: Unit code or alias (e.g. 'in', 'mm', 'inches')
        measurement_type: Measurement type of the unit

    Returns:
        NormalizationOutcome (never raises)
    """
    number = coerce_number(value)
    mt = _measurement_type(measurement_type)
    base = base_unit_for(mt) if mt else None

    if number is None:
        return NormalizationOutcome(
            status=NormalizationStatus.INVALID,
            original_value=value,
            unit=unit,
            base_unit=base
        )

    code = resolve_unit_code(unit)
    if not code:
        return NormalizationOutcome(
            status=NormalizationStatus.PASSTHROUGH,
            value=number,
            original_value=value,
            base_unit=base
        )

    if mt == MeasurementType.TEMPERATURE:
        if code == "f":
            converted, status = fahrenheit_to_celsius(number), NormalizationStatus.NORMALIZED
        elif code == "c":
            converted, status = number, NormalizationStatus.NORMALIZED
        else:
            # Anything else is taken as already Celsius
            converted, status = number, NormalizationStatus.UNRESOLVED
        return NormalizationOutcome(
            status=status,
            value=converted,
            original_value=value,
            unit=code,
            base_unit=base
        )

    factor = conversion_factor_for(code)
    unit_type = measurement_type_for_unit(code)
    cross_type = (
        mt is not None
        and mt != MeasurementType.OTHER
        and unit_type is not None
        and unit_type != mt
    )
    if factor is None or factor is NO_LINEAR_FACTOR or cross_type:
        logger.debug(f"No conversion factor for unit '{unit}' ({measurement_type}), passing value through")
        return NormalizationOutcome(
            status=NormalizationStatus.UNRESOLVED,
            value=number,
            original_value=value,
            unit=code,
            base_unit=base
        )

    return NormalizationOutcome(
        status=NormalizationStatus.NORMALIZED,
        value=number * factor,
        original_value=value,
        unit=code,
        base_unit=base
    )

# ==================== CONVERSIONS ====================

def normalize_to_base(
    value: Any,
    unit: Optional[str],
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH
) -> Optional[float]:
    """
    Normalize a value to the base unit.

    Returns:
        Normalized value, the unchanged value for an empty or unknown unit,
        or None if value is missing / NaN
    """
    return resolve_normalization(value, unit, measurement_type).value


def convert_from_base(
    normalized_value: Any,
    target_unit: Optional[str],
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH
) -> Optional[float]:
    """
    Convert a base-unit value back to target_unit.

    Returns:
        Value in target_unit, the unchanged value for an empty or unknown unit
        (or a zero factor), or None if the value is missing / NaN
    """
    number = coerce_number(normalized_value)
    if number is None:
        return None

    code = resolve_unit_code(target_unit)
    if not code:
        return number

    mt = _measurement_type(measurement_type)
    if mt == MeasurementType.TEMPERATURE:
        if code == "f":
            return celsius_to_fahrenheit(number)
        return number

    factor = conversion_factor_for(code)
    unit_type = measurement_type_for_unit(code)
    if mt not in (None, MeasurementType.OTHER) and unit_type not in (None, mt):
        return number
    if factor is None or factor is NO_LINEAR_FACTOR or factor == 0:
        return number

    return number / factor


def convert(
    value: Any,
    from_unit: Optional[str],
    to_unit: Optional[str],
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH
) -> Optional[float]:
    """Convert value from one unit to another of the same measurement type"""
    normalized = normalize_to_base(value, from_unit, measurement_type)
    if normalized is None:
        return None
    return convert_from_base(normalized, to_unit, measurement_type)


def compare_values(
    value1: Any,
    unit1: Optional[str],
    value2: Any,
    unit2: Optional[str],
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH,
    tolerance: float = MATCH_TOLERANCE
) -> bool:
    """True if both values normalize and differ by less than tolerance"""
    norm1 = normalize_to_base(value1, unit1, measurement_type)
    norm2 = normalize_to_base(value2, unit2, measurement_type)

    if norm1 is None or norm2 is None:
        return False

    return abs(norm1 - norm2) < tolerance


def is_in_range(
    value: Any,
    value_unit: Optional[str],
    min_value: Any = None,
    min_unit: Optional[str] = None,
    max_value: Any = None,
    max_unit: Optional[str] = None,
    measurement_type: Union[MeasurementType, str] = MeasurementType.LENGTH
) -> bool:
    """
    Check whether value lies within [min, max], each side in its own unit.

    Bound units default to value_unit. A missing bound is unconstrained;
    a bound that is present but not numeric fails the check.
    """
    norm_value = normalize_to_base(value, value_unit, measurement_type)
    if norm_value is None:
        return False

    if min_value is not None:
        norm_min = normalize_to_base(min_value, min_unit or value_unit, measurement_type)
        if norm_min is None or norm_value < norm_min:
            return False

    if max_value is not None:
        norm_max = normalize_to_base(max_value, max_unit or value_unit, measurement_type)
        if norm_max is None or norm_value > norm_max:
            return False

    return True


def get_base_unit(measurement_type: Union[MeasurementType, str]) -> Optional[str]:
    return base_unit_for(measurement_type)

# ==================== FORMATTING ====================

def format_value(value: Any, unit: Optional[str], decimals: int = 2) -> str:
    """
    Format a value for display, e.g. format_value(12, 'in') -> '12 in'.

    Trailing zeros of the fractional part are trimmed; integer digits are kept.
    """
    number = coerce_number(value)
    if number is None:
        return ""

    formatted = f"{number:.{max(decimals, 0)}f}"
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    if formatted == "-0":
        formatted = "0"
    return f"{formatted} {unit}" if unit else formatted
