# backend/tests/test_unit_normalization.py

"""
Unit tests for the Normalization Engine

Tests cover:
- Linear normalization and round trips for every table unit
- Temperature (affine) conversions
- Unknown-unit leniency and invalid values
- compare_values / is_in_range across units
- Measurement parsing and display formatting
"""

import math

import pytest

from unit_registry import CONVERSION_TO_BASE, NO_LINEAR_FACTOR, UNIT_MEASUREMENT_TYPES
from unit_normalization import (
    NormalizationStatus,
    celsius_to_fahrenheit,
    compare_values,
    convert,
    convert_from_base,
    fahrenheit_to_celsius,
    format_value,
    get_base_unit,
    is_in_range,
    normalize_to_base,
    parse_leading_number,
    parse_measurement,
    resolve_normalization,
)

LINEAR_UNITS = [
    (code, factor, UNIT_MEASUREMENT_TYPES[code].value)
    for code, factor in CONVERSION_TO_BASE.items()
    if factor is not NO_LINEAR_FACTOR
]


class TestLinearNormalization:
    """Test factor-based normalization"""

    @pytest.mark.parametrize("code,factor,measurement_type", LINEAR_UNITS)
    def test_normalize_multiplies_by_factor(self, code, factor, measurement_type):
        for value in (0, 1, 7.5, 1234):
            assert normalize_to_base(value, code, measurement_type) == pytest.approx(value * factor)

    @pytest.mark.parametrize("code,factor,measurement_type", LINEAR_UNITS)
    def test_round_trip(self, code, factor, measurement_type):
        for value in (0.125, 3, 48.75):
            normalized = normalize_to_base(value, code, measurement_type)
            assert convert_from_base(normalized, code, measurement_type) == pytest.approx(value)

    def test_twelve_inches(self):
        assert normalize_to_base(12, "in", "length") == pytest.approx(304.8)
        assert normalize_to_base(12, "IN", "length") == pytest.approx(304.8)
        assert normalize_to_base("12", "inches", "length") == pytest.approx(304.8)

    def test_convert(self):
        assert convert(1, "ft", "in", "length") == pytest.approx(12)
        assert convert(1, "gal", "qt", "volume") == pytest.approx(4, rel=1e-4)
        assert convert(2, "lb", "oz", "weight") == pytest.approx(32, rel=1e-4)
        assert convert(None, "ft", "in", "length") is None

    def test_get_base_unit(self):
        assert get_base_unit("length") == "mm"
        assert get_base_unit("other") is None


class TestTemperature:
    """Test affine temperature conversions"""

    def test_fahrenheit_to_celsius(self):
        assert normalize_to_base(212, "f", "temperature") == pytest.approx(100)
        assert normalize_to_base(32, "°F", "temperature") == pytest.approx(0)
        assert normalize_to_base(-40, "fahrenheit", "temperature") == pytest.approx(-40)

    def test_celsius_passes_through(self):
        assert normalize_to_base(21.5, "c", "temperature") == 21.5

    def test_unknown_temperature_unit_treated_as_celsius(self):
        outcome = resolve_normalization(300, "kelvin", "temperature")
        assert outcome.value == 300
        assert outcome.status == NormalizationStatus.UNRESOLVED

    def test_convert_from_base_to_fahrenheit(self):
        assert convert_from_base(100, "f", "temperature") == pytest.approx(212)
        assert convert_from_base(100, "c", "temperature") == 100

    @pytest.mark.parametrize("f", [-459.67, -40, 0, 32, 98.6, 451, 1000])
    def test_round_trip(self, f):
        assert celsius_to_fahrenheit(fahrenheit_to_celsius(f)) == pytest.approx(f)


class TestLeniency:
    """Test graceful degradation (never raises)"""

    def test_unknown_unit_returns_value_unchanged(self):
        assert normalize_to_base(5, "furlong", "length") == 5
        assert convert_from_base(5, "furlong", "length") == 5

    def test_unknown_unit_outcome_carries_original(self):
        outcome = resolve_normalization(5, "furlong", "length")
        assert outcome.status == NormalizationStatus.UNRESOLVED
        assert outcome.original_value == 5
        assert outcome.value == 5
        assert not outcome.ok

    def test_empty_unit_passes_through(self):
        assert normalize_to_base(5, "", "length") == 5
        assert normalize_to_base(5, None, "length") == 5
        assert resolve_normalization(5, None, "length").status == NormalizationStatus.PASSTHROUGH

    @pytest.mark.parametrize("value", [None, float("nan"), "abc", True, [1]])
    def test_invalid_value_normalizes_to_none(self, value):
        assert normalize_to_base(value, "in", "length") is None
        assert convert_from_base(value, "in", "length") is None
        assert resolve_normalization(value, "in", "length").status == NormalizationStatus.INVALID

    def test_unit_from_other_type_is_not_applied(self):
        assert normalize_to_base(5, "kg", "length") == 5
        assert convert_from_base(5, "kg", "length") == 5

    def test_zero_is_a_value(self):
        assert normalize_to_base(0, "ft", "length") == 0
        assert resolve_normalization(0, "ft", "length").status == NormalizationStatus.NORMALIZED

    def test_outcome_reports_base_unit(self):
        outcome = resolve_normalization(2, "lb", "weight")
        assert outcome.ok
        assert outcome.base_unit == "kg"
        assert outcome.unit == "lb"


class TestComparisons:
    """Test cross-unit comparisons"""

    def test_twelve_inches_equals_304_8_mm(self):
        assert compare_values(12, "in", 304.8, "mm", "length") is True

    def test_one_foot_is_not_one_inch(self):
        assert compare_values(1, "ft", 1, "in", "length") is False

    def test_compare_respects_tolerance(self):
        assert compare_values(304.805, "mm", 12, "in", "length") is True
        assert compare_values(304.9, "mm", 12, "in", "length") is False
        assert compare_values(304.9, "mm", 12, "in", "length", tolerance=0.5) is True

    def test_compare_with_invalid_value(self):
        assert compare_values(None, "in", 12, "in", "length") is False
        assert compare_values(12, "in", math.nan, "in", "length") is False

    def test_in_range_same_unit(self):
        assert is_in_range(11, "in", 10, "in", 14, "in", "length") is True

    def test_in_range_cross_unit(self):
        assert is_in_range(300, "mm", 10, "in", 14, "in", "length") is True
        assert is_in_range(500, "mm", 10, "in", 14, "in", "length") is False

    def test_in_range_open_bounds(self):
        assert is_in_range(1, "mi", 1, "km", None, None, "length") is True
        assert is_in_range(1, "km", None, None, 1, "mi", "length") is True
        assert is_in_range(2, "mi", None, None, 1, "km", "length") is False

    def test_in_range_bound_unit_defaults_to_value_unit(self):
        assert is_in_range(11, "in", 10, None, 14, None, "length") is True
        assert is_in_range(11, "in", 12, None, None, None, "length") is False

    def test_in_range_invalid_values(self):
        assert is_in_range(None, "in", 10, "in", 14, "in", "length") is False
        assert is_in_range(11, "in", "abc", "in", 14, "in", "length") is False


class TestParsing:
    """Test measurement parsing"""

    @pytest.mark.parametrize("raw,expected", [
        (2, 2.0),
        ("2", 2.0),
        ('2"', 2.0),
        ('2.5"', 2.5),
        ("1/2", 0.5),
        ('3/4"', 0.75),
        ('1 1/2"', 1.5),
        ("1-1/2", 1.5),
        ("1 - 3/8", 1.375),
    ])
    def test_parse(self, raw, expected):
        assert parse_measurement(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "-", "abc", "1/0", "2 1/0", '2 x 4"', False])
    def test_unparsable(self, raw):
        assert parse_measurement(raw) is None


class TestFormatting:
    """Test display formatting"""

    def test_trims_trailing_zeros(self):
        assert format_value(12, "in") == "12 in"
        assert format_value(12.5, "in") == "12.5 in"
        assert format_value(0.125, "in", 3) == "0.125 in"

    def test_keeps_integer_zeros(self):
        assert format_value(100, "mm", 0) == "100 mm"
        assert format_value(1000.0, "mm") == "1000 mm"

    def test_rounds_to_decimals(self):
        assert format_value(3.14159, "m", 3) == "3.142 m"
        assert format_value(-0.001, "m") == "0 m"

    def test_missing_value(self):
        assert format_value(None, "in") == ""
        assert format_value(float("nan"), "in") == ""


class TestLeadingNumber:
    """Test leading-number parsing of unit-suffixed text"""

    @pytest.mark.parametrize("raw,expected", [
        ("4 ft", 4.0),
        ("12in", 12.0),
        (" 2.5 mm", 2.5),
        ("-3 c", -3.0),
        (".75in", 0.75),
        (7, 7.0),
    ])
    def test_parse(self, raw, expected):
        assert parse_leading_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "ft 4", "abc", True])
    def test_unparsable(self, raw):
        assert parse_leading_number(raw) is None

    def test_booleans_are_not_quantities(self):
        assert normalize_to_base(True, "in", "length") is None
