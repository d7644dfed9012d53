"""
Tests for typed value parsing and serialization.
"""

import math

import pytest

from kvconfig.core.domain.values import (
    parse_boolean, parse_double, parse_float, parse_integer, parse_long, serialize_value
)


class TestParseBoolean:

    @pytest.mark.parametrize("text", ["true", "TRUE", "True", " true "])
    def test_true(self, text: str) -> None:
        assert parse_boolean(text) is True

    @pytest.mark.parametrize("text", ["false", "FALSE", "False"])
    def test_false(self, text: str) -> None:
        assert parse_boolean(text) is False

    @pytest.mark.parametrize("text", ["yes", "1", "", "on", "truthy"])
    def test_other_text_is_absent(self, text: str) -> None:
        assert parse_boolean(text) is None

    def test_absent(self) -> None:
        assert parse_boolean(None) is None


class TestParseIntegers:

    def test_integer(self) -> None:
        assert parse_integer("42") == 42
        assert parse_integer("-7") == -7
        assert parse_integer("+7") == 7

    def test_integer_bounds(self) -> None:
        assert parse_integer("2147483647") == 2147483647
        assert parse_integer("2147483648") is None
        assert parse_integer("-2147483648") == -2147483648

    def test_long_bounds(self) -> None:
        assert parse_long("2147483648") == 2147483648
        assert parse_long("9223372036854775807") == 9223372036854775807
        assert parse_long("9223372036854775808") is None

    @pytest.mark.parametrize("text", ["1.5", "abc", "", "1_000", "0x10"])
    def test_malformed(self, text: str) -> None:
        assert parse_integer(text) is None
        assert parse_long(text) is None

    def test_absent(self) -> None:
        assert parse_integer(None) is None
        assert parse_long(None) is None


class TestParseFloatingPoint:

    def test_double(self) -> None:
        assert parse_double("3.14") == 3.14
        assert parse_double("1e3") == 1000.0
        assert parse_double("10") == 10.0

    def test_double_special_values(self) -> None:
        assert math.isnan(parse_double("NaN"))
        assert parse_double("Infinity") == math.inf

    @pytest.mark.parametrize("text", ["abc", "", "1_0", "1.2.3"])
    def test_malformed_double(self, text: str) -> None:
        assert parse_double(text) is None

    def test_float_within_range(self) -> None:
        assert parse_float("1.5") == 1.5

    def test_float_beyond_single_precision(self) -> None:
        assert parse_float("1e39") is None
        assert parse_double("1e39") == 1e39

    def test_absent(self) -> None:
        assert parse_double(None) is None
        assert parse_float(None) is None


class TestSerializeValue:

    def test_booleans_are_lowercase(self) -> None:
        assert serialize_value(True) == "true"
        assert serialize_value(False) == "false"

    def test_numbers_and_strings(self) -> None:
        assert serialize_value(10) == "10"
        assert serialize_value(2.5) == "2.5"
        assert serialize_value("text") == "text"

    def test_serialized_values_parse_back(self) -> None:
        assert parse_boolean(serialize_value(True)) is True
        assert parse_integer(serialize_value(123)) == 123
        assert parse_double(serialize_value(0.25)) == 0.25

    def test_unsupported_type(self) -> None:
        with pytest.raises(TypeError):
            serialize_value([1, 2])  # type: ignore[arg-type]
