"""
Column type variants: coercion rules and wire-type normalization.
"""

import pytest

from contrivance.core.exceptions import ValidationError
from contrivance.services.column_types import (
    BooleanType,
    DateType,
    NumberType,
    SelectMultiType,
    SelectSingleType,
    TextType,
    column_type_for,
    normalize_column_type,
)


class TestVariantSelection:
    def test_simple_types(self):
        assert isinstance(column_type_for("text"), TextType)
        assert isinstance(column_type_for("date"), DateType)
        assert isinstance(column_type_for("boolean"), BooleanType)
        assert column_type_for("number") == NumberType()
        assert column_type_for("currency") == NumberType(currency=True)

    def test_select_single_vs_multi(self):
        assert isinstance(column_type_for("select", {"options": []}), SelectSingleType)
        assert isinstance(column_type_for("select", {"multiple": True}), SelectMultiType)
        assert isinstance(column_type_for("multi_select"), SelectMultiType)

    def test_unknown_type_reads_as_text(self):
        assert isinstance(column_type_for("legacy_rich_text"), TextType)

    def test_wrap_tags_kind(self):
        tv = column_type_for("currency").wrap("10.50", "Amount")
        assert tv.kind == "currency"
        assert tv.value == 10.5


class TestNumberCoercion:
    def test_integral_string_becomes_int(self):
        value = NumberType().coerce("42", "Amount")
        assert value == 42
        assert isinstance(value, int)

    def test_integral_float_becomes_int(self):
        assert isinstance(NumberType().coerce(3.0, "Amount"), int)

    def test_fraction_stays_float(self):
        assert NumberType().coerce("0.25", "Probability") == 0.25

    def test_empty_is_none(self):
        assert NumberType().coerce(None) is None
        assert NumberType().coerce("  ") is None

    def test_non_numeric_names_column(self):
        with pytest.raises(ValidationError) as exc:
            NumberType().coerce("lots", "Amount")
        assert "Amount" in str(exc.value)
        assert exc.value.details == {"Amount": "expected a number"}

    def test_boolean_rejected(self):
        with pytest.raises(ValidationError):
            NumberType().coerce(True, "Amount")

    def test_infinity_rejected(self):
        with pytest.raises(ValidationError):
            NumberType(currency=True).coerce("Infinity", "Amount")

    @pytest.mark.parametrize("raw", ["1e5000", "-1.5e400", "1e309"])
    def test_out_of_range_magnitude_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            NumberType(currency=True).coerce(raw, "Amount")
        assert exc.value.details == {"Amount": "out of range"}

    def test_large_in_range_exponent_kept(self):
        value = NumberType().coerce("1e20", "Amount")
        assert value == 10 ** 20
        assert isinstance(value, int)

    def test_tiny_exponent_becomes_float(self):
        assert NumberType().coerce("1e-5000", "Probability") == 0.0


class TestBooleanCoercion:
    @pytest.mark.parametrize("raw", ["", "false", "FALSE", "0", "no", "Off"])
    def test_false_strings(self, raw):
        assert BooleanType().coerce(raw) is False

    @pytest.mark.parametrize("raw", ["true", "yes", "1", "anything"])
    def test_true_strings(self, raw):
        assert BooleanType().coerce(raw) is True

    def test_truthiness_for_non_strings(self):
        assert BooleanType().coerce(0) is False
        assert BooleanType().coerce(2) is True
        assert BooleanType().coerce(None) is False


class TestTextAndSelect:
    def test_text_stringifies_scalars(self):
        assert TextType().coerce(12) == "12"
        assert TextType().coerce(None) == ""

    def test_text_rejects_containers(self):
        with pytest.raises(ValidationError):
            TextType().coerce({"a": 1}, "Name")

    def test_select_single_rejects_list(self):
        with pytest.raises(ValidationError):
            SelectSingleType().coerce(["a", "b"], "Stage")

    def test_select_value_not_checked_against_options(self):
        variant = SelectSingleType(options=({"value": "Qualify"},))
        assert variant.coerce("Negotiate") == "Negotiate"

    def test_multi_wraps_scalar(self):
        assert SelectMultiType().coerce("EDR") == ["EDR"]

    def test_multi_drops_empty_entries(self):
        assert SelectMultiType().coerce(["EDR", "", None, "SIEM"]) == ["EDR", "SIEM"]
        assert SelectMultiType().coerce(None) == []


class TestNormalizeColumnType:
    def test_multi_select_alias_stored_as_select_multiple(self):
        column_type, validation = normalize_column_type(
            "multi_select", {"options": [{"value": "a"}]},
        )
        assert column_type == "select"
        assert validation == {"options": [{"value": "a"}], "multiple": True}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            normalize_column_type("richtext", None)

    def test_options_must_carry_value(self):
        with pytest.raises(ValidationError) as exc:
            normalize_column_type("select", {"options": [{"label": "x"}]})
        assert "validation.options[0]" in exc.value.details

    def test_multiple_must_be_boolean(self):
        with pytest.raises(ValidationError):
            normalize_column_type("select", {"options": [], "multiple": "yes"})

    def test_validation_must_be_object(self):
        with pytest.raises(ValidationError):
            normalize_column_type("text", ["nope"])
