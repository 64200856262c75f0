"""
Column type variants and their write-time coercion rules.

A column's stored ``column_type`` string plus its ``validation`` payload map
to exactly one variant:

    text / date            → TextType / DateType      (string, absent → "")
    number / currency      → NumberType               (int|float, absent → None)
    boolean                → BooleanType              (absent → False)
    select                 → SelectSingleType         (scalar, absent → None)
    select + multiple=true → SelectMultiType          (list, absent → [])
    multi_select           → SelectMultiType (stored as select + multiple)

Select values are not checked against the options catalog.
"""

import sys
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, NamedTuple

from contrivance.core.exceptions import ValidationError

WIRE_COLUMN_TYPES = ("text", "number", "currency", "boolean", "date", "select", "multi_select")

_FALSE_STRINGS = frozenset({"", "false", "0", "no", "off"})

# Largest magnitude a JSON number can carry as a double
_MAX_NUMBER = Decimal(sys.float_info.max)


def parse_bool(raw) -> bool:
    """Truthiness with the usual false strings: "", "false", "0", "no", "off" (any case)."""
    if raw is None:
        return False
    if isinstance(raw, str):
        return raw.strip().lower() not in _FALSE_STRINGS
    return bool(raw)


class TypedValue(NamedTuple):
    """A coerced cell value tagged with the variant that produced it."""

    kind: str
    value: Any


@dataclass(frozen=True)
class ColumnType:
    kind = "text"

    def coerce(self, raw, column_name="value"):
        raise NotImplementedError

    def wrap(self, raw, column_name="value") -> TypedValue:
        return TypedValue(self.kind, self.coerce(raw, column_name))

    @staticmethod
    def is_empty(value) -> bool:
        return value is None or value == "" or value == []


@dataclass(frozen=True)
class TextType(ColumnType):
    kind = "text"

    def coerce(self, raw, column_name="value"):
        if raw is None:
            return ""
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (dict, list, tuple)):
            raise ValidationError(
                f"Column '{column_name}' expects text",
                details={column_name: "expected a string"},
            )
        return str(raw)


@dataclass(frozen=True)
class DateType(TextType):
    kind = "date"

    def coerce(self, raw, column_name="value"):
        if isinstance(raw, (date, datetime)):
            return raw.isoformat()
        return super().coerce(raw, column_name)


@dataclass(frozen=True)
class NumberType(ColumnType):
    currency: bool = False

    @property
    def kind(self):
        return "currency" if self.currency else "number"

    def coerce(self, raw, column_name="value"):
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        if isinstance(raw, bool):
            raise ValidationError(
                f"Column '{column_name}' expects a number, got a boolean",
                details={column_name: "expected a number"},
            )
        try:
            number = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(
                f"Column '{column_name}' expects a number, got {raw!r}",
                details={column_name: "expected a number"},
            )
        if not number.is_finite():
            raise ValidationError(
                f"Column '{column_name}' expects a finite number",
                details={column_name: "expected a number"},
            )
        if abs(number) > _MAX_NUMBER:
            raise ValidationError(
                f"Column '{column_name}' number is out of range",
                details={column_name: "out of range"},
            )
        if number == number.to_integral_value():
            return int(number)
        return float(number)


@dataclass(frozen=True)
class BooleanType(ColumnType):
    kind = "boolean"

    def coerce(self, raw, column_name="value"):
        return parse_bool(raw)


@dataclass(frozen=True)
class SelectSingleType(ColumnType):
    options: tuple = ()
    kind = "select"

    def coerce(self, raw, column_name="value"):
        if raw is None or raw == "":
            return None
        if isinstance(raw, (dict, list, tuple)):
            raise ValidationError(
                f"Column '{column_name}' accepts a single option",
                details={column_name: "expected one value"},
            )
        return raw


@dataclass(frozen=True)
class SelectMultiType(ColumnType):
    options: tuple = ()
    kind = "multi_select"

    def coerce(self, raw, column_name="value"):
        if raw is None or raw == "":
            return []
        if isinstance(raw, (list, tuple)):
            return [v for v in raw if v is not None and v != ""]
        if isinstance(raw, dict):
            raise ValidationError(
                f"Column '{column_name}' expects a list of options",
                details={column_name: "expected a list"},
            )
        return [raw]


_SIMPLE_TYPES = {
    "text": TextType(),
    "date": DateType(),
    "number": NumberType(),
    "currency": NumberType(currency=True),
    "boolean": BooleanType(),
}


def column_type_for(column_type: str, validation: dict | None = None) -> ColumnType:
    """Build the variant for a stored column definition.

    Unknown type strings fall back to text so legacy rows stay readable.
    """
    validation = validation or {}
    if column_type in ("select", "multi_select"):
        options = tuple(validation.get("options") or ())
        if column_type == "multi_select" or validation.get("multiple") is True:
            return SelectMultiType(options=options)
        return SelectSingleType(options=options)
    return _SIMPLE_TYPES.get(column_type, _SIMPLE_TYPES["text"])


def normalize_column_type(column_type, validation) -> tuple[str, dict]:
    """Validate a wire ``(type, validation)`` pair and return the stored form.

    ``multi_select`` is stored as ``select`` with ``multiple: true``.

    Raises:
        ValidationError: unknown type or malformed validation payload.
    """
    if column_type not in WIRE_COLUMN_TYPES:
        raise ValidationError(
            f"Unknown column type {column_type!r}",
            details={"column_type": f"must be one of {', '.join(WIRE_COLUMN_TYPES)}"},
        )
    if validation is None:
        validation = {}
    if not isinstance(validation, dict):
        raise ValidationError(
            "validation must be an object",
            details={"validation": "expected an object"},
        )
    validation = dict(validation)

    if column_type in ("select", "multi_select"):
        options = validation.get("options", [])
        if not isinstance(options, list):
            raise ValidationError(
                "validation.options must be a list",
                details={"validation.options": "expected a list"},
            )
        for i, opt in enumerate(options):
            if not isinstance(opt, dict) or "value" not in opt:
                raise ValidationError(
                    f"validation.options[{i}] must be an object with a 'value'",
                    details={f"validation.options[{i}]": "missing value"},
                )
        validation["options"] = options
        if column_type == "multi_select":
            validation["multiple"] = True
            column_type = "select"

    if "multiple" in validation and not isinstance(validation["multiple"], bool):
        raise ValidationError(
            "validation.multiple must be a boolean",
            details={"validation.multiple": "expected true or false"},
        )
    return column_type, validation
