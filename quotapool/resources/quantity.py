"""Exact resource quantities with Kubernetes-style suffixes.

Quantities are backed by :class:`decimal.Decimal` evaluated in a wide
context, so parsing, addition, subtraction and comparison never round.
"""

import re
from decimal import Decimal, Context, InvalidOperation
from enum import Enum
from functools import total_ordering
from typing import Any, Optional, Tuple, Union


# Wide enough that sums of parsed quantities (max exponent 18, min -9) stay exact
_CONTEXT = Context(prec=100)

_BINARY_SUFFIXES = (
    ("Ei", Decimal(2 ** 60)),
    ("Pi", Decimal(2 ** 50)),
    ("Ti", Decimal(2 ** 40)),
    ("Gi", Decimal(2 ** 30)),
    ("Mi", Decimal(2 ** 20)),
    ("Ki", Decimal(2 ** 10)),
)

_DECIMAL_SUFFIXES = (
    ("E", Decimal("1e18")),
    ("P", Decimal("1e15")),
    ("T", Decimal("1e12")),
    ("G", Decimal("1e9")),
    ("M", Decimal("1e6")),
    ("k", Decimal("1e3")),
    ("", Decimal(1)),
    ("m", Decimal("1e-3")),
    ("u", Decimal("1e-6")),
    ("n", Decimal("1e-9")),
)

_EXPONENTS = (18, 15, 12, 9, 6, 3, 0, -3, -6, -9)

_SCALES = dict(_BINARY_SUFFIXES + _DECIMAL_SUFFIXES)

_QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:\d+(?:\.\d*)?|\.\d+))"
    r"(?P<suffix>[eE][+-]?\d+|Ki|Mi|Gi|Ti|Pi|Ei|n|u|m|k|M|G|T|P|E)?$"
)

QuantityLike = Union["Quantity", str, int, Decimal]


class QuantityParseError(ValueError):
    """Raised when a quantity string cannot be parsed."""
    pass


class QuantityFormat(str, Enum):
    """Notation a quantity is rendered in."""
    BINARY_SI = "BinarySI"
    DECIMAL_SI = "DecimalSI"
    DECIMAL_EXPONENT = "DecimalExponent"


def _is_integral(value: Decimal) -> bool:
    return value == value.to_integral_value()


def _plain(value: Decimal) -> str:
    if _is_integral(value):
        return str(int(value))
    return format(value.normalize(_CONTEXT), "f")


def _parse_string(text: str) -> Tuple[Decimal, QuantityFormat]:
    match = _QUANTITY_RE.match(text.strip())
    if not match:
        raise QuantityParseError(f"invalid quantity: {text!r}")

    try:
        number = Decimal(match.group("number"))
    except InvalidOperation as e:
        raise QuantityParseError(f"invalid quantity: {text!r}") from e

    suffix = match.group("suffix") or ""
    if suffix[:1] in ("e", "E") and len(suffix) > 1:
        return number.scaleb(int(suffix[1:]), _CONTEXT), QuantityFormat.DECIMAL_EXPONENT

    value = _CONTEXT.multiply(number, _SCALES[suffix])
    if suffix.endswith("i"):
        return value, QuantityFormat.BINARY_SI
    return value, QuantityFormat.DECIMAL_SI


@total_ordering
class Quantity:
    """Immutable, arbitrary-precision amount of a resource."""

    __slots__ = ("_value", "_format")

    def __init__(
        self,
        value: Union[int, Decimal] = 0,
        format: QuantityFormat = QuantityFormat.DECIMAL_SI
    ):
        if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
            raise TypeError(f"Quantity value must be int or Decimal, got {type(value).__name__}")
        if isinstance(value, Decimal) and not value.is_finite():
            raise QuantityParseError(f"invalid quantity: {value}")
        self._value = Decimal(value)
        self._format = QuantityFormat(format)

    @classmethod
    def parse(cls, value: Any) -> "Quantity":
        """Parse a string, integer, Decimal or Quantity into a Quantity."""
        if isinstance(value, Quantity):
            return value
        if isinstance(value, bool):
            raise QuantityParseError(f"invalid quantity: {value!r}")
        if isinstance(value, (int, Decimal)):
            return cls(value)
        if isinstance(value, float):
            # YAML turns "0.5" into a float; its shortest repr is the literal
            return cls.parse(repr(value))
        if isinstance(value, str):
            number, fmt = _parse_string(value)
            return cls(number, fmt)
        raise QuantityParseError(f"invalid quantity: {value!r}")

    @classmethod
    def zero(cls) -> "Quantity":
        return cls(0)

    @property
    def value(self) -> Decimal:
        return self._value

    @property
    def format(self) -> QuantityFormat:
        return self._format

    def is_zero(self) -> bool:
        return self._value == 0

    def sign(self) -> int:
        if self._value > 0:
            return 1
        if self._value < 0:
            return -1
        return 0

    def cmp(self, other: QuantityLike) -> int:
        """Return -1, 0 or 1 comparing this quantity with ``other``."""
        other_value = Quantity.parse(other)._value
        if self._value < other_value:
            return -1
        if self._value > other_value:
            return 1
        return 0

    def as_approximate_float(self) -> float:
        """Lossy conversion, only meant for metrics and display."""
        return float(self._value)

    def _result_format(self, other: "Quantity") -> QuantityFormat:
        return other._format if self.is_zero() else self._format

    def __add__(self, other: QuantityLike) -> "Quantity":
        try:
            other = Quantity.parse(other)
        except QuantityParseError:
            return NotImplemented
        return Quantity(_CONTEXT.add(self._value, other._value), self._result_format(other))

    def __radd__(self, other: QuantityLike) -> "Quantity":
        # Lets sum() start from the integer 0
        return Quantity.parse(other).__add__(self)

    def __sub__(self, other: QuantityLike) -> "Quantity":
        try:
            other = Quantity.parse(other)
        except QuantityParseError:
            return NotImplemented
        return Quantity(_CONTEXT.subtract(self._value, other._value), self._result_format(other))

    def __neg__(self) -> "Quantity":
        return Quantity(-self._value, self._format)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Quantity):
            return self._value == other._value
        if isinstance(other, (str, int, Decimal)) and not isinstance(other, bool):
            try:
                return self._value == Quantity.parse(other)._value
            except QuantityParseError:
                return False
        return NotImplemented

    def __lt__(self, other: QuantityLike) -> bool:
        try:
            return self.cmp(other) < 0
        except QuantityParseError:
            return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __copy__(self) -> "Quantity":
        return self

    def __deepcopy__(self, memo: dict) -> "Quantity":
        return self

    def __bool__(self) -> bool:
        return not self.is_zero()

    def __str__(self) -> str:
        if self._value == 0:
            return "0"
        if self._format == QuantityFormat.BINARY_SI:
            rendered = self._render_binary()
            if rendered is not None:
                return rendered
        if self._format == QuantityFormat.DECIMAL_EXPONENT:
            return self._render_exponent()
        return self._render_decimal()

    def __repr__(self) -> str:
        return f"Quantity('{self}')"

    def _render_binary(self) -> Optional[str]:
        if not _is_integral(self._value):
            return None
        for suffix, scale in _BINARY_SUFFIXES:
            mantissa = _CONTEXT.divide(self._value, scale)
            if _is_integral(mantissa):
                return f"{int(mantissa)}{suffix}"
        return str(int(self._value))

    def _render_decimal(self) -> str:
        for suffix, scale in _DECIMAL_SUFFIXES:
            mantissa = _CONTEXT.divide(self._value, scale)
            if _is_integral(mantissa):
                return f"{int(mantissa)}{suffix}"
        return _plain(self._value)

    def _render_exponent(self) -> str:
        for exponent in _EXPONENTS:
            mantissa = self._value.scaleb(-exponent, _CONTEXT)
            if _is_integral(mantissa):
                if exponent == 0:
                    return str(int(mantissa))
                return f"{int(mantissa)}e{exponent}"
        return _plain(self._value)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> Any:
        from pydantic_core import core_schema

        return core_schema.no_info_plain_validator_function(
            cls.parse,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


def parse_quantity(value: QuantityLike) -> Quantity:
    """Module-level shortcut for :meth:`Quantity.parse`."""
    return Quantity.parse(value)
