"""
Value coercion for rule comparisons.

Rule values usually come from loosely typed sources (JSON documents, form
input, query strings), so comparisons between a resolved value and a rule
operand follow an explicit coercion table rather than Python's strict
equality:

==================  =====================================================
left / right        loose_equals
==================  =====================================================
None / anything     equal only when both are None
bool / bool         native equality
str / str           native equality
number / number     native numeric equality (int, float and Decimal)
mixed scalars       both sides converted with ``to_number``; bool is 0/1,
                    str is trimmed and parsed as a decimal literal or
                    ``Infinity``, ``""`` is 0, anything else (``1_000``,
                    ``nan``, ``inf``) never matches
list / scalar       the list's text form (``to_text``) against the scalar
anything else       Python structural equality
==================  =====================================================

``strict_equals`` (used by the collection operators) never crosses type
families: bools are not numbers and text is never parsed.

Ordering (``ordered``) treats None as unordered, compares two strings
lexicographically, converts both sides to numbers whenever either side is a
number or bool, and otherwise falls back to native ordering with
``TypeError`` mapped to ``False``.
"""

import math
import operator
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

Number = Union[int, float, Decimal]

TEXT_SEPARATOR = ","

# Decimal literals with optional sign and exponent, or a signed "Infinity"
_RE_NUMERIC_TEXT = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity", re.ASCII)

_ORDERING = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def is_sequence(value: Any) -> bool:
    """Ordered sequences the collection operators accept."""
    return isinstance(value, (list, tuple))


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool)) or is_number(value)


def is_truthy(value: Any) -> bool:
    """Python truthiness, except that NaN counts as falsy."""
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, Decimal) and value.is_nan():
        return False
    return bool(value)


def to_number(value: Any) -> Optional[Number]:
    """Convert a scalar to a number, or None when it has no numeric reading."""
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if not _RE_NUMERIC_TEXT.fullmatch(text):
            return None
        return float(text)
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality under the coercion table."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if is_number(left) and is_number(right):
        return _numbers_equal(left, right)
    if _is_scalar(left) and _is_scalar(right):
        left_number, right_number = to_number(left), to_number(right)
        if left_number is None or right_number is None:
            return False
        return _numbers_equal(left_number, right_number)
    if is_sequence(left) and _is_scalar(right):
        return loose_equals(to_text(left), right)
    if is_sequence(right) and _is_scalar(left):
        return loose_equals(left, to_text(right))
    return _native_equals(left, right)


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if is_number(left) or is_number(right):
        return is_number(left) and is_number(right) and _numbers_equal(left, right)
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    return _native_equals(left, right)


def contains_strict(values: Any, target: Any) -> bool:
    """Whether a sequence holds an element strictly equal to ``target``."""
    return any(strict_equals(item, target) for item in values)


def ordered(left: Any, right: Any, op: str) -> bool:
    """Ordering comparison ``left <op> right`` for op in gt/gte/lt/lte."""
    compare = _ORDERING[op]
    if left is None or right is None:
        return False
    if isinstance(left, str) and isinstance(right, str):
        return compare(left, right)
    if is_number(left) or is_number(right) or isinstance(left, bool) or isinstance(right, bool):
        left_number, right_number = to_number(left), to_number(right)
        if left_number is None or right_number is None:
            return False
        try:
            return bool(compare(left_number, right_number))
        except (TypeError, InvalidOperation):
            return False
    try:
        return bool(compare(left, right))
    except TypeError:
        return False


def boolean_reading(value: Any, target: Any) -> Optional[bool]:
    """Alternate boolean reading of a text target compared to a bool value."""
    if not isinstance(value, bool) or not isinstance(target, str):
        return None
    lowered = target.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def to_text(value: Any) -> str:
    """
    Stringify a value for the text operators.

    None becomes the empty string, strings pass through, sequences are
    stringified element-wise and joined with ``TEXT_SEPARATOR`` (None
    elements render empty), and scalars use their canonical text form.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if is_sequence(value):
        return TEXT_SEPARATOR.join("" if item is None else to_text(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def format_value(value: Any) -> str:
    """Render a value for the evaluation trace."""
    if value is None:
        return "null"
    return to_text(value)


def _numbers_equal(left: Number, right: Number) -> bool:
    try:
        return left == right
    except InvalidOperation:
        return False


def _native_equals(left: Any, right: Any) -> bool:
    try:
        return bool(left == right)
    except (TypeError, ValueError):
        return False
