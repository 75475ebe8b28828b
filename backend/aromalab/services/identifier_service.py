# Overview: Sequential codes for materials and formulas, order numbers, display formatting.

"""
Identifier Service

CODES:
- Materials and formulas carry a bare sequential number stored as a string
  ("1", "2", ...). The display prefix (MP / F) is never stored.
- Next code = max(existing codes) + 1, so gaps left by deletions are never
  reused and a code is never handed out twice.

ORDER NUMBERS:
- "OF" + 4-digit zero-padded sequence, also max-based. Counting rows would
  hand out a duplicate number after a deletion.
"""

import re

from ..extensions import db
from ..models import RawMaterial, Formula, ManufacturingOrder


MATERIAL_CODE_PREFIX = "MP"
FORMULA_CODE_PREFIX = "F"
ORDER_NUMBER_PREFIX = "OF"
ORDER_NUMBER_WIDTH = 4

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_code(value) -> int:
    """
    Parse a stored code as an integer.

    Leading digits are honored ("12abc" -> 12); anything else parses as 0.
    """
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _LEADING_INT.match(str(value))
    if not match:
        return 0
    return int(match.group(1))


def _next_code(codes) -> str:
    parsed = [parse_code(c) for c in codes]
    if not parsed:
        return "1"
    return str(max(parsed) + 1)


def next_material_code() -> str:
    codes = [row.code for row in db.session.query(RawMaterial.code).all()]
    return _next_code(codes)


def next_formula_code() -> str:
    codes = [row.code for row in db.session.query(Formula.code).all()]
    return _next_code(codes)


def parse_order_number(order_number: str | None) -> int:
    """"OF0042" -> 42. Unparsable numbers count as 0."""
    if not order_number:
        return 0
    value = order_number.strip()
    if value.upper().startswith(ORDER_NUMBER_PREFIX):
        value = value[len(ORDER_NUMBER_PREFIX):]
    return parse_code(value)


def format_order_number(sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{sequence:0{ORDER_NUMBER_WIDTH}d}"


def next_order_number() -> str:
    numbers = [
        parse_order_number(row.order_number)
        for row in db.session.query(ManufacturingOrder.order_number).all()
    ]
    return format_order_number(max(numbers, default=0) + 1)


def format_material_code(code: str) -> str:
    return f"{MATERIAL_CODE_PREFIX}{code}"


def format_formula_code(code: str) -> str:
    return f"{FORMULA_CODE_PREFIX}{code}"
