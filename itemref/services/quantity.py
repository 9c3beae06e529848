"""Quantity canonicalisation and tolerance-based equivalence.

Free-text quantities such as ``"545ML"``, ``"0.545 L"`` or ``"6 pcs"`` are
reduced to one of four base units so that the same physical pack size
compares equal regardless of how a client typed it. Nothing here touches
storage; the catalogue keeps the original text and we recompute on every
comparison.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


class BaseUnit(str, Enum):
    MILLILITER = "ml"
    GRAM = "g"
    PIECE = "piece"
    PACK = "pack"


@dataclass(frozen=True)
class CanonicalQuantity:
    value: float
    unit: BaseUnit


_QUANTITY_RE = re.compile(r"^(\d+(?:\.\d+)?)([a-z]+)$")

# alias -> (base unit, multiplier)
_UNIT_ALIASES: dict[str, tuple[BaseUnit, float]] = {
    "ml": (BaseUnit.MILLILITER, 1.0),
    "l": (BaseUnit.MILLILITER, 1000.0),
    "lt": (BaseUnit.MILLILITER, 1000.0),
    "liter": (BaseUnit.MILLILITER, 1000.0),
    "litre": (BaseUnit.MILLILITER, 1000.0),
    "g": (BaseUnit.GRAM, 1.0),
    "kg": (BaseUnit.GRAM, 1000.0),
    "pc": (BaseUnit.PIECE, 1.0),
    "pcs": (BaseUnit.PIECE, 1.0),
    "piece": (BaseUnit.PIECE, 1.0),
    "pieces": (BaseUnit.PIECE, 1.0),
    "pack": (BaseUnit.PACK, 1.0),
    "packs": (BaseUnit.PACK, 1.0),
}

COUNT_TOLERANCE = 0.5
RELATIVE_TOLERANCE = 0.02
ABSOLUTE_TOLERANCE_FLOOR = 1.0


def _plain_number(value: Any) -> Any:
    # floats repr as "1e-05"; spell them out so the string pattern applies
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format(Decimal(str(value)), "f")
    return value


def _structured_parts(raw: Any) -> tuple[Any, Any] | None:
    if isinstance(raw, Mapping):
        if "value" in raw and "unit" in raw:
            return raw["value"], raw["unit"]
        return None
    if hasattr(raw, "value") and hasattr(raw, "unit"):
        return raw.value, raw.unit
    return None


def normalize_quantity(raw: Any) -> CanonicalQuantity | None:
    """Parse ``raw`` into a :class:`CanonicalQuantity`.

    Accepts a string (``"1.5L"``) or anything carrying ``value`` and ``unit``
    (a mapping, a pydantic model, a ``CanonicalQuantity``). Structured input
    is serialised back to ``"<value><unit>"`` and parsed like a string so the
    alias rules apply the same way to both shapes. Returns ``None`` when the
    input cannot be understood; that is not an error.
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        parts = _structured_parts(raw)
        if parts is None:
            return None
        value, unit = parts
        if isinstance(unit, Enum):
            unit = unit.value
        raw = f"{_plain_number(value)}{unit}"

    compact = "".join(raw.split()).lower()
    match = _QUANTITY_RE.match(compact)
    if not match:
        return None
    number, unit_token = match.groups()
    alias = _UNIT_ALIASES.get(unit_token)
    if alias is None:
        return None
    base_unit, factor = alias
    return CanonicalQuantity(value=float(number) * factor, unit=base_unit)


def _equivalent(a: CanonicalQuantity, b: CanonicalQuantity) -> bool:
    if a.unit is not b.unit:
        return False
    diff = abs(a.value - b.value)
    if a.unit in (BaseUnit.PIECE, BaseUnit.PACK):
        return diff < COUNT_TOLERANCE
    return diff <= max(ABSOLUTE_TOLERANCE_FLOOR, RELATIVE_TOLERANCE * max(a.value, b.value))


def same_quantity(a_raw: Any, b_raw: Any) -> bool:
    """Whether two quantities denote the same pack size.

    Unknown quantity passes filter: if either side cannot be normalised the
    answer is ``True``, so a missing or garbled quantity never excludes a
    candidate. Use :func:`comparable_quantity` when that is not acceptable.
    """
    a = normalize_quantity(a_raw)
    b = normalize_quantity(b_raw)
    if a is None or b is None:
        return True
    return _equivalent(a, b)


def comparable_quantity(a_raw: Any, b_raw: Any) -> bool:
    """Strict variant of :func:`same_quantity`: both sides must parse."""
    a = normalize_quantity(a_raw)
    b = normalize_quantity(b_raw)
    if a is None or b is None:
        return False
    return _equivalent(a, b)
