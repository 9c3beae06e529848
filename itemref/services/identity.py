from __future__ import annotations

import secrets
from typing import Any, NamedTuple, Optional

DEFAULT_ID_BYTES = 6


class IdentityKey(NamedTuple):
    name: str
    brand: str
    quantity: str
    feature: str


def _key_part(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def identity_key(
    name: Any,
    brand: Any,
    quantity: Optional[Any] = None,
    feature: Optional[Any] = None,
) -> IdentityKey:
    """Case/whitespace-insensitive key used to spot duplicate catalogue rows.

    NULL and empty string collapse to the same value, so ``feature=None`` and
    ``feature="  "`` describe the same entry.
    """
    return IdentityKey(
        name=_key_part(name),
        brand=_key_part(brand),
        quantity=_key_part(quantity),
        feature=_key_part(feature),
    )


def generate_item_id(nbytes: int = DEFAULT_ID_BYTES) -> str:
    """Short URL-safe id (8 chars for 6 bytes).

    Not unique by construction; the item table's primary key is the
    uniqueness check and callers retry on collision.
    """
    return secrets.token_urlsafe(nbytes)
