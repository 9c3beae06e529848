from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Optional, Set

from ..errors import ItemValidationError
from .catalogue import CatalogueStore, ItemRecord
from .quantity import comparable_quantity, normalize_quantity, same_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionQuery:
    brand: str
    name: str
    quantity: Any = None
    required_features: FrozenSet[str] = frozenset()
    strict: bool = False


@dataclass
class Resolution:
    exact_id: Optional[str]
    suggested_features: Set[str] = field(default_factory=set)
    candidates: List[ItemRecord] = field(default_factory=list)


def feature_tokens(feature: Optional[str]) -> Set[str]:
    if not feature:
        return set()
    return {token.strip().lower() for token in feature.split(",") if token.strip()}


def _normalize_features(features: Optional[Iterable[str]]) -> Set[str]:
    tokens: Set[str] = set()
    for raw in features or ():
        tokens |= feature_tokens(raw)
    return tokens


def validate_query(query: ResolutionQuery) -> None:
    """Raise :class:`ItemValidationError` for queries that cannot be resolved."""
    if not (query.brand or "").strip() or not (query.name or "").strip():
        raise ItemValidationError("brand_and_item_required")
    if query.strict and normalize_quantity(query.quantity) is None:
        raise ItemValidationError("quantity_required_in_strict_mode")


async def resolve_item(store: CatalogueStore, query: ResolutionQuery) -> Resolution:
    """Narrow the catalogue to the item(s) a brand/name/quantity query describes.

    Candidates share the query's brand and name (case-insensitive, exact).
    A supplied quantity filters them by :func:`same_quantity`, so catalogue
    rows with an unparsable quantity stay in; in strict mode both sides must
    parse and match. ``suggested_features`` is collected before the required
    feature filter so clients can offer every tag seen for this product.
    """
    validate_query(query)
    brand = query.brand.strip()
    name = query.name.strip()

    candidates = await store.find_by_exact_brand_name(name, brand)
    total = len(candidates)

    if query.strict:
        candidates = [c for c in candidates if comparable_quantity(query.quantity, c.quantity)]
    elif query.quantity is not None:
        candidates = [c for c in candidates if same_quantity(query.quantity, c.quantity)]

    suggested: Set[str] = set()
    for candidate in candidates:
        suggested |= feature_tokens(candidate.feature)

    required = _normalize_features(query.required_features)
    if required:
        candidates = [c for c in candidates if required <= feature_tokens(c.feature)]

    exact_id = candidates[0].id if len(candidates) == 1 else None
    logger.debug(
        "Resolved %s/%s: %d of %d candidates remain (exact=%s)",
        brand,
        name,
        len(candidates),
        total,
        exact_id,
    )
    return Resolution(exact_id=exact_id, suggested_features=suggested, candidates=candidates)
