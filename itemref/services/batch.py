"""Transactional find-or-create for batches of loosely described items.

Every row in a batch is handled inside one storage transaction:

* rows missing a name or brand get ``ok=False`` and the batch carries on;
* rows matching an existing item on the normalised identity key return that
  item's id with ``existed=True``;
* anything else is inserted under a freshly generated id. Id collisions are
  retried up to ``MAX_ID_ATTEMPTS`` times; running out re-raises the store's
  error, which rolls back every row of the batch.

Concurrent batches are not serialised against each other. Two requests that
both miss the lookup for the same new product will insert two rows with
different ids; only a unique constraint on the normalised tuple would
prevent that.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

from ..errors import DuplicateItemIdError
from .catalogue import CatalogueStore
from .identity import generate_item_id, identity_key

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 3


@dataclass
class BatchRowResult:
    ok: bool
    id: Optional[str] = None
    existed: Optional[bool] = None
    error: Optional[str] = None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


async def _insert_with_retry(
    store: CatalogueStore,
    new_id: Callable[[], str],
    *,
    name: str,
    brand: str,
    quantity: Optional[str],
    feature: Optional[str],
) -> str:
    attempt = 1
    while True:
        item_id = new_id()
        try:
            await store.insert_item(item_id, name, brand, quantity, feature)
            return item_id
        except DuplicateItemIdError:
            if attempt >= MAX_ID_ATTEMPTS:
                raise
            logger.warning(
                "Generated item id %s already taken (attempt %d/%d); regenerating",
                item_id,
                attempt,
                MAX_ID_ATTEMPTS,
            )
            attempt += 1


async def find_or_create_batch(
    store: CatalogueStore,
    rows: Sequence[Mapping[str, Any]],
    *,
    new_id: Callable[[], str] = generate_item_id,
) -> List[BatchRowResult]:
    if not rows:
        return []

    results: List[BatchRowResult] = []
    created = 0
    async with store.transaction():
        for raw in rows:
            name = _clean(raw.get("name"))
            brand = _clean(raw.get("brand"))
            quantity = _clean(raw.get("quantity"))
            feature = _clean(raw.get("feature"))

            if not name or not brand:
                results.append(BatchRowResult(ok=False, error="name_and_brand_required"))
                continue

            key = identity_key(name, brand, quantity, feature)
            existing = await store.find_by_normalized_tuple(*key)
            if existing is not None:
                results.append(BatchRowResult(ok=True, id=existing.id, existed=True))
                continue

            item_id = await _insert_with_retry(
                store,
                new_id,
                name=name,
                brand=brand,
                quantity=quantity,
                feature=feature,
            )
            created += 1
            results.append(BatchRowResult(ok=True, id=item_id, existed=False))

    logger.info("findOrCreateBatch processed %d rows, created %d items", len(rows), created)
    return results
