"""Catalogue storage capability used by the resolver and the batch coordinator.

The core only needs three operations plus a transaction boundary, captured by
:class:`CatalogueStore`. :class:`SqlCatalogueStore` is the production binding
over an ``AsyncSession``; :class:`InMemoryCatalogueStore` backs tests.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import func, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import DuplicateItemIdError, ItemValidationError
from ..models import Item
from .identity import identity_key

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("all", "name", "brand", "quantity", "feature", "productcolor")


@dataclass(frozen=True)
class ItemRecord:
    id: str
    name: str
    brand: str
    quantity: Optional[str] = None
    feature: Optional[str] = None
    product_color: Optional[str] = None
    pic_website: Optional[str] = None


class CatalogueStore(Protocol):
    def transaction(self) -> AsyncContextManager[None]:
        ...

    async def find_by_exact_brand_name(self, name: str, brand: str) -> List[ItemRecord]:
        ...

    async def find_by_normalized_tuple(
        self, name: str, brand: str, quantity: Optional[str], feature: Optional[str]
    ) -> Optional[ItemRecord]:
        ...

    async def insert_item(
        self,
        item_id: str,
        name: str,
        brand: str,
        quantity: Optional[str],
        feature: Optional[str],
    ) -> ItemRecord:
        ...


def _to_record(item: Item) -> ItemRecord:
    return ItemRecord(
        id=item.id,
        name=item.name,
        brand=item.brand,
        quantity=item.quantity,
        feature=item.feature,
        product_color=item.product_color,
        pic_website=item.pic_website,
    )


def _normalized(column):
    return func.lower(func.trim(func.coalesce(column, "")))


class SqlCatalogueStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self):
        # session.begin() commits on clean exit and rolls back on any exception
        async with self.session.begin():
            yield

    async def find_by_exact_brand_name(self, name: str, brand: str) -> List[ItemRecord]:
        key = identity_key(name, brand)
        result = await self.session.execute(
            select(Item)
            .where(_normalized(Item.name) == key.name, _normalized(Item.brand) == key.brand)
            .order_by(Item.id)
        )
        return [_to_record(item) for item in result.scalars()]

    async def find_by_normalized_tuple(
        self, name: str, brand: str, quantity: Optional[str], feature: Optional[str]
    ) -> Optional[ItemRecord]:
        key = identity_key(name, brand, quantity, feature)
        result = await self.session.execute(
            select(Item)
            .where(
                _normalized(Item.name) == key.name,
                _normalized(Item.brand) == key.brand,
                _normalized(Item.quantity) == key.quantity,
                _normalized(Item.feature) == key.feature,
            )
            .order_by(Item.created_at, Item.id)
            .limit(1)
        )
        item = result.scalars().first()
        return _to_record(item) if item is not None else None

    async def insert_item(
        self,
        item_id: str,
        name: str,
        brand: str,
        quantity: Optional[str],
        feature: Optional[str],
    ) -> ItemRecord:
        values = {
            "id": item_id,
            "name": name,
            "brand": brand,
            "quantity": quantity,
            "feature": feature,
        }
        # SAVEPOINT so a primary-key collision leaves the outer transaction usable
        try:
            async with self.session.begin_nested():
                await self.session.execute(insert(Item).values(**values))
        except IntegrityError as exc:
            # only a clash on the primary key is a retryable id collision
            if not await self._id_exists(item_id):
                raise
            logger.debug("Insert of item %s rejected: id already taken", item_id)
            raise DuplicateItemIdError(item_id) from exc
        return ItemRecord(id=item_id, name=name, brand=brand, quantity=quantity, feature=feature)

    async def _id_exists(self, item_id: str) -> bool:
        result = await self.session.execute(select(Item.id).where(Item.id == item_id))
        return result.first() is not None

    async def get_item(self, item_id: str) -> Optional[ItemRecord]:
        item = await self.session.get(Item, item_id)
        return _to_record(item) if item is not None else None

    async def get_items_by_ids(self, ids: Sequence[str]) -> List[ItemRecord]:
        wanted = [str(i) for i in ids if i]
        if not wanted:
            return []
        result = await self.session.execute(select(Item).where(Item.id.in_(set(wanted))))
        by_id = {item.id: _to_record(item) for item in result.scalars()}
        return [by_id[i] for i in wanted if i in by_id]

    async def list_items(self) -> List[ItemRecord]:
        result = await self.session.execute(select(Item).order_by(Item.name, Item.brand, Item.id))
        return [_to_record(item) for item in result.scalars()]

    async def search_items(self, q: str, field: str = "all", limit: int = 50) -> List[ItemRecord]:
        field = (field or "all").lower()
        if field not in SEARCH_FIELDS:
            raise ItemValidationError("invalid_field")
        columns = {
            "all": [Item.name, Item.brand, Item.quantity, Item.feature, Item.product_color],
            "name": [Item.name],
            "brand": [Item.brand],
            "quantity": [Item.quantity],
            "feature": [Item.feature],
            "productcolor": [Item.product_color],
        }
        stmt = select(Item)
        q = (q or "").strip()
        if q:
            stmt = stmt.where(or_(*[column.icontains(q, autoescape=True) for column in columns[field]]))
        stmt = stmt.order_by(Item.name, Item.brand, Item.id).limit(limit)
        result = await self.session.execute(stmt)
        return [_to_record(item) for item in result.scalars()]


class InMemoryCatalogueStore:
    """Dict-backed store for tests; transactions snapshot and restore."""

    def __init__(self, items: Iterable[ItemRecord] = ()):
        self.items: dict[str, ItemRecord] = {item.id: item for item in items}
        self.insert_attempts: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self):
        snapshot = dict(self.items)
        try:
            yield
        except Exception:
            self.items = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    async def find_by_exact_brand_name(self, name: str, brand: str) -> List[ItemRecord]:
        key = identity_key(name, brand)
        return [
            item
            for item in sorted(self.items.values(), key=lambda i: i.id)
            if identity_key(item.name, item.brand)[:2] == key[:2]
        ]

    async def find_by_normalized_tuple(
        self, name: str, brand: str, quantity: Optional[str], feature: Optional[str]
    ) -> Optional[ItemRecord]:
        key = identity_key(name, brand, quantity, feature)
        for item in self.items.values():
            if identity_key(item.name, item.brand, item.quantity, item.feature) == key:
                return item
        return None

    async def insert_item(
        self,
        item_id: str,
        name: str,
        brand: str,
        quantity: Optional[str],
        feature: Optional[str],
    ) -> ItemRecord:
        self.insert_attempts.append(item_id)
        if item_id in self.items:
            raise DuplicateItemIdError(item_id)
        record = ItemRecord(id=item_id, name=name, brand=brand, quantity=quantity, feature=feature)
        self.items[item_id] = record
        return record
