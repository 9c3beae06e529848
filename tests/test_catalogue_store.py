from __future__ import annotations

from unittest import IsolatedAsyncioTestCase

from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from itemref.errors import DuplicateItemIdError, ItemValidationError
from itemref.models import Base, Item
from itemref.services.batch import find_or_create_batch
from itemref.services.catalogue import SqlCatalogueStore
from itemref.services.resolver import ResolutionQuery, resolve_item


def _sqlite_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)

    # let SQLAlchemy own BEGIN so SAVEPOINT / ROLLBACK behave like Postgres
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def _ids(*values):
    it = iter(values)
    return lambda: next(it)


class SqlCatalogueStoreTest(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = _sqlite_engine()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False)
        async with self.Session() as session:
            session.add_all(
                [
                    Item(id="A", name="Cola", brand="Acme", quantity="500ml", feature="zero,can"),
                    Item(id="B", name="Cola", brand="Acme", quantity="1000ml", feature="zero"),
                    Item(id="C", name="Water", brand="Acme", quantity=None, product_color="blue"),
                    Item(id="D", name="Tea", brand="Leafy", quantity="20 packs"),
                ]
            )
            await session.commit()

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def _count(self) -> int:
        async with self.Session() as session:
            return (await session.execute(select(func.count()).select_from(Item))).scalar_one()

    async def test_find_by_exact_brand_name_is_case_insensitive(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            records = await store.find_by_exact_brand_name(" COLA", "acme ")
            self.assertEqual([r.id for r in records], ["A", "B"])
            self.assertEqual(await store.find_by_exact_brand_name("Col", "Acme"), [])

    async def test_find_by_normalized_tuple_coalesces_nulls(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            found = await store.find_by_normalized_tuple("water", "ACME", "", None)
            self.assertIsNotNone(found)
            self.assertEqual(found.id, "C")
            self.assertEqual(found.product_color, "blue")
            self.assertIsNone(await store.find_by_normalized_tuple("Cola", "Acme", "500ml", None))

    async def test_duplicate_id_keeps_transaction_usable(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            async with store.transaction():
                with self.assertRaises(DuplicateItemIdError):
                    await store.insert_item("A", "Juice", "Acme", None, None)
                await store.insert_item("E", "Juice", "Acme", "1l", None)
        self.assertEqual(await self._count(), 5)

    async def test_other_integrity_errors_are_not_id_collisions(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            with self.assertRaises(IntegrityError) as ctx:
                async with store.transaction():
                    await store.insert_item("fresh001", None, "Acme", None, None)
            self.assertNotIsInstance(ctx.exception, DuplicateItemIdError)
        self.assertEqual(await self._count(), 4)

    async def test_transaction_rolls_back_on_error(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            with self.assertRaises(RuntimeError):
                async with store.transaction():
                    await store.insert_item("E", "Juice", "Acme", "1l", None)
                    raise RuntimeError("boom")
        self.assertEqual(await self._count(), 4)

    async def test_batch_against_sql_store(self):
        async with self.Session() as session:
            results = await find_or_create_batch(
                SqlCatalogueStore(session),
                [
                    {"name": "cola", "brand": "ACME", "quantity": "500ML", "feature": "Zero,Can"},
                    {"name": "Juice", "brand": "Acme", "quantity": "1l"},
                ],
                new_id=_ids("A", "newid001"),
            )
        self.assertEqual(results[0].id, "A")
        self.assertTrue(results[0].existed)
        self.assertEqual(results[1].id, "newid001")
        self.assertFalse(results[1].existed)
        self.assertEqual(await self._count(), 5)

    async def test_batch_abort_discards_earlier_rows(self):
        with self.assertRaises(DuplicateItemIdError):
            async with self.Session() as session:
                await find_or_create_batch(
                    SqlCatalogueStore(session),
                    [{"name": "Juice", "brand": "Acme"}, {"name": "Soda", "brand": "Acme"}],
                    new_id=_ids("newid001", "A", "B", "C"),
                )
        self.assertEqual(await self._count(), 4)

    async def test_resolve_against_sql_store(self):
        async with self.Session() as session:
            result = await resolve_item(
                SqlCatalogueStore(session),
                ResolutionQuery(brand="Acme", name="Cola", quantity="0.5L"),
            )
        self.assertEqual(result.exact_id, "A")
        self.assertEqual(result.suggested_features, {"zero", "can"})

    async def test_get_items_by_ids_keeps_request_order(self):
        async with self.Session() as session:
            records = await SqlCatalogueStore(session).get_items_by_ids(["C", "missing", "A", ""])
        self.assertEqual([r.id for r in records], ["C", "A"])

    async def test_list_items_sorted_by_name_then_brand(self):
        async with self.Session() as session:
            records = await SqlCatalogueStore(session).list_items()
        self.assertEqual([r.name for r in records], ["Cola", "Cola", "Tea", "Water"])

    async def test_search_items(self):
        async with self.Session() as session:
            store = SqlCatalogueStore(session)
            self.assertEqual([r.id for r in await store.search_items("LEAF")], ["D"])
            self.assertEqual([r.id for r in await store.search_items("blue", field="productColor")], ["C"])
            self.assertEqual(await store.search_items("blue", field="name"), [])
            self.assertEqual(len(await store.search_items("", limit=2)), 2)
            with self.assertRaises(ItemValidationError):
                await store.search_items("x", field="price")
