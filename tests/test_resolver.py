from __future__ import annotations

import unittest
from unittest import IsolatedAsyncioTestCase

from itemref.errors import ItemValidationError
from itemref.services.catalogue import InMemoryCatalogueStore, ItemRecord
from itemref.services.resolver import ResolutionQuery, feature_tokens, resolve_item


def _store() -> InMemoryCatalogueStore:
    return InMemoryCatalogueStore(
        [
            ItemRecord(id="A", name="Cola", brand="Acme", quantity="500ml", feature="Zero, Can"),
            ItemRecord(id="B", name="Cola", brand="Acme", quantity="1000ml", feature="zero,bottle"),
            ItemRecord(id="C", name="cola ", brand=" ACME", quantity="0.5L", feature="Classic"),
            ItemRecord(id="D", name="Cola Light", brand="Acme", quantity="500ml"),
            ItemRecord(id="E", name="Cola", brand="Other", quantity="500ml"),
        ]
    )


class ResolveItemTest(IsolatedAsyncioTestCase):
    async def test_quantity_narrows_to_equivalent_sizes(self):
        result = await resolve_item(_store(), ResolutionQuery(brand="acme", name="COLA", quantity="500ml"))
        self.assertEqual([c.id for c in result.candidates], ["A", "C"])
        self.assertIsNone(result.exact_id)

    async def test_unique_match_sets_exact_id(self):
        store = InMemoryCatalogueStore(
            [
                ItemRecord(id="A", name="Cola", brand="Acme", quantity="500ml"),
                ItemRecord(id="B", name="Cola", brand="Acme", quantity="1000ml"),
            ]
        )
        with_qty = await resolve_item(store, ResolutionQuery(brand="Acme", name="Cola", quantity="500ml"))
        self.assertEqual(with_qty.exact_id, "A")

        without_qty = await resolve_item(store, ResolutionQuery(brand="Acme", name="Cola"))
        self.assertIsNone(without_qty.exact_id)
        self.assertEqual(len(without_qty.candidates), 2)

    async def test_name_match_is_exact_not_substring(self):
        result = await resolve_item(_store(), ResolutionQuery(brand="Acme", name="Cola"))
        self.assertNotIn("D", [c.id for c in result.candidates])
        self.assertNotIn("E", [c.id for c in result.candidates])

    async def test_structured_quantity(self):
        result = await resolve_item(
            _store(),
            ResolutionQuery(brand="Acme", name="Cola", quantity={"value": 1, "unit": "l"}),
        )
        self.assertEqual(result.exact_id, "B")

    async def test_unparsable_candidate_quantity_is_kept(self):
        store = InMemoryCatalogueStore(
            [
                ItemRecord(id="A", name="Cola", brand="Acme", quantity="500ml"),
                ItemRecord(id="X", name="Cola", brand="Acme", quantity="family size"),
            ]
        )
        result = await resolve_item(store, ResolutionQuery(brand="Acme", name="Cola", quantity="500ml"))
        self.assertEqual([c.id for c in result.candidates], ["A", "X"])

    async def test_suggested_features_collected_before_feature_filter(self):
        result = await resolve_item(
            _store(),
            ResolutionQuery(brand="Acme", name="Cola", required_features=frozenset({"ZERO "})),
        )
        self.assertEqual(result.suggested_features, {"zero", "can", "bottle", "classic"})
        self.assertEqual([c.id for c in result.candidates], ["A", "B"])

    async def test_required_features_must_all_be_present(self):
        result = await resolve_item(
            _store(),
            ResolutionQuery(brand="Acme", name="Cola", required_features=frozenset({"zero", "can"})),
        )
        self.assertEqual(result.exact_id, "A")

    async def test_missing_brand_or_name(self):
        for brand, name in (("", "Cola"), ("Acme", "   "), (None, None)):
            with self.assertRaises(ItemValidationError) as ctx:
                await resolve_item(_store(), ResolutionQuery(brand=brand, name=name))
            self.assertEqual(ctx.exception.code, "brand_and_item_required")

    async def test_strict_mode_requires_quantity(self):
        for quantity in (None, "", "a lot"):
            with self.assertRaises(ItemValidationError) as ctx:
                await resolve_item(
                    _store(), ResolutionQuery(brand="Acme", name="Cola", quantity=quantity, strict=True)
                )
            self.assertEqual(ctx.exception.code, "quantity_required_in_strict_mode")

    async def test_strict_mode_drops_incomparable_candidates(self):
        store = InMemoryCatalogueStore(
            [
                ItemRecord(id="X", name="Cola", brand="Acme", quantity="family size"),
                ItemRecord(id="Y", name="Cola", brand="Acme", quantity=None),
                ItemRecord(id="Z", name="Cola", brand="Acme", quantity="6pcs"),
            ]
        )
        result = await resolve_item(
            store, ResolutionQuery(brand="Acme", name="Cola", quantity="500ml", strict=True)
        )
        self.assertEqual(result.candidates, [])
        self.assertIsNone(result.exact_id)
        self.assertEqual(result.suggested_features, set())

    async def test_strict_mode_large_quantity_matches_itself(self):
        store = InMemoryCatalogueStore(
            [ItemRecord(id="T", name="Tank", brand="Acme", quantity="10000000000000000ml")]
        )
        result = await resolve_item(
            store,
            ResolutionQuery(brand="Acme", name="Tank", quantity="10000000000000000ml", strict=True),
        )
        self.assertEqual(result.exact_id, "T")

    async def test_strict_mode_match(self):
        result = await resolve_item(
            _store(), ResolutionQuery(brand="Acme", name="Cola", quantity="1l", strict=True)
        )
        self.assertEqual(result.exact_id, "B")


class FeatureTokensTest(unittest.TestCase):
    def test_tokens(self):
        self.assertEqual(feature_tokens(" Zero , CAN,,"), {"zero", "can"})
        self.assertEqual(feature_tokens(None), set())
