from __future__ import annotations


class ItemValidationError(ValueError):
    """Caller-fixable input problem, reported with a machine-readable code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class CatalogueStoreError(Exception):
    """Raised by catalogue stores for storage-level failures."""


class DuplicateItemIdError(CatalogueStoreError):
    def __init__(self, item_id: str):
        super().__init__(f"Item id already exists: {item_id}")
        self.item_id = item_id
