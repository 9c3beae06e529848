from __future__ import annotations

from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .services.catalogue import ItemRecord


class QuantityPayload(BaseModel):
    value: Union[float, str]
    unit: str


class ItemSchema(BaseModel):
    id: str
    name: str = ""
    brand: str = ""
    quantity: str = ""
    feature: str = ""
    productColor: str = ""
    picWebsite: str = ""

    @classmethod
    def from_record(cls, record: ItemRecord) -> "ItemSchema":
        return cls(
            id=str(record.id),
            name=record.name or "",
            brand=record.brand or "",
            quantity=record.quantity or "",
            feature=record.feature or "",
            productColor=record.product_color or "",
            picWebsite=record.pic_website or "",
        )


class ResolveItemRequest(BaseModel):
    brand: Optional[str] = ""
    item: Optional[str] = ""
    quantity: Optional[Union[str, QuantityPayload]] = None
    selectedFeatures: List[str] = Field(default_factory=list)
    strictQty: bool = False


class ResolveItemResponse(BaseModel):
    exactId: Optional[str] = None
    suggestedFeatures: List[str] = Field(default_factory=list)
    candidates: List[ItemSchema] = Field(default_factory=list)


class FindOrCreateRow(BaseModel):
    name: Optional[str] = None
    brand: Optional[str] = None
    feature: Optional[str] = None
    quantity: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class FindOrCreateBatchRequest(BaseModel):
    rows: List[FindOrCreateRow] = Field(default_factory=list)


class FindOrCreateRowResult(BaseModel):
    ok: bool
    id: Optional[str] = None
    existed: Optional[bool] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class FindOrCreateBatchResponse(BaseModel):
    results: List[FindOrCreateRowResult]


class ItemsByIdsRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(coerce_numbers_to_str=True)


class ItemsResponse(BaseModel):
    items: List[ItemSchema]


class ItemRowsResponse(BaseModel):
    count: int
    rows: List[ItemSchema]
