import logging
from functools import partial

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..config import get_settings
from ..db import get_session
from ..errors import ItemValidationError
from ..ratelimit import limiter
from ..schemas import (
    FindOrCreateBatchRequest,
    FindOrCreateBatchResponse,
    FindOrCreateRowResult,
    ItemRowsResponse,
    ItemSchema,
    ItemsByIdsRequest,
    ItemsResponse,
    ResolveItemRequest,
    ResolveItemResponse,
)
from ..services.batch import find_or_create_batch
from ..services.catalogue import SqlCatalogueStore
from ..services.identity import generate_item_id
from ..services.resolver import ResolutionQuery, resolve_item, validate_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/items", tags=["items"])

_SERVER_ERROR = "server_error"


def _server_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_SERVER_ERROR)


@router.post("/resolve", response_model=ResolveItemResponse)
@limiter.limit(get_settings().rate_limit_default)
async def resolve(request: Request, payload: ResolveItemRequest):
    query = ResolutionQuery(
        brand=payload.brand or "",
        name=payload.item or "",
        quantity=payload.quantity,
        required_features=frozenset(payload.selectedFeatures),
        strict=payload.strictQty,
    )
    try:
        validate_query(query)
        async with get_session() as session:
            resolution = await resolve_item(SqlCatalogueStore(session), query)
    except ItemValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.code)
    except Exception:
        logger.exception("Item resolution failed")
        raise _server_error()
    return ResolveItemResponse(
        exactId=resolution.exact_id,
        suggestedFeatures=sorted(resolution.suggested_features),
        candidates=[ItemSchema.from_record(c) for c in resolution.candidates],
    )


@router.post(
    "/findOrCreateBatch",
    response_model=FindOrCreateBatchResponse,
    response_model_exclude_none=True,
)
@limiter.limit(get_settings().rate_limit_batch)
async def find_or_create(request: Request, payload: FindOrCreateBatchRequest):
    s = get_settings()
    if len(payload.rows) > s.find_or_create_max_rows:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="too_many_rows")
    if not payload.rows:
        return FindOrCreateBatchResponse(results=[])

    rows = [row.model_dump() for row in payload.rows]
    try:
        async with get_session() as session:
            results = await find_or_create_batch(
                SqlCatalogueStore(session),
                rows,
                new_id=partial(generate_item_id, s.item_id_bytes),
            )
    except Exception:
        # the whole batch was rolled back; clients resubmit every row
        logger.exception("findOrCreateBatch aborted for %d rows", len(rows))
        raise _server_error()
    return FindOrCreateBatchResponse(
        results=[FindOrCreateRowResult.model_validate(r) for r in results]
    )


@router.get("/all", response_model=ItemRowsResponse)
async def all_items():
    try:
        async with get_session() as session:
            records = await SqlCatalogueStore(session).list_items()
    except Exception:
        logger.exception("Listing items failed")
        raise _server_error()
    return ItemRowsResponse(count=len(records), rows=[ItemSchema.from_record(r) for r in records])


@router.get("/search", response_model=ItemsResponse)
async def search_items(
    q: str = Query(""),
    field: str = Query("all"),
    limit: int = Query(50, ge=1),
):
    s = get_settings()
    try:
        async with get_session() as session:
            records = await SqlCatalogueStore(session).search_items(
                q, field=field, limit=min(limit, s.search_max_limit)
            )
    except ItemValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.code)
    except Exception:
        logger.exception("Item search failed")
        raise _server_error()
    return ItemsResponse(items=[ItemSchema.from_record(r) for r in records])


@router.post("/byIds", response_model=ItemsResponse)
async def items_by_ids(payload: ItemsByIdsRequest):
    if not payload.ids:
        return ItemsResponse(items=[])
    try:
        async with get_session() as session:
            records = await SqlCatalogueStore(session).get_items_by_ids(payload.ids)
    except Exception:
        logger.exception("Bulk item lookup failed")
        raise _server_error()
    return ItemsResponse(items=[ItemSchema.from_record(r) for r in records])


@router.get("/{item_id}", response_model=ItemSchema)
async def get_item(item_id: str):
    try:
        async with get_session() as session:
            record = await SqlCatalogueStore(session).get_item(item_id)
    except Exception:
        logger.exception("Item lookup failed for %s", item_id)
        raise _server_error()
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
    return ItemSchema.from_record(record)
