"""Product routes: the UI write path for the catalog.

Every write lands in the local store and the sync queue first; the network
is only attempted afterwards, so these endpoints work offline.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from pedidolist.api.deps import Runtime
from pedidolist.core.enums import EntityType, SyncAction
from pedidolist.core.rate_limit import DEFAULT_LIMIT, limiter
from pedidolist.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from pedidolist.services.sync.exceptions import LocalEntityMissingError
from pedidolist.services.sync.types import EntityRecord

router = APIRouter()


@router.get("/")
@limiter.limit(DEFAULT_LIMIT)
async def list_products(
    request: Request,
    runtime: Runtime,
    business_id: Optional[str] = Query(None, description="Filter by business"),
    active_only: bool = Query(False, description="Only show active products"),
    search: Optional[str] = Query(None, description="Search by name or category"),
):
    """List products that are not deleted locally."""
    records = await runtime.store.list_entities(EntityType.PRODUCT, business_id=business_id)
    if active_only:
        records = [r for r in records if r.payload.get("is_active")]
    if search:
        term = search.lower()
        records = [
            r for r in records
            if term in r.payload["name"].lower() or term in (r.payload.get("category") or "").lower()
        ]
    items = [ProductResponse.model_validate(r.to_dict()) for r in records]
    return {"items": items, "total": len(items)}


@router.get("/{local_id}", response_model=ProductResponse)
@limiter.limit(DEFAULT_LIMIT)
async def get_product(request: Request, local_id: str, runtime: Runtime):
    record = await runtime.store.get(EntityType.PRODUCT, local_id, include_deleted=False)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return record.to_dict()


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(DEFAULT_LIMIT)
async def create_product(request: Request, product: ProductCreate, runtime: Runtime):
    """Create a product locally and queue it for the server."""
    entity = EntityRecord(entity_type=EntityType.PRODUCT, payload=product.model_dump(mode="json"))
    record = await runtime.record_mutation(EntityType.PRODUCT, SyncAction.CREATE, entity)
    return record.to_dict()


@router.put("/{local_id}", response_model=ProductResponse)
@limiter.limit(DEFAULT_LIMIT)
async def update_product(request: Request, local_id: str, product: ProductUpdate, runtime: Runtime):
    current = await runtime.store.get(EntityType.PRODUCT, local_id, include_deleted=False)
    if current is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    payload = {**current.payload, **product.model_dump(mode="json", exclude_unset=True)}
    try:
        record = await runtime.record_mutation(
            EntityType.PRODUCT, SyncAction.UPDATE, current.with_changes(payload=payload)
        )
    except LocalEntityMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return record.to_dict()


@router.delete("/{local_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(DEFAULT_LIMIT)
async def delete_product(request: Request, local_id: str, runtime: Runtime):
    """Soft-delete locally; the row is purged once the server confirms."""
    try:
        await runtime.record_mutation(
            EntityType.PRODUCT,
            SyncAction.DELETE,
            EntityRecord(entity_type=EntityType.PRODUCT, payload={}, local_id=local_id),
        )
    except LocalEntityMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
