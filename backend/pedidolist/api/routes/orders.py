"""Order routes: the UI write path for orders.

Every write lands in the local store and the sync queue first; the network
is only attempted afterwards, so these endpoints work offline.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from pedidolist.api.deps import Runtime
from pedidolist.core.enums import EntityType, SyncAction
from pedidolist.core.rate_limit import DEFAULT_LIMIT, limiter
from pedidolist.schemas.order import OrderCreate, OrderResponse, OrderUpdate
from pedidolist.services.sync.exceptions import LocalEntityMissingError
from pedidolist.services.sync.types import EntityRecord

router = APIRouter()


@router.get("/")
@limiter.limit(DEFAULT_LIMIT)
async def list_orders(
    request: Request,
    runtime: Runtime,
    business_id: Optional[str] = Query(None, description="Filter by business"),
):
    """List orders that are not deleted locally."""
    records = await runtime.store.list_entities(EntityType.ORDER, business_id=business_id)
    items = [OrderResponse.model_validate(r.to_dict()) for r in records]
    return {"items": items, "total": len(items)}


@router.get("/{local_id}", response_model=OrderResponse)
@limiter.limit(DEFAULT_LIMIT)
async def get_order(request: Request, local_id: str, runtime: Runtime):
    record = await runtime.store.get(EntityType.ORDER, local_id, include_deleted=False)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return record.to_dict()


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(DEFAULT_LIMIT)
async def create_order(request: Request, order: OrderCreate, runtime: Runtime):
    """Create an order locally and queue it for the server."""
    entity = EntityRecord(entity_type=EntityType.ORDER, payload=order.model_dump(mode="json"))
    record = await runtime.record_mutation(EntityType.ORDER, SyncAction.CREATE, entity)
    return record.to_dict()


@router.put("/{local_id}", response_model=OrderResponse)
@limiter.limit(DEFAULT_LIMIT)
async def update_order(request: Request, local_id: str, order: OrderUpdate, runtime: Runtime):
    current = await runtime.store.get(EntityType.ORDER, local_id, include_deleted=False)
    if current is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    payload = {**current.payload, **order.model_dump(mode="json", exclude_unset=True)}
    try:
        record = await runtime.record_mutation(
            EntityType.ORDER, SyncAction.UPDATE, current.with_changes(payload=payload)
        )
    except LocalEntityMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return record.to_dict()


@router.delete("/{local_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(DEFAULT_LIMIT)
async def delete_order(request: Request, local_id: str, runtime: Runtime):
    """Soft-delete locally; the row is purged once the server confirms."""
    try:
        await runtime.record_mutation(
            EntityType.ORDER,
            SyncAction.DELETE,
            EntityRecord(entity_type=EntityType.ORDER, payload={}, local_id=local_id),
        )
    except LocalEntityMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
