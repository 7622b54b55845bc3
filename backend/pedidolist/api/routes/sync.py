"""Sync routes: status, the "sync now" action and queue maintenance."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from pedidolist.api.deps import Runtime
from pedidolist.core.rate_limit import limiter
from pedidolist.schemas.sync import ConflictChoice, ConnectivityReport, SyncQueueItemResponse
from pedidolist.services.sync.events import SyncTrigger
from pedidolist.services.sync.exceptions import LocalEntityMissingError, RemoteApiError
from pedidolist.services.sync.types import Winner

router = APIRouter()


@router.get("/status")
@limiter.limit("60/minute")
async def get_sync_status(request: Request, runtime: Runtime):
    """Aggregate sync indicator for the UI ("N items pending", last failure)."""
    return await runtime.status()


@router.post("/run")
@limiter.limit("10/minute")
async def run_sync(request: Request, runtime: Runtime):
    """Explicit "sync now": drains the queue, ignoring per-item backoff."""
    if runtime.engine.is_syncing:
        return {"status": "already_syncing"}
    if not runtime.monitor.is_online:
        return {"status": "offline"}

    report = await runtime.engine.sync(SyncTrigger.MANUAL)
    if report is None:
        return {"status": "already_syncing"}
    return {
        "status": "completed" if report.error is None else "error",
        "report": report.to_dict(),
    }


@router.get("/queue", response_model=List[SyncQueueItemResponse])
@limiter.limit("60/minute")
async def get_sync_queue(request: Request, runtime: Runtime):
    return await runtime.store.list_pending()


@router.post("/queue/{queue_id}/retry")
@limiter.limit("30/minute")
async def retry_queue_item(request: Request, queue_id: int, runtime: Runtime):
    """Unblock an item after the cause was fixed (e.g. re-authentication)."""
    if not await runtime.store.requeue(queue_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Queue item not found")
    return {"requeued": True, "queue_id": queue_id}


@router.post("/queue/{queue_id}/resolve")
@limiter.limit("30/minute")
async def resolve_conflict(request: Request, queue_id: int, body: ConflictChoice, runtime: Runtime):
    """Settle a conflict left for manual review by keeping one of the two copies."""
    try:
        record = await runtime.engine.resolve_conflict(queue_id, Winner(body.keep))
    except LocalEntityMissingError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entity not found")
    except RemoteApiError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Server copy unavailable: {e}")
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Queue item not found")
    return {"kept": body.keep, "queue_id": queue_id, "entity": record.to_dict()}


@router.post("/connectivity")
@limiter.limit("120/minute")
async def report_connectivity(request: Request, body: ConnectivityReport, runtime: Runtime):
    """Raw online/offline signal from the platform. Debounced by the monitor."""
    runtime.monitor.report(body.online)
    return {"observed": body.online, "online": runtime.monitor.is_online}


@router.post("/maintenance/expire")
@limiter.limit("10/minute")
async def expire_stale_records(request: Request, runtime: Runtime):
    days_left = await runtime.expire_stale_records()
    return {"days_until_expiry": days_left}


@router.get("/alerts")
@limiter.limit("60/minute")
async def get_alerts(
    request: Request,
    runtime: Runtime,
    level: Optional[str] = Query(None, description="Minimum level: info, warning or critical"),
    limit: int = Query(20, ge=1, le=200),
):
    """Recent sync notifications (blocked items, aborted cycles, expiring data)."""
    return {"alerts": runtime.alerts.get_recent(limit=limit, level=level)}
