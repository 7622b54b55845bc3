"""Shared route dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from pedidolist.services.sync.runtime import SyncRuntime


def get_runtime(request: Request) -> SyncRuntime:
    """Sync runtime created in the application lifespan."""
    return request.app.state.sync_runtime


Runtime = Annotated[SyncRuntime, Depends(get_runtime)]
