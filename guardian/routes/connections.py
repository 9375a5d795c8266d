"""
Connection routes.

A remote client opens a connection, attaches its event stream and registers
subscriptions and disconnect hooks on it. The connection counts as connected
exactly while the event stream is attached; when the stream ends, for any
reason, the connection's disconnect hooks run.
"""

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from guardian.errors import NotConnected
from guardian.store.relay import ConnectionRegistry, RelayConnection
from guardian.utils.audit_log import log_connection_event
from .dependencies import get_connection, get_registry

router = APIRouter(prefix="/connections", tags=["Connections"])


class SubscribeRequest(BaseModel):
    """Request model for a subscription."""
    path: str = Field(..., description="Path to watch; '.info/connected' is not relayed")


class HookRequest(BaseModel):
    """Request model for registering a disconnect hook."""
    path: str = Field(..., min_length=1)
    op: Literal["set", "update", "remove"]
    value: Any = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def open_connection(request: Request, registry: ConnectionRegistry = Depends(get_registry)):
    """
    Open a connection. It stays disconnected until its event stream is attached.
    """
    connection = registry.open()
    log_connection_event("open", connection.id, request)
    return {"connectionId": connection.id}


@router.delete("/{connection_id}")
async def close_connection(
    request: Request,
    connection: RelayConnection = Depends(get_connection),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    Close a connection gracefully. Its disconnect hooks run as on a drop.
    """
    await connection.store.close()
    registry.discard(connection.id)
    log_connection_event("close", connection.id, request)
    return {"connectionId": connection.id, "status": "closed"}


@router.get("/{connection_id}/events")
async def stream_events(request: Request, connection: RelayConnection = Depends(get_connection)):
    """
    Server-Sent Events stream: ``connected``, then ``snapshot`` events and
    keep-alive comments.
    """
    if connection.attached:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event stream already attached"
        )

    log_connection_event("attach", connection.id, request)
    return StreamingResponse(
        connection.events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@router.post("/{connection_id}/subscriptions", status_code=status.HTTP_201_CREATED)
async def subscribe(request: SubscribeRequest, connection: RelayConnection = Depends(get_connection)):
    """
    Subscribe the connection to a path. The current snapshot is queued right away.
    """
    try:
        subscription_id = await connection.subscribe(request.path)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"subscriptionId": subscription_id, "path": request.path}


@router.delete("/{connection_id}/subscriptions/{subscription_id}")
async def unsubscribe(subscription_id: str, connection: RelayConnection = Depends(get_connection)):
    """
    Remove a subscription.
    """
    if not connection.unsubscribe(subscription_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found"
        )
    return {"subscriptionId": subscription_id, "status": "removed"}


@router.put("/{connection_id}/on-disconnect")
async def set_disconnect_hook(request: HookRequest, connection: RelayConnection = Depends(get_connection)):
    """
    Register a write to run when the connection's stream ends.

    Registering again on the same path replaces the earlier hook. Only an
    attached connection can register hooks.
    """
    try:
        await connection.set_hook(request.path, request.op, request.value)
    except NotConnected as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"path": request.path, "op": request.op}


@router.delete("/{connection_id}/on-disconnect")
async def cancel_disconnect_hook(
    path: str = Query(..., min_length=1),
    connection: RelayConnection = Depends(get_connection)
):
    """
    Cancel the disconnect hook registered on a path.
    """
    try:
        await connection.cancel_hook(path)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"path": path, "status": "cancelled"}
