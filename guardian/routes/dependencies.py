"""
FastAPI dependencies giving routes the gateway's database and connections.
"""

from fastapi import Depends, HTTPException, Request, status

from guardian.store.memory import MemoryDatabase
from guardian.store.relay import ConnectionRegistry, RelayConnection


def get_database(request: Request) -> MemoryDatabase:
    return request.app.state.database


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_connection(
    connection_id: str,
    registry: ConnectionRegistry = Depends(get_registry)
) -> RelayConnection:
    """
    Look up a connection by the ``connection_id`` path parameter.

    Raises:
        HTTPException: 404 if the gateway does not know the connection
    """
    connection = registry.get(connection_id)
    if connection is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Connection not found"
        )
    return connection
