"""
Tree routes.

Provides endpoints for:
- Reading the value at a path
- Overwriting a path (null deletes)
- Merging a patch of relative paths (atomic multi-path write)
- Deleting a path
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from guardian.store.memory import MemoryDatabase
from .dependencies import get_database

router = APIRouter(prefix="/tree", tags=["Tree"])


class WriteRequest(BaseModel):
    """Request model for overwriting a path."""
    value: Any = None


class PatchRequest(BaseModel):
    """Request model for a merge write."""
    patch: Dict[str, Any]


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("")
@router.get("/{path:path}")
async def read_path(path: str = "", database: MemoryDatabase = Depends(get_database)):
    """
    Read the value at a path. Absent values read as null.
    """
    try:
        return {"path": path, "value": database.read(path)}
    except ValueError as e:
        raise _bad_request(e)


@router.put("")
@router.put("/{path:path}")
async def write_path(
    request: WriteRequest,
    path: str = "",
    database: MemoryDatabase = Depends(get_database)
):
    """
    Overwrite the value at a path.
    """
    try:
        database.set(path, request.value)
    except ValueError as e:
        raise _bad_request(e)
    return {"path": path, "commit": database.commit}


@router.patch("")
@router.patch("/{path:path}")
async def merge_path(
    request: PatchRequest,
    path: str = "",
    database: MemoryDatabase = Depends(get_database)
):
    """
    Merge a patch under a path.

    Keys may be multi-segment relative paths; all of them are applied in one
    commit. Overlapping keys are rejected with 400 before anything is written.
    """
    try:
        database.update(path, request.patch)
    except ValueError as e:
        raise _bad_request(e)
    return {"path": path, "commit": database.commit}


@router.delete("/{path:path}")
async def delete_path(path: str, database: MemoryDatabase = Depends(get_database)):
    """
    Delete the value at a path.
    """
    try:
        database.set(path, None)
    except ValueError as e:
        raise _bad_request(e)
    return {"path": path, "commit": database.commit}
