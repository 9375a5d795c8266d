"""
Store gateway route modules.
"""

from .connections import router as connections_router
from .tree import router as tree_router

__all__ = [
    "connections_router",
    "tree_router",
]
