"""
Shared state store: interface, in-process tree, gateway relay, remote client and Firebase adapter.
"""

from .base import (
    CONNECTED_PATH,
    SERVER_TIMESTAMP,
    ListenerGroup,
    OnDisconnect,
    Snapshot,
    StateStore,
    Unsubscribe,
    join_path,
    split_path,
)
from .firebase import FirebaseStore
from .memory import MemoryDatabase, MemoryStore
from .remote import RemoteStore

__all__ = [
    "CONNECTED_PATH",
    "SERVER_TIMESTAMP",
    "ListenerGroup",
    "OnDisconnect",
    "Snapshot",
    "StateStore",
    "Unsubscribe",
    "join_path",
    "split_path",
    "FirebaseStore",
    "MemoryDatabase",
    "MemoryStore",
    "RemoteStore",
]
