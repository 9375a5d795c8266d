"""
Pytest configuration and fixtures for testing.

Provides fixtures for:
- A shared in-memory tree with a controllable clock
- Parent and child store connections to it
- An identity manager with a recording operator channel and a registered family
- An async HTTP client for the store gateway
"""

import os
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing the package
os.environ["JWT_SECRET"] = "test-secret-key-do-not-use-in-production"
os.environ["BCRYPT_ROUNDS"] = "4"

from guardian.app import create_app
from guardian.auth import IdentityManager
from guardian.store import MemoryDatabase

from .utils import FakeClock, RecordingOperator, register_family


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(clock) -> MemoryDatabase:
    return MemoryDatabase(clock=clock)


@pytest.fixture
def parent_store(database):
    return database.client("parent-phone")


@pytest.fixture
def child_store(database):
    return database.client("child-phone")


@pytest.fixture
def operator() -> RecordingOperator:
    return RecordingOperator()


@pytest.fixture
def identity(parent_store, operator, clock) -> IdentityManager:
    return IdentityManager(parent_store, operator=operator, clock=clock)


@pytest.fixture
async def family(identity, operator):
    """A confirmed registration: the parent's profile."""
    return await register_family(identity, operator)


@pytest.fixture
def gateway(database):
    return create_app(database)


@pytest.fixture
async def async_client(gateway) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for the gateway."""
    async with AsyncClient(transport=ASGITransport(app=gateway), base_url="http://test") as client:
        yield client
