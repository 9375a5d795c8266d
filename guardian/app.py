"""
Store gateway.

Hosts one in-process realtime tree for many remote clients over REST and
Server-Sent Events. Run with ``guardian-gateway`` or
``uvicorn guardian.app:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from guardian import __version__, config
from guardian.middleware import RateLimitMiddleware
from guardian.routes import connections_router, tree_router
from guardian.store.memory import MemoryDatabase
from guardian.store.relay import ConnectionRegistry

logger = logging.getLogger(__name__)


def create_app(
    database: Optional[MemoryDatabase] = None,
    write_limit: int = config.WRITE_RATE_LIMIT,
    connect_limit: int = config.CONNECT_RATE_LIMIT,
    keepalive: float = config.GATEWAY_KEEPALIVE_SECONDS
) -> FastAPI:
    database = database or MemoryDatabase()
    registry = ConnectionRegistry(database, keepalive=keepalive)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Store gateway %s starting", __version__)
        yield
        # Shutdown: every remaining connection is dropped, so its hooks run
        for connection_id in registry.connection_ids:
            connection = registry.get(connection_id)
            await connection.store.drop()
            registry.discard(connection_id)
        await database.settle()

    app = FastAPI(title="Guardian Link Store Gateway", version=__version__, lifespan=lifespan)
    app.state.database = database
    app.state.registry = registry

    # Add rate limiting middleware
    app.add_middleware(RateLimitMiddleware, write_limit=write_limit, connect_limit=connect_limit)

    # CORS middleware (must be last to apply first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tree_router)
    app.include_router(connections_router)

    @app.get("/health")
    async def health(request: Request):
        return {
            "status": "healthy",
            "connections": len(request.app.state.registry),
            "commit": request.app.state.database.commit,
        }

    return app


app = create_app()


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host=config.GATEWAY_HOST, port=config.GATEWAY_PORT)


if __name__ == "__main__":
    main()
