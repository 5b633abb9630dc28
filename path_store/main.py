import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.requests import ClientDisconnect

from path_store import config
from path_store.app.errors import (
    BadRequestError,
    EntryConflictError,
    EntryNotFoundError,
    StoreError,
)
from path_store.app.repository.content_repository import ContentStore, utcnow
from path_store.app.routes.content_routes import router
from path_store.app.services.blob_transfer import BlobTransfer
from path_store.app.services.schema import SchemaInitializer
from path_store.db import ConnectionPool
from path_store.logger_config import setup_logger

# Logger setup
logger = setup_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Collapse store errors to a bare status code; details only go to the log."""

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(request: Request, exc: BadRequestError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
        return Response(status_code=exc.status_code)

    @app.exception_handler(EntryNotFoundError)
    async def not_found_handler(request: Request, exc: EntryNotFoundError):
        logger.info(f"Not found: {request.method} {exc.path}")
        return Response(status_code=exc.status_code)

    @app.exception_handler(EntryConflictError)
    async def conflict_handler(request: Request, exc: EntryConflictError):
        logger.info(f"Conflict: {request.method} {exc.path} already exists")
        return Response(status_code=exc.status_code)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
        return Response(status_code=exc.status_code)

    @app.exception_handler(ClientDisconnect)
    async def disconnect_handler(request: Request, exc: ClientDisconnect):
        logger.warning(f"Client disconnected during {request.method} {request.url.path}")
        return Response(status_code=400)


async def log_requests(request: Request, call_next):
    """Log the request method, URL, elapsed time, and status code."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


def create_app(database_path: Optional[str] = None, pool_size: Optional[int] = None,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = ConnectionPool(database_path or config.DATABASE_PATH, pool_size or config.POOL_SIZE)
        store = ContentStore(pool, clock=clock or utcnow)
        app.state.pool = pool
        app.state.blob_transfer = BlobTransfer(store, SchemaInitializer(pool))
        yield
        pool.close()

    app = FastAPI(title="Path Store", lifespan=lifespan)
    register_error_handlers(app)
    app.middleware("http")(log_requests)
    app.include_router(router)
    return app


app = create_app()


def main():
    logger.info("Starting path store server...")
    logger.info(f"Database: {config.DATABASE_PATH} (pool size {config.POOL_SIZE})")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
