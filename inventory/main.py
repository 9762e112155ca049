import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from inventory.api.v1.router import api_router
from inventory.core.config import settings
from inventory.core.database import engine
from inventory.core.errors import InventoryError, StorageError
from inventory.core.logging_setup import setup_logging
from inventory.services.schema_bootstrap import ensure_base_schema_ready

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not await ensure_base_schema_ready():
        raise RuntimeError("Schema bootstrap failed")

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error in %s %s: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start_time = time.time()
    method = request.method
    path = request.url.path

    try:
        response = await call_next(request)
    except Exception:
        duration = round((time.time() - start_time) * 1000, 1)
        logger.exception("Unhandled exception in %s %s (%sms)", method, path, duration)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    duration = round((time.time() - start_time) * 1000, 1)
    if path.startswith("/api/"):
        logger.info("%s %s -> %s in %sms", method, path, response.status_code, duration)
    return response


app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.VERSION}
