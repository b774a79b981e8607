"""FastAPI application - Package Version Pin Service.

Resolves which distribution of a package applies in a deployment context
and keeps an audit trail of every registry change.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import routes
from .audit.store import InvalidRevision
from .config import Config
from .models import HealthResponse
from .paths.parser import MalformedPath
from .pins.registry import (
    DuplicateDependency,
    DuplicateDistribution,
    DuplicatePackage,
    MalformedDistribution,
    PackageMismatch,
    RegistryError,
    UnknownDistribution,
    UnknownPackage,
    UnknownPath,
    UnknownVersionPin,
)
from .resolver.resolver import InvalidSearchMode
from .service import PinService


logger = logging.getLogger(__name__)

CONFIG_ENV = "PACKPIN_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"

# Registry error -> (status, error label)
_REGISTRY_ERRORS: dict[type[RegistryError], tuple[int, str]] = {
    MalformedDistribution: (400, "Malformed distribution"),
    UnknownPackage: (404, "Unknown package"),
    UnknownPath: (404, "Unknown path"),
    UnknownVersionPin: (404, "Unknown version pin"),
    UnknownDistribution: (404, "Unknown distribution"),
    DuplicatePackage: (409, "Duplicate package"),
    DuplicateDistribution: (409, "Duplicate distribution"),
    DuplicateDependency: (409, "Duplicate dependency"),
    PackageMismatch: (409, "Package mismatch"),
}


def load_config() -> Config:
    """Load config from the file named by PACKPIN_CONFIG, or defaults if it is absent."""
    path = os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH)
    if not Path(path).exists():
        logger.info(f"No config file at {path}, using defaults")
        return Config()
    if path.endswith(".json"):
        return Config.from_json(path)
    return Config.from_yaml(path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting pin service...")

    config = load_config()
    service = PinService.from_config(config)
    routes.configure(service)
    app.state.service = service

    logger.info(f"Pin service started: {service.stats()}")

    yield

    service.close()
    logger.info("Pin service stopped")


# Create FastAPI app
app = FastAPI(
    title="Package Version Pin Service",
    description="Resolves package distributions by role, level, site and platform, with audited revisions.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(routes.router)


@app.exception_handler(MalformedPath)
async def malformed_path_handler(request: Request, exc: MalformedPath):
    return JSONResponse(
        status_code=400,
        content={"error": "Malformed path", "detail": str(exc)},
    )


@app.exception_handler(InvalidSearchMode)
async def invalid_search_mode_handler(request: Request, exc: InvalidSearchMode):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid search mode", "detail": str(exc)},
    )


@app.exception_handler(InvalidRevision)
async def invalid_revision_handler(request: Request, exc: InvalidRevision):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid revision", "detail": str(exc)},
    )


@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    status_code, error = _REGISTRY_ERRORS.get(type(exc), (400, "Registry error"))
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc)},
    )


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    service = routes._service
    return HealthResponse(
        status="healthy",
        stats=service.stats() if service else {},
    )


def run():
    """Run the service with uvicorn."""
    import uvicorn

    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
    )

    uvicorn.run(
        "packpin_svc.main:app",
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()
