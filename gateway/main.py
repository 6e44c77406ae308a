import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from gateway.config import Settings
from gateway.coordination import CoordinationStore, InMemoryCoordinationStore, RedisCoordinationStore
from gateway.directory import LocationDirectory
from gateway.errors import GatewayError
from gateway.logging_config import setup_logging
from gateway.registry import NodeRegistry
from gateway.resolver import RedirectResolver
from gateway.routes import public_router, router as api_routes
from gateway.storage import LocalObjectStore

logger = logging.getLogger(__name__)


def build_coordination(settings: Settings) -> CoordinationStore:
    if not settings.redis_enabled:
        logger.info("Redis disabled, using process-local coordination (single node)")
        return InMemoryCoordinationStore()
    return RedisCoordinationStore(settings.redis_url, timeout=settings.coordination_timeout)


# --- Error handlers ---

async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{loc or 'request'}: {error.get('msg', 'invalid')}")
    return JSONResponse(
        status_code=422,
        content={"error": "request validation failed", "details": "; ".join(messages)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "internal server error"})


def create_app(settings: Optional[Settings] = None, coordination: Optional[CoordinationStore] = None) -> FastAPI:
    """Wires one gateway node.

    ``coordination`` is injected so several apps (nodes) can share one
    store in tests; by default it is built from settings.
    """
    settings = settings or Settings.from_env()
    if coordination is None:
        coordination = build_coordination(settings)

    self_node = settings.self_descriptor()
    objects = LocalObjectStore(settings.root_dir)
    directory = LocationDirectory(coordination)
    registry = NodeRegistry(coordination)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        logger.info(
            "Gateway node %s starting on %s:%s, storage root %s",
            self_node.id, self_node.host, self_node.port, objects.root.resolve(),
        )
        result = await registry.register(self_node)
        if not result.ok:
            logger.warning("Self registration failed, serving local traffic only: %s", result.error)
        yield
        await coordination.close()

    app = FastAPI(title="Object Storage Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.self_node = self_node
    app.state.coordination = coordination
    app.state.objects = objects
    app.state.directory = directory
    app.state.registry = registry
    app.state.resolver = RedirectResolver(objects, directory, self_node)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(public_router)
    app.include_router(api_routes)
    return app


if __name__ == "__main__":
    port = Settings.from_env().port
    uvicorn.run("gateway.main:create_app", factory=True, host="0.0.0.0", port=port)
