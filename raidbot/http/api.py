"""FastAPI application factory for raidbot.

Every module under :mod:`raidbot.http.routes` exposing an ``APIRouter`` named
``router`` is registered automatically.  The running :class:`RaidEngine` is
stored on ``app.state`` for the dependencies in :mod:`raidbot.http.deps`.
"""

from __future__ import annotations

from importlib import import_module
import pkgutil

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import structlog

from ..config import ServerConfig
from ..engine import RaidEngine


logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and the resulting status code."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        logger.info("request.start", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
            logger.info(
                "request.success",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
        except Exception as exc:  # pragma: no cover
            logger.exception(
                "request.failure",
                method=request.method,
                path=request.url.path,
                error=str(exc),
            )
            raise


def create_app(engine: RaidEngine, server: ServerConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI()
    app.state.engine = engine
    app.state.api_key = (server or ServerConfig()).api_key
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        """Simple health check endpoint."""
        return {"status": "ok", "activeRaids": len(engine.registry)}

    from . import routes as routes_pkg

    for _, module_name, _ in pkgutil.iter_modules(routes_pkg.__path__):
        module = import_module(f"{routes_pkg.__name__}.{module_name}")
        router = getattr(module, "router", None)
        if router is not None:
            app.include_router(router)

    return app
