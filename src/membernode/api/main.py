"""Member Node FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from membernode import __version__
from membernode.adapter import MemberNodeAdapter, build_adapter
from membernode.api.errors import register_exception_handlers
from membernode.api.middleware.request_id import RequestIdMiddleware
from membernode.api.routes.health import router as health_router
from membernode.api.routes.objects import router as objects_router
from membernode.config import load_config
from membernode.observability import configure_tracing

logger = logging.getLogger(__name__)


def create_app(adapter: MemberNodeAdapter | None = None) -> FastAPI:
    """Create and configure the Member Node application.

    Args:
        adapter: Adapter to serve. If None, one is built from the configuration
            named by MEMBERNODE_CONFIG_PATH and the environment.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigError: If no adapter is given and the configuration is invalid.
    """
    if adapter is None:
        adapter = build_adapter(load_config())

    app = FastAPI(
        title="Member Node API",
        description="DataONE Member Node adapter over a data repository",
        version=__version__,
    )
    app.state.adapter = adapter

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(objects_router)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        adapter.close()

    logger.info("Member Node API created for node %s", adapter.node_id)
    return app
