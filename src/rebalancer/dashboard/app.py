"""FastAPI status API application factory."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from rebalancer.dashboard.routes import api


def create_dashboard_app(lifespan: Any = None) -> FastAPI:
    """Create the read-only status API.

    Route handlers read collaborators from ``app.state``: ``runner``,
    ``gateway``, ``oracle``, ``store``, ``price_history``, ``settings``.
    main.py sets these in its lifespan; tests set them directly.

    Args:
        lifespan: Optional async context manager for application lifespan events.
    """
    app = FastAPI(
        title="stETH Rebalancer Status",
        lifespan=lifespan,
    )
    app.include_router(api.router, prefix="/api")
    return app
