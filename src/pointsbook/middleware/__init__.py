"""Middleware registration."""

from fastapi import FastAPI

from pointsbook.config import Settings
from pointsbook.middleware.cors import setup_cors
from pointsbook.middleware.error_handler import setup_error_handlers
from pointsbook.middleware.logging import setup_logging
from pointsbook.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap error responses from the inner layers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
