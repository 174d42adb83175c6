"""HTTP pipeline wiring: logging, error mapping, request context and CORS."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pglms.config import Settings
from pglms.middleware.error_handler import setup_error_handlers
from pglms.middleware.logging import setup_logging
from pglms.middleware.request_context import REQUEST_ID_HEADER, RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install the pipeline on ``app``.

    Starlette wraps in reverse-add order, so CORS goes on last and also
    decorates the JSON error bodies.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER, "X-Service-Key"],
        expose_headers=[REQUEST_ID_HEADER],
    )
