"""FastAPI application definition."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import lifespan, settings
from .errors import install_error_handlers
from .routes import api_router


def create_app(
    lifespan_context: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = lifespan,
    cors_allow_origins: list[str] | None = None,
) -> FastAPI:
    """Build the accessgate application.

    Args:
        lifespan_context: Startup/shutdown context. Tests pass None and
            attach services to ``app.state`` themselves.
        cors_allow_origins: Allowed CORS origins, defaulting to settings.

    Returns:
        Configured application.
    """
    app = FastAPI(
        title="accessgate",
        description="Identity and access resolution",
        version="1.0.0",
        lifespan=lifespan_context,
        redirect_slashes=False,  # Prevent 307 redirects that lose auth headers
    )

    origins = cors_allow_origins if cors_allow_origins is not None else settings.cors_allow_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
