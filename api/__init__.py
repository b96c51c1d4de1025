"""
API module - FastAPI application factory and routes.
"""

from fastapi import FastAPI

from logger import logger

from .routes import router


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="ScreenPilot",
        description="Vision-guided desktop and browser automation agents",
        version="0.1.0",
    )

    # Register middleware
    @app.middleware("http")
    async def log_requests(request, call_next):
        logger.info(f"[API] {request.method} {request.url.path}")
        response = await call_next(request)
        return response

    # Register routes
    app.include_router(router)

    return app


app = create_app()

__all__ = ["create_app", "app"]
