"""FastAPI application factory."""
from fastapi import FastAPI

from printsync.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app.

    The engine is created lazily by the get_engine dependency on the first
    request, which also creates and migrates the tables.
    """
    app = FastAPI(
        title="Printsync API",
        description="Printful catalog sync: trigger, monitor, cancel and recover runs",
        version="0.1.0",
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
