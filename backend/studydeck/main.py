"""FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studydeck import __version__
from studydeck.config import get_settings
from studydeck.api import runs, presentations

logger = logging.getLogger("studydeck")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()

    # Create storage directory
    storage_path = Path(settings.storage_path)
    storage_path.mkdir(parents=True, exist_ok=True)

    logger.info("studydeck backend starting...")
    logger.info(f"Storage path: {storage_path.absolute()}")
    logger.info(f"Default LLM: {settings.default_llm_provider}")
    logger.info(f"Asset prefetch: {'on' if settings.prefetch_assets else 'off'}")

    yield

    logger.info("studydeck backend shutting down...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="studydeck API",
        description="Streaming AI study presentation generator",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API routers
    app.include_router(runs.router, prefix="/api/v1", tags=["runs"])
    app.include_router(presentations.router, prefix="/api/v1", tags=["presentations"])

    @app.get("/")
    async def root():
        """Root endpoint - API info."""
        return {
            "name": "studydeck API",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "studydeck.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
