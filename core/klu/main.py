"""Klu Core - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from klu import __version__
from klu.api.routes import chat, models, tools
from klu.api.schemas import HealthResponse
from klu.config import API_PREFIX, HOST, PORT
from klu.engine.runtime import KluRuntime
from klu.utils.logging import logger

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def create_app(runtime_factory: Optional[Callable[[], KluRuntime]] = None) -> FastAPI:
    """
    Build the application.

    Args:
        runtime_factory: Builds the runtime at startup (default: KluRuntime)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info(f"Klu Core v{__version__} starting...")
        app.state.runtime = (runtime_factory or KluRuntime)()
        logger.info(f"Server running at http://{HOST}:{PORT}")
        yield
        # Cleanup on shutdown
        await app.state.runtime.shutdown()
        logger.info("Klu Core stopped")

    app = FastAPI(
        title="Klu Core",
        description="Local model runtime and tool orchestration for the Klu assistant",
        version=__version__,
        lifespan=lifespan,
    )

    # Configure CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    app.include_router(chat.router, prefix=API_PREFIX)
    app.include_router(models.router, prefix=API_PREFIX)
    app.include_router(tools.router, prefix=API_PREFIX)

    @app.get(f"{API_PREFIX}/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", version=__version__)

    return app


app = create_app()


def run() -> None:
    """Serve the API on the local interface."""
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run()
