import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from portrait_sheet.api.v1.routes import router as api_v1_router
from portrait_sheet.core.config import Settings
from portrait_sheet.services.jobs import JobService, JobStore
from portrait_sheet.services.openai_http_client import OpenAIImagesClient
from portrait_sheet.services.pipeline import Generator, SheetPipeline
from portrait_sheet.services.rate_limiter import ProviderRateLimiter
from portrait_sheet.services.variants import VariantGenerator

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[Generator] = None,
) -> FastAPI:
    """
    Application factory for the Portrait Sheet API.

    The job store, rate limiter and pipeline live for one application
    lifespan. Passing `generator` replaces the remote provider entirely, which
    is how tests run without a credential.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or Settings()
        configure_logging(app_settings.log_level)
        variant_generator = generator
        rate_limiter = None
        if variant_generator is None:
            rate_limiter = ProviderRateLimiter(
                max_requests_per_minute=app_settings.provider_max_requests_per_minute,
                burst_capacity=app_settings.provider_burst_capacity,
                min_interval_seconds=app_settings.provider_min_interval_seconds,
            )
            # Fails startup when OPENAI_API_KEY is missing.
            client = OpenAIImagesClient.from_settings(app_settings, rate_limiter=rate_limiter)
            variant_generator = VariantGenerator(client)

        store = JobStore()
        pipeline = SheetPipeline(
            store, variant_generator, provider_workers=app_settings.provider_max_workers
        )
        app.state.settings = app_settings
        app.state.rate_limiter = rate_limiter
        app.state.job_service = JobService(store, pipeline)
        logger.info("Portrait Sheet API started")
        yield
        logger.info("Shutting down Portrait Sheet API...")
        await store.drain(timeout=app_settings.shutdown_drain_seconds)
        pipeline.close()

    app = FastAPI(
        title="Portrait Sheet API",
        version="0.1.0",
        description="Generates 8-emotion 576x288 portrait sheets from one reference image.",
        lifespan=lifespan,
    )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    app.include_router(api_v1_router)

    return app


def serve() -> None:
    """Console entry point: load configuration and run the server."""
    settings = Settings()
    configure_logging(settings.log_level)
    settings.require_api_key()
    logger.info("Portrait Generator running at http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


app = create_app()
