"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine
from api.errors import register_exception_handlers
from api.middleware import RequestContextMiddleware
from api.routes import datasets, health
from core.config import Settings, settings as default_settings
from core.database import create_session_maker, create_tables, engine as default_engine
from ingestion.catalog import ConnectorRegistry, build_connector_registry
from ingestion.ledger import SnapshotLedger
from ingestion.runner import DatasetIngestionRunner, HttpClientFactory
from ingestion.scheduler import DatasetScheduler
from ingestion.sources import DatasetSourceName
from core.logging import setup_logging
import logging

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    registry: Optional[ConnectorRegistry] = None,
    http_client_factory: Optional[HttpClientFactory] = None,
    enable_scheduler: bool = True
) -> FastAPI:
    """Build the application and wire ledger, runner and scheduler onto app.state"""
    config = config or default_settings
    engine = engine or default_engine

    session_maker = create_session_maker(engine)
    ledger = SnapshotLedger(session_maker)
    runner = DatasetIngestionRunner(
        ledger,
        registry if registry is not None else build_connector_registry(config),
        config=config,
        http_client_factory=http_client_factory
    )
    scheduler = DatasetScheduler(
        runner,
        config.DATASET_CRON_EXPRESSION,
        config.scheduled_sources if enable_scheduler else []
    )

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        """Create tables, register the catalog and start the scheduler; stop it on exit"""
        logger.info("Starting Dataset Ingestion API")
        logger.info(f"Environment: {config.ENVIRONMENT}")
        logger.info(f"Database: {config.DATABASE_URL.split('@')[1] if '@' in config.DATABASE_URL else 'configured'}")

        await create_tables(engine)
        await ledger.register_sources(source.value for source in DatasetSourceName)

        scheduler.start()
        try:
            yield
        finally:
            logger.info("Shutting down Dataset Ingestion API")
            scheduler.stop()

    app = FastAPI(
        title="Dataset Ingestion API",
        description="Snapshots of public medical datasets with a queryable ledger",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.state.session_maker = session_maker
    app.state.ledger = ledger
    app.state.runner = runner
    app.state.scheduler = scheduler

    app.include_router(health.router)
    app.include_router(datasets.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Dataset Ingestion API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "datasets": "/api/datasets",
                "latest": "/api/datasets/{source}/latest",
                "ingest": "/api/datasets/{source}/ingest"
            }
        }

    return app


setup_logging()

app = create_app()
