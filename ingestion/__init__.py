"""
Dataset ingestion components.

Modules:
    sources: Closed catalog of dataset sources and name resolution
    base: Connector abstraction and the context / output types it uses
    catalog: Concrete connectors and the source -> connector registry
    writer: Streaming writer that hashes and counts while persisting
    ledger: Snapshot ledger over dataset_sources / dataset_snapshots
    runner: Orchestrator with retries and per-source serialization
    scheduler: APScheduler cron sweep over the configured sources

Subpackages:
    connectors: Paged-API, bulk-file, archive-to-records and static connectors

Usage:
    from core.config import settings
    from core.database import create_engine, create_session_maker
    from ingestion.catalog import build_connector_registry
    from ingestion.ledger import SnapshotLedger
    from ingestion.runner import DatasetIngestionRunner

    runner = DatasetIngestionRunner(
        SnapshotLedger(create_session_maker(create_engine(settings.DATABASE_URL))),
        build_connector_registry(settings)
    )
    snapshot = await runner.ingest("DailyMed")

Error Handling:
    Connector, writer and cancellation failures are retried by the runner.
    Ledger failures propagate at once. When every attempt fails the runner
    records a failed snapshot and raises IngestionFailedError.
"""
