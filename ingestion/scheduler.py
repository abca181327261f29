import logging
from typing import Any, Dict, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.exceptions import SourceNotFoundError
from ingestion.runner import DatasetIngestionRunner
from ingestion.sources import DatasetSourceName, resolve_source

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "dataset_ingestion_sweep"


def resolve_scheduled_sources(source_names: Iterable[str]) -> List[DatasetSourceName]:
    """Resolve configured names, dropping unknown ones and duplicates"""
    resolved: List[DatasetSourceName] = []
    for name in source_names:
        try:
            source = resolve_source(name)
        except SourceNotFoundError:
            logger.warning(f"Scheduler: ignoring unknown dataset source '{name}'")
            continue
        if source not in resolved:
            resolved.append(source)
    return resolved


class DatasetScheduler:
    def __init__(
        self,
        runner: DatasetIngestionRunner,
        cron_expression: str,
        source_names: Iterable[str],
        scheduler: Optional[AsyncIOScheduler] = None
    ):
        self.runner = runner
        self.cron_expression = cron_expression
        self.sources = resolve_scheduled_sources(source_names)
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.started = False

    async def run_sweep(self) -> Dict[str, Any]:
        """Ingest every scheduled source one after another; a failure never stops the sweep"""
        logger.info(f"Scheduler: starting dataset sweep for {len(self.sources)} sources")
        outcomes: Dict[str, Any] = {}

        for source in self.sources:
            try:
                snapshot = await self.runner.ingest(source.value)
                outcomes[source.value] = snapshot.status
                logger.info(f"Scheduler: {source.value} ingested (snapshot {snapshot.id})")
            except Exception as e:
                outcomes[source.value] = "failed"
                logger.error(f"Scheduler: ingestion of {source.value} failed - {e}")

        logger.info("Scheduler: dataset sweep finished")
        return outcomes

    def start(self):
        """Start the scheduler; does nothing when no source is scheduled"""
        if not self.sources:
            logger.info("Scheduler: no dataset sources scheduled, not starting")
            return

        self.scheduler.add_job(
            self.run_sweep,
            trigger=CronTrigger.from_crontab(self.cron_expression, timezone="UTC"),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self.started = True
        logger.info(
            f"Dataset scheduler started ({self.cron_expression}) for "
            f"{', '.join(source.value for source in self.sources)}"
        )

    def stop(self):
        if not self.started:
            return
        self.scheduler.shutdown(wait=False)
        self.started = False
        logger.info("Dataset scheduler stopped")
