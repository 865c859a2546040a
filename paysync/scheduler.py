"""
Scheduler module - Automated connector syncs.

Runs every configured connector on an interval using APScheduler. Each
connector gets one job with max_instances=1, so no stream of a connector
is ever fetched by two runs at once. Cursor writes take no lock and
rely on this.
"""

import logging
from datetime import datetime
from typing import Any

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from rich.console import Console
from rich.panel import Panel

from paysync.config import settings
from paysync.connectors import Connector
from paysync.storage import StateStorage
from paysync.sync.runner import RunResult, StreamRunner

logger = logging.getLogger(__name__)
console = Console()


class SyncScheduler:
    """
    Scheduler for automated connector synchronization.

    Runs a full pass over every stream of each connector every N minutes
    (default: 15).
    """

    def __init__(
        self,
        connectors: dict[str, Connector],
        storage: StateStorage,
        sync_interval_minutes: int | None = None,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        """
        Initialize the sync scheduler.

        Args:
            connectors: Connectors to schedule, by name
            storage: Cursor and record storage
            sync_interval_minutes: Minutes between runs.
                                   Defaults to settings.sync_interval_minutes.
            scheduler: APScheduler instance (default: BlockingScheduler)
        """
        self.connectors = connectors
        self.storage = storage
        self.sync_interval = sync_interval_minutes or settings.sync_interval_minutes
        self.scheduler = scheduler or BlockingScheduler()
        self._last_runs: dict[str, dict[str, Any]] = {}

    def register_jobs(self) -> None:
        """Add one interval job per connector."""
        for name in self.connectors:
            self.scheduler.add_job(
                self.run_connector,
                trigger=IntervalTrigger(minutes=self.sync_interval),
                args=[name],
                id=f"sync:{name}",
                name=f"Sync {name}",
                replace_existing=True,
                max_instances=1,  # One in-flight run per connector
                coalesce=True,
                next_run_time=datetime.now(),
            )

    def start(self) -> None:
        """Register jobs and start the scheduler (blocks with BlockingScheduler)."""
        console.print(Panel.fit(
            "[bold green]Starting Sync Scheduler[/bold green]\n"
            f"[dim]Connectors: {', '.join(self.connectors) or 'none'}[/dim]\n"
            f"[dim]Interval: every {self.sync_interval} minutes[/dim]",
            border_style="green",
        ))
        self.register_jobs()
        self.scheduler.start()

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        console.print("[yellow]Stopping scheduler...[/yellow]")
        self.scheduler.shutdown(wait=True)
        console.print("[green]Scheduler stopped[/green]")

    def run_connector(self, name: str) -> list[RunResult]:
        """Run every stream of one connector once."""
        connector = self.connectors[name]
        start_time = datetime.now()
        logger.info("Starting sync of %s", name)

        runner = StreamRunner(
            name,
            connector.plugin,
            self.storage,
            page_size=connector.spec.page_size,
        )
        results = runner.sync_connector(others=connector.spec.others)

        failed = [result for result in results if not result.success]
        self._last_runs[name] = {
            "time": start_time,
            "duration": (datetime.now() - start_time).total_seconds(),
            "records": sum(result.records for result in results),
            "failed_streams": [result.stream for result in failed],
        }
        if failed:
            logger.warning("%s: %d of %d streams failed", name, len(failed), len(results))
        return results

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(getattr(job, "next_run_time", None) or "") or None,
            })

        return {
            "running": self.scheduler.running,
            "jobs": jobs,
            "last_runs": self._last_runs,
        }
