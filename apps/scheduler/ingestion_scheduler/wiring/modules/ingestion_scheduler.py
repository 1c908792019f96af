from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Mapping

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from prometheus_client import start_http_server

from invest_loader.contexts.ingestion.adapters.outbound.config import (
    TriggerConfig,
    load_ingestion_runtime_config,
)

from .ingestion_runtime import IngestionMetrics, IngestionRuntime, build_ingestion_runtime

log = logging.getLogger(__name__)

_MISFIRE_GRACE_TIME_S = 300


class IngestionSchedulerApp:
    """
    Cron host for ingestion triggers.

    Parameters:
    - runtime: wired ingestion runtime; cron jobs and any co-hosted API share its gate and
      coordinator.
    - metrics_port: HTTP port for a standalone `/metrics` server; `None` when the hosting
      process already exposes metrics (the API app).

    Assumptions/Invariants:
    - One APScheduler job per trigger with a non-empty cron; `max_instances=1` keeps one run
      of a trigger in flight, later fires are coalesced.
    - Cross-trigger ordering (`after`) is enforced by the coordinator, not by cron offsets.
    """

    def __init__(self, *, runtime: IngestionRuntime, metrics_port: int | None = None) -> None:
        """
        Validate and store scheduler runtime dependencies.

        Parameters:
        - See class-level documentation.

        Returns:
        - None.

        Errors/Exceptions:
        - Raises `ValueError` on invalid constructor arguments.

        Side effects:
        - None.
        """
        if runtime is None:  # type: ignore[truthy-bool]
            raise ValueError("IngestionSchedulerApp requires runtime")
        if metrics_port is not None and metrics_port <= 0:
            raise ValueError("metrics_port must be > 0")
        self._runtime = runtime
        self._metrics_port = metrics_port
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def runtime(self) -> IngestionRuntime:
        return self._runtime

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def register_jobs(self, scheduler: AsyncIOScheduler) -> tuple[str, ...]:
        """
        Add one cron job per scheduled trigger.

        Parameters:
        - scheduler: APScheduler instance, started or not.

        Returns:
        - Ids of registered jobs, in config order.

        Side effects:
        - Mutates scheduler job store.
        """
        job_ids: list[str] = []
        for trigger in self._runtime.config.triggers:
            if not trigger.cron:
                log.info("trigger %s has no cron, on-demand only", trigger.name)
                continue
            scheduler.add_job(
                self._run_trigger,
                build_cron_trigger(trigger=trigger, tz_name=self._runtime.config.timezone),
                args=[trigger.name],
                id=f"ingestion_{trigger.name}",
                name=trigger.name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=_MISFIRE_GRACE_TIME_S,
            )
            job_ids.append(f"ingestion_{trigger.name}")
        return tuple(job_ids)

    def start(self) -> AsyncIOScheduler:
        """
        Register and start cron jobs on the running event loop.

        Returns:
        - Started APScheduler instance.

        Errors/Exceptions:
        - Raises `RuntimeError` when called twice without `stop()`.

        Side effects:
        - Starts the APScheduler timer on the current asyncio loop.
        """
        if self._scheduler is not None:
            raise RuntimeError("ingestion scheduler is already started")
        scheduler = AsyncIOScheduler(timezone=self._runtime.config.timezone)
        job_ids = self.register_jobs(scheduler)
        scheduler.start()
        self._scheduler = scheduler
        log.info("ingestion scheduler started: jobs=%s", ",".join(job_ids))
        return scheduler

    async def stop(self) -> None:
        """Stop firing cron jobs and wait for in-flight trigger runs to finish."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        await self._runtime.coordinator.wait_idle()
        log.info("ingestion scheduler stopped")

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Start cron jobs and run until stop event is set.

        Parameters:
        - stop_event: cooperative shutdown event.

        Returns:
        - None.

        Assumptions/Invariants:
        - Stop event is controlled by process signal handlers.

        Errors/Exceptions:
        - Propagates fatal initialization errors.

        Side effects:
        - Starts Prometheus endpoint (when a port is set) and the APScheduler loop.
        """
        if self._metrics_port is not None:
            start_http_server(self._metrics_port)
            log.info("scheduler metrics server started on port %s", self._metrics_port)

        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def _run_trigger(self, trigger_name: str) -> None:
        run = await self._runtime.coordinator.run_trigger(trigger_name)
        log.info(
            "trigger %s finished: task_id=%s status=%s duration_ms=%s",
            run.trigger_name,
            run.task_id,
            run.status,
            run.duration_ms,
        )


def build_cron_trigger(*, trigger: TriggerConfig, tz_name: str) -> CronTrigger:
    """Build APScheduler cron trigger from configured field arguments."""
    return CronTrigger(timezone=tz_name, **dict(trigger.cron))


def build_ingestion_scheduler_app(
    *,
    config_path: str,
    environ: Mapping[str, str],
    metrics_port: int,
) -> IngestionSchedulerApp:
    """
    Build fully wired ingestion scheduler app.

    Parameters:
    - config_path: path to `ingestion.yaml`.
    - environ: environment mapping with Postgres DSN and provider token.
    - metrics_port: Prometheus HTTP port.

    Returns:
    - Ready-to-run scheduler app instance.

    Errors/Exceptions:
    - Propagates config parsing and wiring errors.

    Side effects:
    - Creates Prometheus metric objects.
    """
    config = load_ingestion_runtime_config(Path(config_path))
    runtime = build_ingestion_runtime(
        config=config,
        environ=environ,
        metrics=IngestionMetrics(),
    )
    return IngestionSchedulerApp(runtime=runtime, metrics_port=metrics_port)
