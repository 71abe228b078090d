"""APScheduler bridge that turns schedule and interval triggers into events.

One job is registered per distinct cron expression (and timezone) or interval
found anywhere in the enabled automations' trigger trees. Firing a job only
dispatches an event; the trigger matcher decides which automations run.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger as APSIntervalTrigger

from ..core.config import SchedulerConfig
from ..core.logger import get_logger
from .models import IntervalTrigger, ScheduleTrigger, iter_triggers
from .registry import AutomationRegistry
from .triggers import IntervalEvent, ScheduleEvent, TriggerEvent, normalise_cron

logger = get_logger("automation.scheduling")

SCHEDULE_JOB_PREFIX = "schedule:"
INTERVAL_JOB_PREFIX = "interval:"


def schedule_job_id(cron_expression: str, timezone: str) -> str:
    return f"{SCHEDULE_JOB_PREFIX}{timezone}:{normalise_cron(cron_expression)}"


def interval_job_id(interval_ms: int) -> str:
    return f"{INTERVAL_JOB_PREFIX}{interval_ms}"


class AutomationScheduler:
    """Keeps APScheduler jobs in step with the registry's time-based triggers."""

    def __init__(
        self,
        registry: AutomationRegistry,
        on_event: Callable[[TriggerEvent], Any],
        config: SchedulerConfig | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        """Initialize the scheduler bridge.

        Args:
            registry: Source of automation definitions
            on_event: Called with every ScheduleEvent/IntervalEvent fired
            config: Scheduler configuration
            scheduler: Pre-built APScheduler instance (mainly for tests)
        """
        self.registry = registry
        self.config = config or SchedulerConfig()
        self._on_event = on_event
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self.config.timezone)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._listening = False

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def job_ids(self) -> list[str]:
        return sorted(job.id for job in self._scheduler.get_jobs())

    def start(self) -> None:
        """Register the current jobs and start firing them.

        Must be called from a running event loop.
        """
        if not self.config.enabled:
            logger.info("Scheduler disabled; schedule and interval triggers will not fire")
            return
        if not self._listening:
            self.registry.add_change_listener(self.sync)
            self._listening = True
        self.sync()
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started with %d jobs", len(self.job_ids))

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shut down")

    def sync(self) -> None:
        """Add jobs for new cron expressions/intervals and drop stale ones."""
        desired = self._collect_triggers()
        existing = {job.id for job in self._scheduler.get_jobs()}

        for job_id in existing - set(desired):
            self._scheduler.remove_job(job_id)
            logger.debug("Removed job %s", job_id)

        for job_id, trigger in desired.items():
            if job_id in existing:
                continue
            try:
                self._add_job(job_id, trigger)
            except (ValueError, LookupError) as exc:
                logger.error("Cannot schedule %s: %s", job_id, exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _collect_triggers(self) -> dict[str, ScheduleTrigger | IntervalTrigger]:
        desired: dict[str, ScheduleTrigger | IntervalTrigger] = {}
        for automation in self.registry.get_all():
            if not automation.enabled:
                continue
            for trigger in iter_triggers(automation.trigger):
                if isinstance(trigger, ScheduleTrigger):
                    desired[schedule_job_id(trigger.cron_expression, trigger.timezone)] = trigger
                elif isinstance(trigger, IntervalTrigger):
                    desired[interval_job_id(trigger.interval_ms)] = trigger
        return desired

    def _add_job(self, job_id: str, trigger: ScheduleTrigger | IntervalTrigger) -> None:
        if isinstance(trigger, ScheduleTrigger):
            self._scheduler.add_job(
                self._fire_schedule,
                trigger=CronTrigger.from_crontab(
                    normalise_cron(trigger.cron_expression), timezone=trigger.timezone
                ),
                args=[trigger.cron_expression, trigger.timezone],
                id=job_id,
                coalesce=True,
            )
        else:
            self._scheduler.add_job(
                self._fire_interval,
                trigger=APSIntervalTrigger(
                    seconds=trigger.interval_ms / 1000, timezone=self.config.timezone
                ),
                args=[trigger.interval_ms],
                id=job_id,
                coalesce=True,
            )
        logger.debug("Added job %s", job_id)

    async def _fire_schedule(self, cron_expression: str, timezone: str) -> None:
        self._on_event(ScheduleEvent(cron_expression=cron_expression, timezone=timezone))

    async def _fire_interval(self, interval_ms: int) -> None:
        self._on_event(IntervalEvent(interval_ms=interval_ms))

    @staticmethod
    def _on_job_error(event: JobExecutionEvent) -> None:
        logger.error("Scheduled job %s failed: %s", event.job_id, event.exception)


__all__ = ["AutomationScheduler", "schedule_job_id", "interval_job_id"]
