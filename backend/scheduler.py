"""
Periodic and debounced pattern scans.

The scan itself is injected as a plain callable, so tests can call
run_now() synchronously instead of waiting on timers.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()

INTERVAL_JOB_ID = "pattern_scan"
INITIAL_JOB_ID = "pattern_scan_initial"
DEBOUNCE_JOB_ID = "pattern_scan_debounce"
INITIAL_DELAY_SECONDS = 1


class DetectionScheduler:
    """Runs the scan every interval_seconds, shortly after start, and after task-count changes."""

    def __init__(
        self,
        scan: Callable[[], Any],
        interval_seconds: float = 300,
        debounce_seconds: float = 2,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.scan = scan
        self.interval_seconds = interval_seconds
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self.scheduler = BackgroundScheduler()
        self._last_task_count: Optional[int] = None

    def start(self, paused: bool = False):
        self.scheduler.add_job(
            self.run_now,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=INTERVAL_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.run_now,
            trigger=DateTrigger(run_date=self.clock() + timedelta(seconds=INITIAL_DELAY_SECONDS)),
            id=INITIAL_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.scheduler.start(paused=paused)
        logger.info("detection_scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("detection_scheduler_stopped")

    def run_now(self):
        """Run one scan synchronously and return its result."""
        return self.scan()

    def notify_task_count(self, count: int) -> bool:
        """Schedule a debounced scan when the task count changed.

        A pending debounced scan is replaced, so bursts of changes coalesce
        into one scan. Returns True when a scan was scheduled.
        """
        if count == self._last_task_count:
            return False
        self._last_task_count = count
        if not self.scheduler.running:
            return False
        self.scheduler.add_job(
            self.run_now,
            trigger=DateTrigger(run_date=self.clock() + timedelta(seconds=self.debounce_seconds)),
            id=DEBOUNCE_JOB_ID,
            replace_existing=True,
        )
        return True

    def _on_job_error(self, event):
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
