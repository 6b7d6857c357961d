"""Daily scheduler that produces the puzzle batch once per calendar date."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Protocol

from rebus.errors import BatchProductionError, GenerationError
from rebus.metrics.prometheus_exporter import batch_runs_total, last_batch_success_timestamp
from rebus.services.assembler import PuzzleRecord
from rebus.services.dates import format_date

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Lifecycle of the scheduling loop."""

    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"


class BatchGateway(Protocol):
    async def exists(self, date: str) -> bool:
        ...


class Producer(Protocol):
    async def produce(self, date: str) -> list[PuzzleRecord]:
        ...


class DailyScheduler:
    """Runs batch production at a fixed local time of day and on demand."""

    def __init__(
        self,
        gateway: BatchGateway,
        producer: Producer,
        *,
        hour: int,
        minute: int,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid batch time {hour:02d}:{minute:02d}")
        self._gateway = gateway
        self._producer = producer
        self._hour = hour
        self._minute = minute
        self._clock = clock
        self._production_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._started = False
        self.state = SchedulerState.IDLE
        self.next_run_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._started

    def next_run_time(self, now: datetime) -> datetime:
        """Return the next occurrence of the configured time strictly after ``now``."""

        candidate = now.replace(hour=self._hour, minute=self._minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    async def start(self) -> None:
        """Run the catch-up check, then launch the background loop."""

        if self._started:
            logger.warning("Scheduler is already running")
            return

        self._started = True
        self._stop_event = asyncio.Event()
        logger.info("Scheduler started. Will run daily at %02d:%02d", self._hour, self._minute)

        await self._catch_up()
        if self._stop_event.is_set():
            return
        self._task = asyncio.create_task(self._loop(), name="rebus-daily-scheduler")

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it; an in-flight batch finishes first."""

        if not self._started or self._stop_event is None:
            return
        self._started = False
        self._stop_event.set()
        if self._task is not None:
            task, self._task = self._task, None
            await task
        self.state = SchedulerState.IDLE
        logger.info("Scheduler stopped")

    async def trigger_today(self) -> bool:
        """Produce today's batch unless it exists; errors propagate to the caller."""

        return await self._produce_if_absent(format_date(self._clock()), trigger="manual")

    async def _catch_up(self) -> None:
        now = self._clock()
        scheduled = now.replace(hour=self._hour, minute=self._minute, second=0, microsecond=0)
        if now < scheduled:
            return
        logger.info("Scheduled time (%02d:%02d) has passed, checking today's batch", self._hour, self._minute)
        await self._run_guarded(format_date(now), trigger="catch_up")

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            now = self._clock()
            self.next_run_at = self.next_run_time(now)
            delay = (self.next_run_at - now).total_seconds()
            self.state = SchedulerState.WAITING
            logger.info(
                "Next batch job scheduled for %s (in %.0fs)",
                self.next_run_at.strftime("%Y-%m-%d %H:%M:%S"),
                delay,
            )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            await self._run_guarded(format_date(self._clock()), trigger="timer")
        self.state = SchedulerState.IDLE

    async def _run_guarded(self, date: str, *, trigger: str) -> None:
        try:
            await self._produce_if_absent(date, trigger=trigger)
        except Exception:  # noqa: BLE001
            logger.exception("Scheduled batch production failed for %s", date)

    async def _produce_if_absent(self, date: str, *, trigger: str) -> bool:
        async with self._production_lock:
            try:
                exists = await self._gateway.exists(date)
            except GenerationError as exc:
                batch_runs_total.labels(trigger=trigger, outcome="failed").inc()
                raise BatchProductionError("exists", date, exc) from exc
            if exists:
                logger.info("Puzzles already exist for %s, skipping", date)
                batch_runs_total.labels(trigger=trigger, outcome="skipped").inc()
                return False

            previous_state = self.state
            self.state = SchedulerState.RUNNING
            try:
                await self._producer.produce(date)
            except Exception:
                batch_runs_total.labels(trigger=trigger, outcome="failed").inc()
                raise
            finally:
                self.state = previous_state
            batch_runs_total.labels(trigger=trigger, outcome="produced").inc()
            last_batch_success_timestamp.set(time.time())
            return True
