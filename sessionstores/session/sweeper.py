"""
Periodic sweeper for expired session records.

The sweeper calls a store's delete_expired() on a fixed interval. It has
three states:
- IDLE: Waiting for the next tick
- RUNNING: A sweep is in progress
- STOPPED: Stopped via stop() or task cancellation

A failed sweep is logged and counted; the loop always carries on to the
next tick.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from sessionstores.telemetry import record_metric, span

if TYPE_CHECKING:
    from sessionstores.session.store import ExpiredDeletion

logger = logging.getLogger(__name__)


class SweeperState(Enum):
    """
    Enumeration of sweeper states.

    - IDLE -> RUNNING: The interval elapsed
    - RUNNING -> IDLE: The sweep finished, successfully or not
    - IDLE/RUNNING -> STOPPED: stop() was called or the task was cancelled
    """
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class ExpirySweeper:
    """
    Cancellable background task that sweeps expired sessions.

    stop() interrupts the wait between ticks immediately. A sweep already
    in progress is allowed to finish first, so no delete is abandoned
    half-way by a cooperative stop.

    Example:
        sweeper = ExpirySweeper(sql_store, interval=timedelta(minutes=1))
        sweeper.start()
        ...
        await sweeper.stop()

    Attributes:
        store: The store whose delete_expired() is called
        interval: Seconds between the end of one wait and the next sweep
        sweep_count: Number of sweeps attempted
        failure_count: Number of sweeps that raised
        consecutive_failures: Failures since the last successful sweep
        last_error: The most recent sweep failure, if any
        last_success_at: When the last successful sweep completed
    """

    def __init__(
        self,
        store: "ExpiredDeletion",
        interval: Union[float, timedelta],
        name: Optional[str] = None,
    ):
        """
        Initialize a sweeper.

        Args:
            store: A store implementing ExpiredDeletion
            interval: Time between sweeps, as seconds or a timedelta
            name: Name used in logs and for the asyncio task
        """
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            raise ValueError("Sweep interval must be positive")

        self.store = store
        self.interval = seconds
        self.name = name or f"{getattr(store, 'backend_name', type(store).__name__)}-sweeper"
        self._state = SweeperState.IDLE
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.sweep_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.last_error: Optional[BaseException] = None
        self.last_success_at: Optional[datetime] = None

    @property
    def state(self) -> SweeperState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True while the background task is alive."""
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> bool:
        """
        Run a single sweep.

        Returns:
            True if delete_expired() succeeded, False if it raised.
        """
        self._state = SweeperState.RUNNING
        self.sweep_count += 1
        started = time.perf_counter()
        succeeded = False
        try:
            with span("session_store.sweep", {"sweeper.name": self.name}):
                await self.store.delete_expired()
            succeeded = True
            self.consecutive_failures = 0
            self.last_success_at = datetime.now(timezone.utc)
        except Exception as e:
            self.failure_count += 1
            self.consecutive_failures += 1
            self.last_error = e
            logger.error(
                "Expired session sweep failed, retrying next tick",
                exc_info=True,
                extra={"extra_data": {
                    "sweeper": self.name,
                    "consecutive_failures": self.consecutive_failures,
                    "error": str(e),
                }},
            )
        finally:
            if self._state is SweeperState.RUNNING:
                self._state = SweeperState.IDLE

        duration_ms = (time.perf_counter() - started) * 1000
        record_metric(
            "session_sweep_duration_ms",
            duration_ms,
            tags={"sweeper": self.name, "success": str(succeeded).lower()},
        )
        if succeeded:
            logger.debug("Expired sessions swept", extra={
                "extra_data": {"sweeper": self.name, "duration_ms": round(duration_ms, 2)}
            })
        return succeeded

    async def run(self) -> None:
        """
        Sweep every interval until stop() is called or the task is cancelled.

        The first sweep happens one interval after the loop starts.
        """
        self._state = SweeperState.IDLE
        logger.info("Expiry sweeper started", extra={
            "extra_data": {"sweeper": self.name, "interval_seconds": self.interval}
        })
        try:
            while not await self._wait_for_stop():
                await self.sweep_once()
        finally:
            self._state = SweeperState.STOPPED
            logger.info("Expiry sweeper stopped", extra={
                "extra_data": {"sweeper": self.name, "sweeps": self.sweep_count}
            })

    async def _wait_for_stop(self) -> bool:
        """Wait one interval; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True

    def start(self) -> asyncio.Task:
        """
        Spawn the sweep loop as a background task.

        Raises:
            RuntimeError: If the sweeper is already running.
        """
        if self.is_running:
            raise RuntimeError(f"Sweeper '{self.name}' is already running")
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    async def stop(self) -> None:
        """
        Ask the loop to exit and wait for it to finish.

        Cancelling the caller does not cancel the sweep in progress; the
        loop still exits on its own once that sweep completes.
        """
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # Only swallow the sweeper task's own cancellation
                if not task.cancelled():
                    raise
        self._state = SweeperState.STOPPED

    async def __aenter__(self) -> "ExpirySweeper":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
