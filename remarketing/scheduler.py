"""
Recurring recommendation scheduler with a single-flight execution gate.

One ``RecommendationScheduler`` owns at most one live timer thread and one
busy lock.  Every workflow pass (timer firing or manual trigger) must take
the busy lock without blocking; whoever loses the race is turned away.

Scheduled pass, in order:
  1. Expiry sweep        (past-due active → expired)
  2. Retention cleanup   (old terminal records deleted)
  3. Workflow            (all customers, force_refresh=True)
  4. Notification        (best effort: success summary or error summary)

Manual trigger:
  - No retention cleanup; expiry sweep only when ``force_refresh``.
  - Raises ``WorkflowBusyError`` immediately if a pass is in flight.
  - Workflow errors propagate to the caller.

Schedules are either cron expressions (evaluated with ``croniter`` in the
configured timezone) or intervals such as ``"6h"``::

    scheduler = build_scheduler(config)
    scheduler.start()
    scheduler.update_schedule("0 3 * * *")
    scheduler.get_status()
    scheduler.stop()

``stop()`` only prevents future firings; an in-flight pass runs to completion.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import croniter

from remarketing.errors import WorkflowBusyError
from remarketing.notifications import (
    AdminNotifier,
    LogNotifier,
    build_report,
    send_safely,
)
from remarketing.pipeline.maintenance import (
    DEFAULT_RETENTION_DAYS,
    run_expiry_sweep,
    run_retention_cleanup,
)
from remarketing.pipeline.workflow import WorkflowResult, WorkflowRunner
from remarketing.taxonomy.recommendation_taxonomy import RecommendationType
from remarketing.utils.logging import pass_context
from remarketing.utils.time_utils import Clock, parse_interval_seconds, utcnow

if TYPE_CHECKING:
    from remarketing.config import AppConfig
    from remarketing.interfaces import RecommendationStore

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = "0 2 */2 * *"
DEFAULT_TIMEZONE = "America/New_York"

_INTERVAL_RE = re.compile(r"^\s*\d+(\.\d+)?\s*[smhd]\s*$", re.IGNORECASE)


# ── Schedule parsing ──────────────────────────────────────────────────────────

class Schedule:
    """A parsed period spec: cron expression or fixed interval.

    Args:
        spec:     ``"0 2 */2 * *"`` style cron, or ``"30s"`` / ``"15m"`` /
                  ``"6h"`` / ``"2d"``.
        timezone_name: IANA zone used to evaluate cron fields.

    Raises:
        ValueError: If the spec or timezone is not recognised.
    """

    def __init__(self, spec: str, timezone_name: str = DEFAULT_TIMEZONE) -> None:
        self.spec = spec.strip()
        if not self.spec:
            raise ValueError("Schedule must not be empty.")
        try:
            self.tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{timezone_name}'.") from exc

        self.interval: Optional[timedelta] = None
        if _INTERVAL_RE.match(self.spec):
            self.interval = timedelta(seconds=parse_interval_seconds(self.spec))
        elif not croniter.croniter.is_valid(self.spec):
            raise ValueError(
                f"Invalid schedule '{spec}'. Expected a cron expression "
                "(e.g. '0 2 */2 * *') or an interval (e.g. '6h')."
            )

    @property
    def is_interval(self) -> bool:
        return self.interval is not None

    def next_after(self, now: datetime) -> datetime:
        """Next firing strictly after ``now``, as an aware UTC datetime."""
        if self.interval is not None:
            return now + self.interval
        local_now = now.astimezone(self.tz)
        nxt = croniter.croniter(self.spec, local_now).get_next(datetime)
        return nxt.astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"Schedule({self.spec!r}, tz={self.tz.key!r})"


# ── Result / status types ─────────────────────────────────────────────────────

@dataclass
class RunSummary:
    """Outcome of the most recent completed pass.

    Attributes:
        kind:            ``"scheduled"`` or ``"manual"``.
        started_at:      UTC start time.
        finished_at:     UTC end time.
        status:          ``"success"`` or ``"failed"``.
        processed:       Customers processed.
        failed:          Customers that failed.
        total_generated: Recommendations inserted.
        expired:         Records expired by the pre-pass sweep.
        cleaned_up:      Records deleted by retention cleanup.
        error:           Error message when ``status == "failed"``.
    """

    kind:            str
    started_at:      datetime
    finished_at:     Optional[datetime] = None
    status:          str                = "running"
    processed:       int                = 0
    failed:          int                = 0
    total_generated: int                = 0
    expired:         int                = 0
    cleaned_up:      int                = 0
    error:           Optional[str]      = None

    def counts(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "total_generated": self.total_generated,
            "expired": self.expired,
            "cleaned_up": self.cleaned_up,
        }


@dataclass(frozen=True)
class SchedulerStatus:
    """Point-in-time view returned by ``get_status()``."""

    scheduled: bool
    running:   bool
    schedule:  str
    next_run:  Optional[datetime]   = None
    last_run:  Optional[RunSummary] = None


# ── Timer ─────────────────────────────────────────────────────────────────────

class _Timer:
    """Background thread firing ``callback`` on each schedule tick."""

    def __init__(
        self,
        schedule: Schedule,
        callback: Callable[[], None],
        clock: Clock,
    ) -> None:
        self.schedule = schedule
        self._callback = callback
        self._clock = clock
        self._cancelled = threading.Event()
        # Serialises cancel() with the pre-fire cancellation check.
        self._fire_gate = threading.Lock()
        self.next_run: Optional[datetime] = None
        self.thread = threading.Thread(
            target=self._loop, name="remarketing-scheduler", daemon=True
        )

    def start(self) -> None:
        self.next_run = self.schedule.next_after(self._clock())
        self.thread.start()

    def cancel(self) -> None:
        """Stop future firings.  Does not wait for an in-flight callback."""
        with self._fire_gate:
            self._cancelled.set()
        self.next_run = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _loop(self) -> None:
        while not self._cancelled.is_set():
            now = self._clock()
            self.next_run = self.schedule.next_after(now)
            delay = max(0.0, (self.next_run - now).total_seconds())
            if self._cancelled.wait(delay):
                break
            with self._fire_gate:
                if self._cancelled.is_set():
                    break
            try:
                self._callback()
            except Exception as exc:
                logger.error("Scheduled callback raised: %s", exc, exc_info=True)


# ── Scheduler ─────────────────────────────────────────────────────────────────

class RecommendationScheduler:
    """Owns the recurring timer and the single-flight busy gate.

    Args:
        runner:         Workflow runner invoked by every pass.
        store:          Recommendation store for maintenance jobs.
        notifier:       Admin notifier for scheduled passes (log by default).
        schedule:       Period spec (cron or interval).
        timezone_name:  Zone in which cron fields are evaluated.
        retention_days: Age after which terminal records are deleted.
        clock:          Returns "now" as an aware UTC datetime.

    Raises:
        ValueError: If ``schedule`` or ``timezone_name`` is invalid.
    """

    def __init__(
        self,
        runner: WorkflowRunner,
        store: "RecommendationStore",
        notifier: Optional[AdminNotifier] = None,
        schedule: str = DEFAULT_SCHEDULE,
        timezone_name: str = DEFAULT_TIMEZONE,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Clock = utcnow,
    ) -> None:
        self.runner = runner
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.timezone_name = timezone_name
        self.retention_days = retention_days
        self.clock = clock
        self._schedule = Schedule(schedule, timezone_name)
        self._busy = threading.Lock()
        self._state_lock = threading.Lock()
        self._timer: Optional[_Timer] = None
        self._last_run: Optional[RunSummary] = None

    # ── Timer control ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Install the recurring timer.  No-op (with a warning) if already scheduled."""
        with self._state_lock:
            if self._timer is not None:
                logger.warning("Scheduler already started; ignoring start().")
                return
            self._timer = self._install(self._schedule)
        logger.info(
            "Scheduler started | schedule=%s | tz=%s",
            self._schedule.spec, self.timezone_name,
        )

    def stop(self) -> None:
        """Cancel the timer.  An in-flight pass is left to finish."""
        with self._state_lock:
            timer, self._timer = self._timer, None
            if timer is not None:
                timer.cancel()
        if timer is not None:
            logger.info("Scheduler stopped.")

    def update_schedule(self, spec: str) -> None:
        """Replace the period spec and reinstall the timer.

        The new spec is validated first; on ``ValueError`` the current timer
        keeps running unchanged.  The swap happens under the state lock, so at
        most one timer is ever live.
        """
        new_schedule = Schedule(spec, self.timezone_name)
        with self._state_lock:
            old = self._timer
            if old is not None:
                old.cancel()
            self._schedule = new_schedule
            self._timer = self._install(new_schedule)
        logger.info("Schedule updated to '%s'.", new_schedule.spec)

    def get_status(self) -> SchedulerStatus:
        with self._state_lock:
            timer = self._timer
            return SchedulerStatus(
                scheduled=timer is not None,
                running=self._busy.locked(),
                schedule=self._schedule.spec,
                next_run=timer.next_run if timer is not None else None,
                last_run=self._last_run,
            )

    # ── Passes ────────────────────────────────────────────────────────────────

    def run_scheduled_pass(self) -> Optional[RunSummary]:
        """Run one automatic pass: sweep, cleanup, refresh-all, notify.

        Never raises.  Returns ``None`` when skipped because another pass
        holds the busy gate.
        """
        if not self._busy.acquire(blocking=False):
            logger.warning("Scheduled pass skipped: a generation pass is already running.")
            return None
        try:
            with pass_context("scheduled"):
                summary = RunSummary(kind="scheduled", started_at=self.clock())
                logger.info("=== Scheduled recommendation pass starting ===")
                summary.expired = run_expiry_sweep(self.store, self.clock)
                summary.cleaned_up = run_retention_cleanup(
                    self.store, self.retention_days, self.clock
                )
                try:
                    result = self.runner.execute_workflow(force_refresh=True)
                except Exception as exc:
                    logger.error("Scheduled pass failed: %s", exc, exc_info=True)
                    self._finish(summary, error=str(exc))
                    send_safely(
                        self.notifier,
                        build_report("failed", summary.finished_at, error=summary.error),
                    )
                else:
                    self._finish(summary, result=result)
                    send_safely(
                        self.notifier,
                        build_report("success", summary.finished_at, summary=summary.counts()),
                    )
                return summary
        finally:
            self._busy.release()

    def trigger_manual_generation(
        self,
        force_refresh: bool = False,
        customer_ids: Optional[Iterable[str]] = None,
        allowed_types: Optional[Iterable[RecommendationType]] = None,
    ) -> WorkflowResult:
        """Run one pass now, on the caller's thread.

        Args:
            force_refresh: Expire past-due records first and regenerate even
                for customers with live recommendations.
            customer_ids:  Restrict the pass to these customers.
            allowed_types: Keep only these recommendation types.

        Returns:
            The workflow result.

        Raises:
            WorkflowBusyError: If a pass is already running.
            OracleNotConfiguredError: If the oracle is not configured.
        """
        if not self._busy.acquire(blocking=False):
            raise WorkflowBusyError()
        try:
            with pass_context("manual"):
                summary = RunSummary(kind="manual", started_at=self.clock())
                logger.info("Manual generation triggered (force_refresh=%s).", force_refresh)
                if force_refresh:
                    summary.expired = run_expiry_sweep(self.store, self.clock)
                try:
                    result = self.runner.execute_workflow(
                        customer_ids=customer_ids,
                        force_refresh=force_refresh,
                        allowed_types=allowed_types,
                    )
                except Exception as exc:
                    self._finish(summary, error=str(exc))
                    raise
                self._finish(summary, result=result)
                return result
        finally:
            self._busy.release()

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _install(self, schedule: Schedule) -> _Timer:
        timer = _Timer(schedule, self._on_timer, self.clock)
        timer.start()
        return timer

    def _on_timer(self) -> None:
        self.run_scheduled_pass()

    def _finish(
        self,
        summary: RunSummary,
        result: Optional[WorkflowResult] = None,
        error: Optional[str] = None,
    ) -> None:
        summary.finished_at = self.clock()
        if result is not None:
            summary.status = "success"
            summary.processed = len(result.processed)
            summary.failed = len(result.failed)
            summary.total_generated = result.total_generated
        else:
            summary.status = "failed"
            summary.error = error
        self._last_run = summary


# ── Wiring ────────────────────────────────────────────────────────────────────

def build_scheduler(config: "AppConfig", clock: Clock = utcnow) -> RecommendationScheduler:
    """Wire a scheduler over the SQLite database and configured oracle.

    Raises:
        ValueError: If the configured schedule or timezone is invalid.
    """
    from remarketing.analysis.behavior import BehaviorAnalyzer
    from remarketing.db.connection import Database
    from remarketing.db.store import SQLiteOrderSource, SQLiteRecommendationStore
    from remarketing.notifications import build_notifier
    from remarketing.oracle.factory import build_oracle

    db = Database.from_config(config.database)
    db.initialize()
    orders = SQLiteOrderSource(db)
    store = SQLiteRecommendationStore(db)
    runner = WorkflowRunner(
        analyzer=BehaviorAnalyzer(orders, orders, clock=clock),
        oracle=build_oracle(config.oracle),
        store=store,
        directory=orders,
        clock=clock,
        expiry_days=config.workflow.expiry_days,
        allowed_types=config.workflow.allowed_types,
    )
    return RecommendationScheduler(
        runner=runner,
        store=store,
        notifier=build_notifier(config.notifications),
        schedule=config.scheduler.schedule,
        timezone_name=config.scheduler.timezone,
        retention_days=config.maintenance.retention_days,
        clock=clock,
    )
