"""
Synchronization scheduling for one editing session.

A ``SyncSession`` decides when a synchronization pass may start (debounce
window, single in-flight pass, one queued re-run), runs the pass through the
reconciler and applies the retry policy: a constant delay between attempts,
a bounded number of attempts, then one notification to the user.

All state lives on the session object and is only touched from the event
loop thread, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Set, Tuple

from .document import EditorDocument
from .errors import DocumentError
from .logging_config import get_logger
from .models import COMPARABLE_FIELDS
from .notifications import Notifier
from .reconciler import SyncReport, reconcile_todos
from .remote import TodoStore
from .settings import Settings
from .timers import ScheduledTask
from .utils import utcnow

logger = get_logger(__name__)

FAILURE_TITLE = "Sync Issues"


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class SyncConfig:
    """Knobs of the synchronization policy."""

    debounce_seconds: float = 1.0
    max_attempts: int = 3
    retry_delay_seconds: float = 2.0
    interval_seconds: float = 5.0
    initial_delay_seconds: float = 0.1
    comparable_fields: Tuple[str, ...] = COMPARABLE_FIELDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_delay_seconds < self.debounce_seconds:
            # A retry inside the debounce window would be dropped.
            raise ValueError("retry_delay_seconds must not be shorter than debounce_seconds")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        debounce = max(settings.sync_debounce_seconds, 0.0)
        retry_delay = settings.sync_retry_delay_seconds
        if retry_delay < debounce:
            logger.warning(
                "SYNC_RETRY_DELAY_SECONDS=%s is shorter than SYNC_DEBOUNCE_SECONDS=%s, using %s",
                retry_delay, debounce, debounce,
            )
            retry_delay = debounce
        return cls(
            debounce_seconds=debounce,
            max_attempts=max(settings.sync_max_attempts, 1),
            retry_delay_seconds=retry_delay,
            interval_seconds=settings.sync_interval_seconds,
            initial_delay_seconds=settings.sync_initial_delay_seconds,
        )


@dataclass
class SyncState:
    """Bookkeeping of one session; reset when the session is created."""

    last_started: Optional[float] = None
    last_synced_at: Optional[datetime] = None
    in_progress: bool = False
    attempts: int = 0
    rerun_requested: bool = False
    passes: int = 0
    last_report: Optional[SyncReport] = None


# PUBLIC_INTERFACE
class SyncSession:
    """
    Keeps the to-do nodes of one open document in sync with the remote store
    on behalf of ``owner_id``.

    Passes are triggered by document edits, the periodic timer, explicit
    ``request_sync`` calls and retries; ``close`` runs one last pass.
    """

    def __init__(
        self,
        document: EditorDocument,
        owner_id: str,
        store: TodoStore,
        notifier: Notifier,
        config: Optional[SyncConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not owner_id:
            raise ValueError("owner_id is required to synchronize todos")
        self.document = document
        self.owner_id = owner_id
        self.store = store
        self.notifier = notifier
        self.config = config or SyncConfig()
        self.state = SyncState()
        self._clock = clock
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._requests: Set[asyncio.Task] = set()
        self._initial: Optional[ScheduledTask] = None
        self._periodic: Optional[ScheduledTask] = None
        self._retry: Optional[ScheduledTask] = None
        self._rerun: Optional[ScheduledTask] = None
        self._unsubscribe = document.on_change(self._on_document_change)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None and not self._retry.done

    def start(self) -> None:
        """Schedule the initial pass and the periodic timer."""
        if self.config.initial_delay_seconds >= 0:
            self._initial = ScheduledTask(
                self.config.initial_delay_seconds,
                lambda: self.request_sync("initial"),
                name="todo-sync-initial",
            )
        if self.config.interval_seconds > 0:
            self._periodic = ScheduledTask(
                self.config.interval_seconds,
                lambda: self.request_sync("interval"),
                interval=self.config.interval_seconds,
                name="todo-sync-interval",
            )
        logger.info("Initialized todo sync for user %s", self.owner_id)

    def _on_document_change(self, _document: EditorDocument) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self.request_sync("edit"))
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)

    async def request_sync(self, reason: str = "request") -> Optional[SyncReport]:
        """
        Ask for a pass. Returns the pass report, or None when the request was
        dropped: session closed, inside the debounce window, or a pass already
        running (in which case one re-run is queued for after it).
        """
        if self._closed:
            return None
        if self.state.in_progress:
            logger.debug("Sync already in progress, queueing a re-run (%s)", reason)
            self.state.rerun_requested = True
            return None
        last = self.state.last_started
        if last is not None and self._clock() - last < self.config.debounce_seconds:
            logger.debug("Debouncing sync request (%s)", reason)
            return None
        return await self._run_pass(reason)

    async def _run_pass(self, reason: str) -> SyncReport:
        state = self.state
        state.in_progress = True
        self._idle.clear()
        state.attempts += 1
        state.passes += 1
        state.last_started = self._clock()
        state.last_synced_at = utcnow()
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        logger.info(
            "Starting %s sync for user %s (attempt %d)", reason, self.owner_id, state.attempts
        )
        try:
            try:
                todos = self.document.todos()
            except DocumentError as e:
                logger.error("Cannot read todos from document: %s", e)
                report = SyncReport(errors=1)
            else:
                logger.debug("Found %d todos to sync", len(todos))
                report = await reconcile_todos(
                    todos, self.owner_id, self.store, fields=self.config.comparable_fields
                )
        finally:
            state.in_progress = False
            self._idle.set()

        state.last_report = report
        if report.ok:
            state.attempts = 0
        else:
            self._handle_failure(report)
        if state.rerun_requested:
            state.rerun_requested = False
            self._schedule_rerun()
        return report

    def _handle_failure(self, report: SyncReport) -> None:
        state = self.state
        if self._closed:
            logger.warning("Final sync left %d todos unsaved", report.errors)
            return
        if state.attempts < self.config.max_attempts:
            logger.info(
                "Sync failed (attempt %d of %d), retrying in %.1fs",
                state.attempts, self.config.max_attempts, self.config.retry_delay_seconds,
            )
            self._retry = ScheduledTask(
                self.config.retry_delay_seconds,
                lambda: self.request_sync("retry"),
                name="todo-sync-retry",
            )
            return
        logger.error("Sync failed %d times in a row, giving up until the next trigger", state.attempts)
        state.attempts = 0
        self.notifier.notify(
            FAILURE_TITLE,
            f"{report.errors} todos failed to sync. Please check your connection.",
        )

    def _schedule_rerun(self) -> None:
        if self._closed:
            return
        if self._rerun is not None and not self._rerun.done:
            return
        elapsed = self._clock() - (self.state.last_started or 0.0)
        delay = max(self.config.debounce_seconds - elapsed, 0.0)
        self._rerun = ScheduledTask(delay, lambda: self.request_sync("rerun"), name="todo-sync-rerun")

    async def wait_idle(self) -> None:
        """Wait for edit-triggered requests and the running pass to finish."""
        while self._requests:
            await asyncio.gather(*list(self._requests), return_exceptions=True)
        await self._idle.wait()

    async def close(self) -> SyncReport:
        """
        End the session: stop every timer, let a running pass finish and run one
        final pass regardless of the debounce window.
        """
        if self._closed:
            raise RuntimeError("sync session already closed")
        self._closed = True
        self._unsubscribe()
        for timer in (self._initial, self._periodic, self._retry, self._rerun):
            if timer is not None:
                timer.cancel()
        self._retry = self._rerun = None
        logger.info("Cleaning up todo sync for user %s", self.owner_id)
        await self.wait_idle()
        logger.info("Performing final sync before cleanup")
        return await self._run_pass("final")
