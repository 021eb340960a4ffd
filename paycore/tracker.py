"""
Polling state machine that follows one payment reference to a terminal state.

    not_started -> queued -> processing -> completed | failed | cancelled

Two independent asyncio tasks run while a session is active: a fixed-rate
poll timer and a one-second elapsed tick. A poll that is still in flight when
the timer fires again is skipped, so the status source never sees concurrent
requests for the same reference. Every stop (terminal status, explicit
cancel, timeout, teardown) goes through `_halt`.
"""
import asyncio
import logging
import math
import time
from typing import Callable, List, Optional

from .exceptions import TrackerError
from .models import TERMINAL_STATES, PaymentStatusRecord, TrackedPayment
from .status import StatusSource

logger = logging.getLogger(__name__)

STATE_RANK = {
    "not_started": 0,
    "queued": 1,
    "processing": 2,
    "completed": 3,
    "failed": 3,
    "cancelled": 3,
}

TIMEOUT_WARNING_RATIO = 0.8

StatusListener = Callable[[TrackedPayment], None]


def format_elapsed(seconds: float) -> str:
    total = int(seconds)
    minutes, remainder = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {remainder}s"
    return f"{remainder}s"


class PaymentStatusTracker:
    def __init__(
        self,
        status_source: StatusSource,
        *,
        poll_interval: float = 5.0,
        tick_interval: float = 1.0,
        max_tracking_time: float = 300.0,
        clock: Callable[[], float] = time.time,
        on_status_change: Optional[StatusListener] = None,
        on_complete: Optional[StatusListener] = None,
        on_failed: Optional[StatusListener] = None,
        on_stopped: Optional[Callable[[TrackedPayment, str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_tick: Optional[Callable[[float], None]] = None,
    ):
        self._source = status_source
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval
        self.max_tracking_time = max_tracking_time
        self._clock = clock

        self._listeners: List[StatusListener] = []
        if on_status_change is not None:
            self._listeners.append(on_status_change)
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.on_stopped = on_stopped
        self.on_error = on_error
        self.on_tick = on_tick

        self._payment: Optional[TrackedPayment] = None
        self._active = False
        self._paused = False
        self._stopped_at: Optional[float] = None
        self._poll_timer: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._draining: List[asyncio.Task] = []

        self.error: Optional[str] = None
        self.stop_reason: Optional[str] = None
        self.skipped_polls = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    # read view

    @property
    def payment(self) -> Optional[TrackedPayment]:
        return self._payment

    @property
    def status(self) -> str:
        return self._payment.status if self._payment else "not_started"

    @property
    def reference(self) -> Optional[str]:
        return self._payment.reference if self._payment else None

    @property
    def is_tracking(self) -> bool:
        return self._active

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def elapsed(self) -> float:
        if self._payment is None or self._payment.tracking_start_time is None:
            return 0.0
        end = self._clock() if self._active else (self._stopped_at or self._clock())
        return max(0.0, end - self._payment.tracking_start_time)

    @property
    def is_near_timeout(self) -> bool:
        """True once a still-pending payment has used 80% of its tracking budget."""
        if self._payment is None or self._payment.is_terminal:
            return False
        return self.elapsed > self.max_tracking_time * TIMEOUT_WARNING_RATIO

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # lifecycle

    def start_tracking(self, reference: str):
        if not reference:
            raise TrackerError("A payment reference is required to start tracking")
        if self._active and self.reference == reference:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise TrackerError("start_tracking() must be called while an event loop is running")

        if self._active:
            self.stop_tracking()

        self._payment = TrackedPayment(reference=reference, tracking_start_time=self._clock())
        self._active = True
        self._paused = False
        self._stopped_at = None
        self.error = None
        self.stop_reason = None
        self.skipped_polls = 0

        logger.info("Tracking payment %s", reference)
        self._in_flight = loop.create_task(self._poll_once())
        self._poll_timer = loop.create_task(self._run_poll_timer())
        self._ticker = loop.create_task(self._run_ticker())

    def stop_tracking(self):
        """Cancel the active session. Safe to call any number of times."""
        if not self._active:
            return
        snapshot = self._payment
        cancelled = snapshot is not None and not snapshot.is_terminal
        if cancelled:
            snapshot = snapshot.model_copy(update={"status": "cancelled", "last_updated": self._next_timestamp()})
            self._payment = snapshot

        self._halt("cancelled")
        if cancelled:
            self._announce(snapshot, "cancelled")
        else:
            self._notify(self.on_stopped, snapshot, "cancelled")

    def pause_polling(self):
        self._paused = True

    def resume_polling(self):
        self._paused = False

    async def refresh(self) -> Optional[TrackedPayment]:
        """Poll once right now, sharing the in-flight poll if there is one."""
        if not self._active:
            return self._payment
        if self._in_flight is None or self._in_flight.done():
            self._in_flight = asyncio.get_running_loop().create_task(self._poll_once())
        await asyncio.wait({self._in_flight})
        return self._payment

    async def aclose(self):
        self.stop_tracking()
        current = asyncio.current_task()
        pending = [task for task in self._draining if task is not current and not task.done()]
        self._draining = []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # internals

    def _halt(self, reason: str) -> bool:
        if not self._active:
            return False
        self._active = False
        self._stopped_at = self._clock()
        self.stop_reason = reason

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        self._draining = [task for task in self._draining if not task.done()]
        for task in (self._poll_timer, self._ticker, self._in_flight):
            if task is not None and task is not current and not task.done():
                task.cancel()
                self._draining.append(task)
        self._poll_timer = self._ticker = self._in_flight = None

        logger.info("Stopped tracking payment %s (%s)", self.reference, reason)
        return True

    def _check_timeout(self) -> bool:
        if not self._active or self.elapsed <= self.max_tracking_time:
            return False
        logger.warning(
            "Payment %s still %s after %.0fs, giving up", self.reference, self.status, self.max_tracking_time
        )
        if self._halt("timeout"):
            self._notify(self.on_stopped, self._payment, "timeout")
        return True

    async def _run_poll_timer(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            if self._check_timeout():
                return
            if self._paused:
                continue
            if self._in_flight is not None and not self._in_flight.done():
                self.skipped_polls += 1
                logger.debug("Poll for %s still in flight, skipping tick", self.reference)
                continue
            self._in_flight = asyncio.get_running_loop().create_task(self._poll_once())

    async def _run_ticker(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            self._notify(self.on_tick, self.elapsed)
            if self._check_timeout():
                return

    async def _poll_once(self):
        reference = self.reference
        try:
            record = await self._source.fetch_status(reference)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Status check for %s failed: %r", reference, exc)
            if self._active and self.reference == reference:
                self._report_error(str(exc) or "Failed to fetch payment status")
            return

        if not self._active or self.reference != reference:
            return
        self._apply(record)

    def _apply(self, record: Optional[PaymentStatusRecord]):
        current = self._payment
        updates = {"last_updated": self._next_timestamp()}
        if current.polling_start_time is None:
            updates["polling_start_time"] = updates["last_updated"]

        if record is None:
            self._payment = current.model_copy(update=updates)
            self._report_error("Payment not found")
            return

        updates.update(
            amount=record.amount,
            currency=record.currency,
            transaction_id=record.transaction_id,
            paid_at=record.paid_at,
            gateway_response=record.gateway_response,
        )
        self.error = None

        new_status = record.status
        if new_status not in STATE_RANK:
            logger.warning("Ignoring unknown status %r for %s", new_status, current.reference)
        elif new_status != current.status and STATE_RANK[new_status] > STATE_RANK[current.status]:
            updates["status"] = new_status
        elif new_status != current.status:
            logger.debug("Ignoring %s -> %s regression for %s", current.status, new_status, current.reference)

        snapshot = current.model_copy(update=updates)
        self._payment = snapshot
        if snapshot.status == current.status:
            return

        stop_reason = None
        if snapshot.status in TERMINAL_STATES:
            self._halt(snapshot.status)
            stop_reason = snapshot.status
        self._announce(snapshot, stop_reason)

    def _announce(self, snapshot: TrackedPayment, stop_reason: Optional[str] = None):
        for listener in list(self._listeners):
            self._notify(listener, snapshot)
        if snapshot.status == "completed":
            self._notify(self.on_complete, snapshot)
        elif snapshot.status in ("failed", "cancelled"):
            self._notify(self.on_failed, snapshot)
        if stop_reason is not None:
            self._notify(self.on_stopped, snapshot, stop_reason)

    def _report_error(self, message: str):
        self.error = message
        self._notify(self.on_error, message)

    def _next_timestamp(self) -> float:
        now = self._clock()
        last = self._payment.last_updated if self._payment else None
        if last is not None and now <= last:
            now = math.nextafter(last, math.inf)
        return now

    def _notify(self, callback, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Payment tracker observer %r raised", callback)
