"""
Low-stock alert scheduler.

State machine:

    STOPPED --start()--> RUNNING --stop()--> STOPPED

While RUNNING a single worker thread performs monitoring cycles: one right
away, then one every `interval` as timed by a private `schedule.Scheduler`
polled from the same thread. Cycles therefore never overlap. Each run owns a
fresh cancellation Event; once stop() has set it, that run's worker will not
begin another cycle or send another alert, even if it outlives the join
timeout. A later start() lets such a worker finish before its own first cycle.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import schedule

from inventory.errors import NotifyError, StoreError
from inventory.threshold import classify, deficit, is_out_of_stock

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(days=1)
DEFAULT_STOP_TIMEOUT = 5.0
ALERT_SUBJECT = "Low Stock Alert - Inventory Management System"
RULE = "=" * 59


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class CycleOutcome:
    """What one monitoring cycle found and whether the alert went out."""
    low_stock: list = field(default_factory=list)
    notified: bool = False
    cancelled: bool = False
    error: Exception | None = None
    finished_at: datetime = field(default_factory=datetime.now)


def render_alert_body(low_stock, generated_at=None):
    """
    Formats the plaintext alert email for a list of low-stock records.

    Args:
        low_stock (list): Records at or below their threshold.
        generated_at (datetime, optional): Timestamp printed at the bottom.

    Returns:
        str: The email body.
    """
    generated_at = generated_at or datetime.now()
    lines = [
        "LOW STOCK ALERT",
        "",
        "Dear Admin,",
        "",
        "The following products are running low on stock and require immediate attention:",
        "",
        RULE,
        "",
    ]
    for position, record in enumerate(low_stock, start=1):
        lines.append(f"{position}. Product: {record.name}")
        lines.append(f"   - Product ID: {record.id}")
        lines.append(f"   - Category: {record.category}")
        lines.append(f"   - Current Quantity: {record.quantity} units")
        lines.append(f"   - Threshold Limit: {record.threshold_limit} units")
        lines.append(f"   - Status: {'OUT OF STOCK' if is_out_of_stock(record) else 'LOW STOCK'}")
        lines.append(f"   - Suggested Restock: {deficit(record)} units")
        lines.append("")
    lines += [
        RULE,
        "",
        f"Total Products Requiring Attention: {len(low_stock)}",
        "",
        "ACTION REQUIRED:",
        "- Review the above products immediately",
        "- Contact suppliers for restocking",
        "- Update inventory once restocked",
        "",
        "This is an automated alert from your Inventory Management System.",
        f"Generated on: {generated_at:%Y-%m-%d %H:%M:%S}",
        "",
        "Best regards,",
        "Inventory Management System",
    ]
    return "\n".join(lines)


def _to_seconds(interval):
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval!r}")
    return seconds


class AlertScheduler:
    """
    Periodically checks the product store for low stock and sends alerts.

    Args:
        store (ProductStore): Read with find_all() once per cycle.
        notifier (Notifier): Receives one send() per cycle with findings.
        interval (timedelta | float): Default time between cycles (seconds if a number).
        stop_timeout (float): Default seconds stop() waits for an in-flight cycle.
        subject (str): Subject line of every alert.
    """

    def __init__(self, store, notifier, interval=DEFAULT_INTERVAL,
                 stop_timeout=DEFAULT_STOP_TIMEOUT, subject=ALERT_SUBJECT):
        self.store = store
        self.notifier = notifier
        self.default_interval = _to_seconds(interval)
        self.stop_timeout = stop_timeout
        self.subject = subject

        self._lock = threading.Lock()
        self._state = SchedulerState.STOPPED
        self._thread = None
        self._stop_event = None
        # Worker of the previous run; may still be finishing a cycle.
        self._previous_thread = None
        self._cycles = 0
        self._last_outcome = None
        self.destination = None
        self.interval = None

    # --- Observability ---

    @property
    def state(self):
        return self._state

    @property
    def is_running(self):
        return self._state is SchedulerState.RUNNING

    @property
    def cycle_count(self):
        """Number of scheduled cycles started since construction (run_once excluded)."""
        return self._cycles

    @property
    def last_outcome(self):
        return self._last_outcome

    # --- Check and notify ---

    def check_and_notify(self, destination, stop_event=None):
        """
        Runs one classify-then-notify pass and reports what happened.

        Store and notifier failures are logged and returned on the outcome;
        they are never raised.

        Args:
            destination (str): Address that receives the alert.
            stop_event (threading.Event, optional): The scheduled run's
                cancellation event. If it is set by the time the alert is
                ready, nothing is sent and the outcome is marked cancelled.
        """
        try:
            records = self.store.find_all()
        except StoreError as e:
            logger.error(f"Low-stock check could not read the product store. Reason: {e}")
            return CycleOutcome(error=e)

        low = classify(records)
        if not low:
            logger.info(f"All {len(records)} products are sufficiently stocked")
            return CycleOutcome()

        logger.warning(f"Found {len(low)} products with low stock")
        if stop_event is not None:
            with self._lock:
                cancelled = stop_event.is_set()
            if cancelled:
                logger.info("Monitoring was stopped during the check; low-stock alert not sent")
                return CycleOutcome(low_stock=low, cancelled=True)
        try:
            self.notifier.send(destination, self.subject, render_alert_body(low))
        except NotifyError as e:
            logger.error(f"Failed to send low-stock alert to {destination}. Reason: {e}")
            return CycleOutcome(low_stock=low, error=e)
        logger.info(f"Low-stock alert sent to {destination}")
        return CycleOutcome(low_stock=low, notified=True)

    def run_once(self, destination):
        """Manual check: same path as a scheduled cycle, without touching scheduler state."""
        if not destination or not destination.strip():
            raise ValueError("destination address is required")
        return self.check_and_notify(destination)

    # --- Lifecycle ---

    def start(self, destination, interval=None):
        """
        Starts background monitoring.

        Args:
            destination (str): Address that receives the alerts.
            interval (timedelta | float, optional): Overrides the default interval.

        Returns:
            bool: True if monitoring started, False if it was already active.
        """
        if not destination or not destination.strip():
            raise ValueError("destination address is required")
        seconds = self.default_interval if interval is None else _to_seconds(interval)

        with self._lock:
            if self._state is SchedulerState.RUNNING:
                logger.warning("Automated monitoring is already active")
                return False

            stop_event = threading.Event()
            jobs = schedule.Scheduler()
            jobs.every(seconds).seconds.do(self._run_cycle, destination, stop_event)

            self._stop_event = stop_event
            self.destination = destination
            self.interval = seconds
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(destination, jobs, stop_event, seconds, self._previous_thread),
                name="stock-alert-scheduler",
                daemon=True,
            )
            self._state = SchedulerState.RUNNING
            self._thread.start()

        logger.info(f"Automated stock monitoring started: alerts to {destination} every {seconds:g}s")
        return True

    def stop(self, timeout=None):
        """
        Cancels monitoring and waits for an in-flight cycle to finish.

        Safe to call from any thread and when already stopped.

        Args:
            timeout (float, optional): Seconds to wait; defaults to `stop_timeout`.

        Returns:
            bool: False only if the worker was still busy when the timeout elapsed.
        """
        with self._lock:
            if self._state is SchedulerState.STOPPED:
                logger.info("Automated monitoring is not running")
                return True
            thread, stop_event = self._thread, self._stop_event
            stop_event.set()
            self._state = SchedulerState.STOPPED
            self._previous_thread = thread
            self._thread = None
            self._stop_event = None

        logger.info("Stopping automated stock monitoring...")
        if thread is threading.current_thread():
            return True

        thread.join(self.stop_timeout if timeout is None else timeout)
        if thread.is_alive():
            logger.error("Monitoring cycle did not finish before the stop timeout; abandoning worker thread")
            return False
        logger.info("Automated monitoring stopped")
        return True

    # --- Worker ---

    def _run_cycle(self, destination, stop_event):
        with self._lock:
            if stop_event.is_set():
                return
            self._cycles += 1
            cycle = self._cycles
        logger.info(f"Running scheduled low-stock check #{cycle}...")
        try:
            self._last_outcome = self.check_and_notify(destination, stop_event)
        except Exception:
            # Anything unexpected must not kill the worker.
            logger.exception(f"Unexpected error in scheduled stock check #{cycle}")

    def _run_loop(self, destination, jobs, stop_event, seconds, previous=None):
        poll = min(1.0, seconds / 10)
        if previous is not None:
            # A worker abandoned by a timed-out stop() must finish its cycle first.
            while previous.is_alive():
                if stop_event.is_set():
                    jobs.clear()
                    return
                previous.join(poll)
        self._run_cycle(destination, stop_event)
        while not stop_event.wait(poll):
            jobs.run_pending()
        jobs.clear()
