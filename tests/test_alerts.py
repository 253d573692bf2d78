import os
import sys
import threading
import time
import unittest
from datetime import datetime, timedelta

# Add project root and this directory to Python path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from inventory_fakes import BlockingProductStore, InMemoryProductStore, RecordingNotifier, wait_until
from inventory.alerts import ALERT_SUBJECT, AlertScheduler, SchedulerState, render_alert_body
from inventory.errors import NotifyError, StoreError
from inventory.models import Record

ADMIN = "admin@example.com"


def stocked_store(*quantities):
    store = InMemoryProductStore()
    for position, quantity in enumerate(quantities, start=1):
        store.create(Record.build(name=f"Item {position}", price="1.00", quantity=quantity, threshold_limit=5))
    return store


class TestCheckAndNotify(unittest.TestCase):

    def test_run_once_sends_one_alert_for_low_stock(self):
        notifier = RecordingNotifier()
        scheduler = AlertScheduler(stocked_store(2, 50, 0), notifier)

        outcome = scheduler.run_once(ADMIN)

        self.assertTrue(outcome.notified)
        self.assertEqual([r.name for r in outcome.low_stock], ["Item 1", "Item 3"])
        self.assertEqual(notifier.call_count, 1)
        destination, subject, body, attachment = notifier.calls[0]
        self.assertEqual(destination, ADMIN)
        self.assertEqual(subject, ALERT_SUBJECT)
        self.assertIn("1. Product: Item 1", body)
        self.assertIn("2. Product: Item 3", body)
        self.assertIsNone(attachment)

    def test_run_once_does_not_touch_scheduler_state(self):
        scheduler = AlertScheduler(stocked_store(1), RecordingNotifier())

        scheduler.run_once(ADMIN)

        self.assertEqual(scheduler.state, SchedulerState.STOPPED)
        self.assertEqual(scheduler.cycle_count, 0)

    def test_nothing_is_sent_when_stock_is_healthy(self):
        notifier = RecordingNotifier()
        outcome = AlertScheduler(stocked_store(10, 20), notifier).run_once(ADMIN)

        self.assertFalse(outcome.notified)
        self.assertEqual(outcome.low_stock, [])
        self.assertEqual(notifier.call_count, 0)

    def test_store_failure_is_reported_not_raised(self):
        store = stocked_store(1)
        store.fail_on.add("find_all")
        notifier = RecordingNotifier()

        outcome = AlertScheduler(store, notifier).run_once(ADMIN)

        self.assertIsInstance(outcome.error, StoreError)
        self.assertEqual(notifier.call_count, 0)

    def test_notifier_failure_is_reported_not_raised(self):
        outcome = AlertScheduler(stocked_store(1), RecordingNotifier(fail=True)).run_once(ADMIN)

        self.assertIsInstance(outcome.error, NotifyError)
        self.assertFalse(outcome.notified)
        self.assertEqual(len(outcome.low_stock), 1)

    def test_destination_is_required(self):
        scheduler = AlertScheduler(stocked_store(), RecordingNotifier())
        for destination in ("", "   ", None):
            with self.subTest(destination=destination):
                with self.assertRaises(ValueError):
                    scheduler.run_once(destination)
                with self.assertRaises(ValueError):
                    scheduler.start(destination)

    def test_interval_must_be_positive(self):
        with self.assertRaises(ValueError):
            AlertScheduler(stocked_store(), RecordingNotifier(), interval=0)
        with self.assertRaises(ValueError):
            AlertScheduler(stocked_store(), RecordingNotifier(), interval=timedelta(seconds=-1))


class TestAlertBody(unittest.TestCase):

    def test_body_lists_each_product(self):
        records = [
            Record.build(id=1, name="Widget", price="9.99", quantity=2, category="Tools", threshold_limit=5),
            Record.build(id=7, name="Bolt", price="0.10", quantity=0, threshold_limit=10),
        ]
        body = render_alert_body(records, generated_at=datetime(2024, 3, 1, 8, 0, 0))

        self.assertTrue(body.startswith("LOW STOCK ALERT"))
        self.assertIn("1. Product: Widget", body)
        self.assertIn("   - Product ID: 1", body)
        self.assertIn("   - Status: LOW STOCK", body)
        self.assertIn("   - Suggested Restock: 4 units", body)
        self.assertIn("2. Product: Bolt", body)
        self.assertIn("   - Status: OUT OF STOCK", body)
        self.assertIn("   - Suggested Restock: 11 units", body)
        self.assertIn("Total Products Requiring Attention: 2", body)
        self.assertIn("Generated on: 2024-03-01 08:00:00", body)


class TestSchedulerLifecycle(unittest.TestCase):

    def make_scheduler(self, notifier=None, interval=3600, stop_timeout=2.0, store=None):
        scheduler = AlertScheduler(
            store or stocked_store(1), notifier or RecordingNotifier(),
            interval=interval, stop_timeout=stop_timeout,
        )
        self.addCleanup(scheduler.stop, 2.0)
        return scheduler

    def test_first_cycle_runs_immediately(self):
        notifier = RecordingNotifier()
        scheduler = self.make_scheduler(notifier, interval=3600)

        self.assertTrue(scheduler.start(ADMIN))

        self.assertTrue(wait_until(lambda: notifier.call_count == 1))
        self.assertEqual(scheduler.state, SchedulerState.RUNNING)
        self.assertEqual(scheduler.cycle_count, 1)
        self.assertTrue(scheduler.stop())
        self.assertEqual(scheduler.state, SchedulerState.STOPPED)

    def test_second_start_is_rejected(self):
        scheduler = self.make_scheduler()

        self.assertTrue(scheduler.start(ADMIN))
        self.assertFalse(scheduler.start(ADMIN))

        workers = [t for t in threading.enumerate() if t.name == "stock-alert-scheduler" and t.is_alive()]
        self.assertEqual(len(workers), 1)

    def test_stop_when_stopped_is_a_no_op(self):
        scheduler = self.make_scheduler()
        self.assertTrue(scheduler.stop())
        self.assertEqual(scheduler.state, SchedulerState.STOPPED)

    def test_cycles_repeat_without_duplicates(self):
        notifier = RecordingNotifier()
        scheduler = self.make_scheduler(notifier, interval=0.05)

        scheduler.start(ADMIN)
        self.assertTrue(wait_until(lambda: scheduler.cycle_count >= 3))
        self.assertTrue(scheduler.stop())

        self.assertEqual(notifier.call_count, scheduler.cycle_count)
        settled = notifier.call_count
        time.sleep(0.2)
        self.assertEqual(notifier.call_count, settled)

    def test_failing_cycles_keep_the_scheduler_running(self):
        store = stocked_store(1)
        store.fail_on.add("find_all")
        scheduler = self.make_scheduler(interval=0.05, store=store)

        scheduler.start(ADMIN)
        self.assertTrue(wait_until(lambda: scheduler.cycle_count >= 2))

        self.assertTrue(scheduler.is_running)
        self.assertIsInstance(scheduler.last_outcome.error, StoreError)

    def test_stop_times_out_on_a_stuck_cycle(self):
        notifier = RecordingNotifier()
        notifier.release = threading.Event()
        self.addCleanup(notifier.release.set)
        scheduler = self.make_scheduler(notifier, interval=0.05)

        scheduler.start(ADMIN)
        self.assertTrue(notifier.entered.wait(2))

        self.assertFalse(scheduler.stop(timeout=0.1))
        self.assertEqual(scheduler.state, SchedulerState.STOPPED)

        cycles = scheduler.cycle_count
        notifier.release.set()
        time.sleep(0.3)
        self.assertEqual(scheduler.cycle_count, cycles)

    def test_restart_after_stop(self):
        notifier = RecordingNotifier()
        scheduler = self.make_scheduler(notifier, interval=3600)

        scheduler.start(ADMIN)
        self.assertTrue(wait_until(lambda: notifier.call_count == 1))
        scheduler.stop()

        self.assertTrue(scheduler.start("ops@example.com"))
        self.assertTrue(wait_until(lambda: notifier.call_count == 2))
        self.assertEqual(notifier.calls[-1][0], "ops@example.com")

    def test_stop_from_inside_a_cycle(self):
        scheduler = None
        results = []

        class StoppingNotifier(RecordingNotifier):
            def send(self, destination, subject, body, attachment_path=None):
                super().send(destination, subject, body, attachment_path)
                results.append(scheduler.stop())

        notifier = StoppingNotifier()
        scheduler = self.make_scheduler(notifier, interval=0.05)

        scheduler.start(ADMIN)

        self.assertTrue(wait_until(lambda: results == [True]))
        self.assertEqual(scheduler.state, SchedulerState.STOPPED)
        time.sleep(0.2)
        self.assertEqual(notifier.call_count, 1)

    def blocking_store(self):
        store = BlockingProductStore()
        store.create(Record.build(name="Widget", price="9.99", quantity=1, category="Tools"))
        return store

    def test_no_alert_after_a_timed_out_stop(self):
        store = self.blocking_store()
        notifier = RecordingNotifier()
        scheduler = self.make_scheduler(notifier, interval=3600, store=store)
        self.addCleanup(store.release.set)

        scheduler.start(ADMIN)
        self.assertTrue(store.entered.wait(2))
        self.assertFalse(scheduler.stop(timeout=0.1))
        self.assertEqual(notifier.call_count, 0)

        store.release.set()
        self.assertTrue(wait_until(lambda: scheduler.last_outcome is not None))

        self.assertTrue(scheduler.last_outcome.cancelled)
        self.assertFalse(scheduler.last_outcome.notified)
        time.sleep(0.1)
        self.assertEqual(notifier.call_count, 0)

    def test_restart_waits_for_the_abandoned_worker(self):
        store = self.blocking_store()
        notifier = RecordingNotifier()
        scheduler = self.make_scheduler(notifier, interval=3600, store=store)
        self.addCleanup(store.release.set)

        scheduler.start(ADMIN)
        self.assertTrue(store.entered.wait(2))
        self.assertFalse(scheduler.stop(timeout=0.05))

        self.assertTrue(scheduler.start(ADMIN))
        time.sleep(0.2)
        self.assertEqual(store.reads, 1)

        store.release.set()
        self.assertTrue(wait_until(lambda: scheduler.last_outcome is not None and scheduler.last_outcome.notified))

        self.assertEqual(store.peak_readers, 1)
        self.assertEqual(store.reads, 2)
        self.assertEqual(scheduler.cycle_count, 2)
        self.assertEqual(notifier.call_count, 1)

    def test_stop_while_waiting_for_the_abandoned_worker(self):
        store = self.blocking_store()
        scheduler = self.make_scheduler(interval=3600, store=store)
        self.addCleanup(store.release.set)

        scheduler.start(ADMIN)
        self.assertTrue(store.entered.wait(2))
        self.assertFalse(scheduler.stop(timeout=0.05))
        scheduler.start(ADMIN)

        self.assertTrue(scheduler.stop(timeout=2))
        store.release.set()
        time.sleep(0.1)
        self.assertEqual(store.reads, 1)
        self.assertEqual(scheduler.cycle_count, 1)

    def test_start_interval_override(self):
        scheduler = self.make_scheduler(interval=3600)
        scheduler.start(ADMIN, interval=timedelta(minutes=30))
        self.assertEqual(scheduler.interval, 1800)


class TestScheduledWidgetAlert(unittest.TestCase):

    def test_scheduled_cycle_alerts_on_a_new_low_stock_product(self):
        store = InMemoryProductStore()
        store.create(Record.build(name="Widget", price="9.99", quantity=3, category="Tools"))
        notifier = RecordingNotifier()
        scheduler = AlertScheduler(store, notifier, interval=3600)
        self.addCleanup(scheduler.stop, 2.0)

        scheduler.start(ADMIN)
        self.assertTrue(wait_until(lambda: notifier.call_count == 1))
        self.assertTrue(scheduler.stop())

        self.assertEqual(notifier.call_count, 1)
        destination, subject, body, _ = notifier.calls[0]
        self.assertEqual(destination, ADMIN)
        self.assertEqual(subject, ALERT_SUBJECT)
        self.assertIn("1. Product: Widget", body)
        self.assertIn("   - Category: Tools", body)
        self.assertIn("   - Current Quantity: 3 units", body)
        self.assertIn("Total Products Requiring Attention: 1", body)
        self.assertTrue(scheduler.last_outcome.notified)


if __name__ == '__main__':
    unittest.main()
