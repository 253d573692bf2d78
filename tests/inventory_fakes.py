"""
In-memory stand-ins for the product store and the notifier, shared by the
coordinator, scheduler and CLI tests.
"""

import os
import sys
import threading
import time
from dataclasses import replace
from datetime import datetime

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from inventory.db_utils import ProductStore
from inventory.errors import NotifyError, RecordValidationError, StoreError
from inventory.models import normalize_price, validate_quantity, validate_record

FIXED_TIME = datetime(2024, 1, 1, 12, 0, 0)


class InMemoryProductStore(ProductStore):
    """
    ProductStore kept in a dict. Ids start at 1 and timestamps are fixed so
    mirror output is deterministic.

    Put an operation name in `fail_on` to make it raise StoreError.
    """

    def __init__(self):
        self.records = {}
        self.fail_on = set()
        self._next_id = 1
        self._lock = threading.Lock()

    def _check(self, operation):
        if operation in self.fail_on:
            raise StoreError(operation, "simulated database failure")

    def create(self, record):
        self._check("create")
        if record.id is not None:
            raise RecordValidationError("id is assigned by the store and must not be supplied")
        record = validate_record(record)
        with self._lock:
            created = replace(record, id=self._next_id, created_at=FIXED_TIME, updated_at=FIXED_TIME)
            self.records[created.id] = created
            self._next_id += 1
        return created

    def find_by_id(self, product_id):
        self._check("find_by_id")
        return self.records.get(product_id)

    def find_all(self):
        self._check("find_all")
        with self._lock:
            return [self.records[key] for key in sorted(self.records)]

    def update(self, record):
        self._check("update")
        record = validate_record(record)
        with self._lock:
            if record.id not in self.records:
                return False
            current = self.records[record.id]
            self.records[record.id] = replace(record, created_at=current.created_at, updated_at=FIXED_TIME)
        return True

    def update_quantity(self, product_id, quantity):
        validate_quantity(quantity)
        self._check("update_quantity")
        with self._lock:
            if product_id not in self.records:
                return False
            self.records[product_id] = replace(self.records[product_id], quantity=quantity)
        return True

    def delete_by_id(self, product_id):
        self._check("delete_by_id")
        with self._lock:
            return self.records.pop(product_id, None) is not None

    def exists_by_id(self, product_id):
        self._check("exists_by_id")
        return product_id in self.records

    def count(self):
        self._check("count")
        return len(self.records)

    def find_by_name(self, text):
        return [r for r in self.find_all() if text.lower() in r.name.lower()]

    def find_by_category(self, text):
        return [r for r in self.find_all() if text.lower() in r.category.lower()]

    def find_by_price_range(self, min_price, max_price):
        low, high = normalize_price(min_price), normalize_price(max_price)
        if low > high:
            raise RecordValidationError("min_price is greater than max_price")
        matches = [r for r in self.find_all() if low <= r.price <= high]
        return sorted(matches, key=lambda r: (r.price, r.id))


class BlockingProductStore(InMemoryProductStore):
    """
    find_all() parks until `release` is set, and the store records how many
    find_all() calls were in progress at once (`peak_readers`).
    """

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.readers = 0
        self.peak_readers = 0
        self.reads = 0
        self._readers_lock = threading.Lock()

    def find_all(self):
        with self._readers_lock:
            self.readers += 1
            self.reads += 1
            self.peak_readers = max(self.peak_readers, self.readers)
        try:
            self.entered.set()
            self.release.wait()
            return super().find_all()
        finally:
            with self._readers_lock:
                self.readers -= 1


class RecordingNotifier:
    """Notifier that remembers every send() call; can be told to fail or to block."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self.entered = threading.Event()
        self.release = None
        self._lock = threading.Lock()

    def send(self, destination, subject, body, attachment_path=None):
        self.entered.set()
        if self.release is not None:
            self.release.wait()
        if self.fail:
            raise NotifyError("simulated transport failure")
        with self._lock:
            self.calls.append((destination, subject, body, attachment_path))

    @property
    def call_count(self):
        with self._lock:
            return len(self.calls)


def wait_until(predicate, timeout=3.0, interval=0.01):
    """Polls `predicate` until it is true or `timeout` seconds pass; returns the last result."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
