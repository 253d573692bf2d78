"""
Keeps the CSV mirror in step with the product store.

Order of operations for every mutation:
    1. The store is changed in its own transaction.
    2. Only if that succeeded, the mirror is brought up to date.

A mirror failure never undoes a committed store change. It is reported on the
MutationResult (mirror_synced=False) and leaves the coordinator flagged as
lagging until full_resync() succeeds.
"""

import enum
import logging
import threading
from dataclasses import dataclass

from inventory.errors import MirrorError, RecordValidationError, StoreError
from inventory.models import validate_quantity

logger = logging.getLogger(__name__)


class MutationStatus(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    record: object = None
    mirror_synced: bool = False
    error: Exception | None = None

    @property
    def ok(self):
        return self.status is MutationStatus.OK

    @property
    def needs_resync(self):
        """True when the store changed but the mirror could not follow."""
        return self.ok and not self.mirror_synced


class SyncCoordinator:
    """
    Mediates create/update/delete between a ProductStore and a CsvMirrorStore.

    Store calls run without any coordinator lock held. Mirror writes, and the
    read-then-rewrite of a full resync, are serialized by `_mirror_lock`.

    Args:
        store (ProductStore): The system of record.
        mirror (CsvMirrorStore): The derived flat-file snapshot.
    """

    def __init__(self, store, mirror):
        self.store = store
        self.mirror = mirror
        self._lagging = False
        # Bumped every time a resync reads the store.
        self._snapshots = 0
        self._mirror_lock = threading.RLock()

    @property
    def mirror_lagging(self):
        return self._lagging

    # --- Mutations ---

    def create(self, record):
        """
        Creates `record` in the store, then appends it to the mirror.

        The append is only safe when no resync snapshot was taken while the
        insert was in flight; otherwise that snapshot may already hold the new
        row. In that case, and when the mirror is known to be behind, a full
        resync is used instead of the append.
        """
        with self._mirror_lock:
            snapshots_before = self._snapshots

        try:
            created = self.store.create(record)
        except RecordValidationError as e:
            logger.warning(f"Rejected new product '{getattr(record, 'name', record)}'. Reason: {e}")
            return MutationResult(MutationStatus.INVALID, error=e)
        except StoreError as e:
            logger.error(f"Could not create product. Reason: {e}")
            return MutationResult(MutationStatus.FAILED, error=e)

        with self._mirror_lock:
            if self._lagging or self._snapshots != snapshots_before:
                return self._resync_after(created)
            try:
                self.mirror.append(created)
            except MirrorError as e:
                self._lagging = True
                logger.warning(
                    f"Product {created.id} was saved but the mirror append failed: {e}. "
                    "Run a full resync to catch the mirror up."
                )
                return MutationResult(MutationStatus.OK, record=created, mirror_synced=False, error=e)
        return MutationResult(MutationStatus.OK, record=created, mirror_synced=True)

    def update_quantity(self, product_id, quantity):
        """Sets the stock level of `product_id`; a negative quantity is rejected without touching the store."""
        try:
            validate_quantity(quantity)
        except RecordValidationError as e:
            logger.warning(f"Rejected quantity {quantity!r} for product {product_id}. Reason: {e}")
            return MutationResult(MutationStatus.INVALID, error=e)
        return self._mutate(
            f"update quantity of product {product_id}",
            lambda: self.store.update_quantity(product_id, quantity),
            lambda: self.store.find_by_id(product_id),
        )

    def update_fields(self, record):
        """Overwrites name, price, quantity, category and threshold of `record.id`."""
        if record.id is None:
            e = RecordValidationError("update requires a record with an id")
            return MutationResult(MutationStatus.INVALID, error=e)
        return self._mutate(
            f"update product {record.id}",
            lambda: self.store.update(record),
            lambda: self.store.find_by_id(record.id),
        )

    def delete(self, product_id):
        return self._mutate(
            f"delete product {product_id}",
            lambda: self.store.delete_by_id(product_id),
            None,
        )

    def _mutate(self, description, apply, reload):
        try:
            changed = apply()
        except RecordValidationError as e:
            logger.warning(f"Rejected: {description}. Reason: {e}")
            return MutationResult(MutationStatus.INVALID, error=e)
        except StoreError as e:
            logger.error(f"Could not {description}. Reason: {e}")
            return MutationResult(MutationStatus.FAILED, error=e)
        if not changed:
            logger.info(f"Nothing to {description}: product not found")
            return MutationResult(MutationStatus.NOT_FOUND)

        record = None
        if reload is not None:
            try:
                record = reload()
            except StoreError as e:
                logger.warning(f"Could not reload after '{description}'. Reason: {e}")
        return self._resync_after(record)

    def _resync_after(self, record):
        try:
            self.full_resync()
        except (StoreError, MirrorError) as e:
            with self._mirror_lock:
                self._lagging = True
            logger.warning(f"Store updated but the mirror resync failed: {e}")
            return MutationResult(MutationStatus.OK, record=record, mirror_synced=False, error=e)
        return MutationResult(MutationStatus.OK, record=record, mirror_synced=True)

    # --- Resync ---

    def full_resync(self):
        """
        Rebuilds the mirror from the store's current contents.

        Returns:
            int: The number of records written.

        Raises:
            StoreError: If the store could not be read.
            MirrorError: If the mirror could not be written.
        """
        with self._mirror_lock:
            self._snapshots += 1
            records = self.store.find_all()
            self.mirror.full_rewrite(records)
            self._lagging = False
        logger.info(f"Synced {len(records)} products to the mirror")
        return len(records)
