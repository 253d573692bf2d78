"""
Main workflow for the Inventory Management Module.

Wires the PostgreSQL product store, the CSV mirror, the sync coordinator and
the low-stock alert scheduler together behind a small argparse CLI:

    init-db        apply database/schema.sql
    add            create a product (store first, then mirror)
    set-quantity   change a product's stock level
    update         change any of a product's fields
    delete         remove a product
    list / search  read from the store
    resync         rebuild the mirror from the store
    mirror-stats   report on the mirror file
    check          run one low-stock check and send the alert
    status         print the stock status report
    monitor        run the alert scheduler until interrupted
"""

import os
import sys
import time
import argparse
import logging
from datetime import timedelta

# --- Project Path Setup ---
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from database.db_utils import get_db_connection, initialize_database
from inventory.alerts import AlertScheduler
from inventory.db_utils import PostgresProductStore
from inventory.errors import InventoryError, MirrorError, RecordValidationError
from inventory.mirror import CsvMirrorStore, DEFAULT_MIRROR_PATH
from inventory.models import Record
from inventory.sync import MutationStatus, SyncCoordinator
from inventory.threshold import render_status_report
from notifications.email_sender import get_notifier

logger = logging.getLogger(__name__)

DEFAULT_ALERT_INTERVAL_HOURS = 24

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_FOUND = 2
EXIT_INVALID = 3

_STATUS_EXIT_CODES = {
    MutationStatus.OK: EXIT_OK,
    MutationStatus.NOT_FOUND: EXIT_NOT_FOUND,
    MutationStatus.INVALID: EXIT_INVALID,
    MutationStatus.FAILED: EXIT_FAILED,
}


# =====================================================================================
# --- Wiring ---
# =====================================================================================

def get_mirror_path():
    return os.getenv('MIRROR_PATH', os.path.join(PROJECT_ROOT, DEFAULT_MIRROR_PATH))


def get_alert_interval():
    hours = float(os.getenv('ALERT_INTERVAL_HOURS', DEFAULT_ALERT_INTERVAL_HOURS))
    return timedelta(hours=hours)


def build_coordinator(connection_factory=get_db_connection, mirror_path=None):
    store = PostgresProductStore(connection_factory)
    mirror = CsvMirrorStore(mirror_path or get_mirror_path())
    return SyncCoordinator(store, mirror)


def build_scheduler(store, notifier=None, interval=None):
    if notifier is None:
        notifier = get_notifier()
    return AlertScheduler(store, notifier, interval=interval or get_alert_interval())


# =====================================================================================
# --- Commands ---
# =====================================================================================

def _print_record(record):
    print(
        f"{record.id:>5}  {record.name:<30}  {record.price:>10}  qty={record.quantity:<5}"
        f"  {record.category:<15}  threshold={record.threshold_limit}"
    )


def _report(result, action):
    if result.status is MutationStatus.OK:
        if result.record is not None:
            _print_record(result.record)
        print(f"SUCCESS: {action}.")
        if result.needs_resync:
            print(f"WARNING: The mirror could not be updated ({result.error}). Run 'resync'.")
    elif result.status is MutationStatus.NOT_FOUND:
        print(f"ERROR: {action} failed: product not found.")
    elif result.status is MutationStatus.INVALID:
        print(f"ERROR: {action} rejected: {result.error}")
    else:
        print(f"ERROR: {action} failed: {result.error}")
    return _STATUS_EXIT_CODES[result.status]


def cmd_add(coordinator, args):
    try:
        record = Record.build(
            name=args.name,
            price=args.price,
            quantity=args.quantity,
            category=args.category,
            threshold_limit=args.threshold,
        )
    except RecordValidationError as e:
        print(f"ERROR: Invalid product: {e}")
        return EXIT_INVALID
    return _report(coordinator.create(record), "Product added")


def cmd_set_quantity(coordinator, args):
    return _report(coordinator.update_quantity(args.id, args.quantity), f"Quantity of product {args.id} updated")


def cmd_update(coordinator, args):
    current = coordinator.store.find_by_id(args.id)
    if current is None:
        print(f"ERROR: Product {args.id} not found.")
        return EXIT_NOT_FOUND
    changes = {
        key: value for key, value in (
            ('name', args.name),
            ('price', args.price),
            ('quantity', args.quantity),
            ('category', args.category),
            ('threshold_limit', args.threshold),
        ) if value is not None
    }
    try:
        record = current.with_changes(**changes)
    except RecordValidationError as e:
        print(f"ERROR: Invalid product: {e}")
        return EXIT_INVALID
    return _report(coordinator.update_fields(record), f"Product {args.id} updated")


def cmd_delete(coordinator, args):
    return _report(coordinator.delete(args.id), f"Product {args.id} deleted")


def cmd_list(coordinator, args):
    records = coordinator.store.find_all()
    for record in records:
        _print_record(record)
    print(f"INFO: {len(records)} products.")
    return EXIT_OK


def cmd_search(coordinator, args):
    store = coordinator.store
    if args.name is not None:
        records = store.find_by_name(args.name)
    elif args.category is not None:
        records = store.find_by_category(args.category)
    else:
        records = store.find_by_price_range(args.min_price, args.max_price)
    for record in records:
        _print_record(record)
    print(f"INFO: {len(records)} matching products.")
    return EXIT_OK


def cmd_resync(coordinator, args):
    count = coordinator.full_resync()
    print(f"SUCCESS: Synced {count} products to {coordinator.mirror.path}")
    return EXIT_OK


def cmd_mirror_stats(coordinator, args):
    stats = coordinator.mirror.stats()
    print(f"Path:          {coordinator.mirror.path}")
    print(f"Exists:        {stats.exists}")
    print(f"Records:       {stats.record_count}")
    print(f"Size (bytes):  {stats.size_bytes}")
    print(f"Last modified: {stats.last_modified or '-'}")
    return EXIT_OK


def cmd_check(coordinator, args, scheduler=None):
    scheduler = scheduler or build_scheduler(coordinator.store)
    outcome = scheduler.run_once(args.to)
    if outcome.error is not None:
        print(f"ERROR: Low-stock check failed: {outcome.error}")
        return EXIT_FAILED
    if outcome.low_stock:
        print(f"SUCCESS: Alert for {len(outcome.low_stock)} low-stock products sent to {args.to}.")
    else:
        print("INFO: All products are sufficiently stocked.")
    return EXIT_OK


def cmd_status(coordinator, args):
    print(render_status_report(coordinator.store.find_all()))
    return EXIT_OK


def cmd_monitor(coordinator, args, scheduler=None):
    interval = timedelta(hours=args.interval_hours) if args.interval_hours else None
    scheduler = scheduler or build_scheduler(coordinator.store, interval=interval)
    scheduler.start(args.to)
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down monitoring")
    finally:
        scheduler.stop()
    return EXIT_OK


def build_parser():
    parser = argparse.ArgumentParser(description="Inventory catalog and low-stock monitoring.")
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init-db', help='Apply database/schema.sql (drops the products table).')

    add = sub.add_parser('add', help='Add a product.')
    add.add_argument('name')
    add.add_argument('price')
    add.add_argument('quantity', type=int)
    add.add_argument('--category')
    add.add_argument('--threshold', type=int)

    qty = sub.add_parser('set-quantity', help='Set the stock level of a product.')
    qty.add_argument('id', type=int)
    qty.add_argument('quantity', type=int)

    update = sub.add_parser('update', help='Change fields of a product.')
    update.add_argument('id', type=int)
    update.add_argument('--name')
    update.add_argument('--price')
    update.add_argument('--quantity', type=int)
    update.add_argument('--category')
    update.add_argument('--threshold', type=int)

    delete = sub.add_parser('delete', help='Delete a product.')
    delete.add_argument('id', type=int)

    sub.add_parser('list', help='List every product.')

    search = sub.add_parser('search', help='Search products.')
    group = search.add_mutually_exclusive_group(required=True)
    group.add_argument('--name')
    group.add_argument('--category')
    group.add_argument('--price-range', nargs=2, metavar=('MIN', 'MAX'))

    sub.add_parser('resync', help='Rebuild the CSV mirror from the database.')
    sub.add_parser('mirror-stats', help='Show information about the CSV mirror.')

    check = sub.add_parser('check', help='Run one low-stock check and email the result.')
    check.add_argument('--to', default=os.getenv('ALERT_RECIPIENT'), required=not os.getenv('ALERT_RECIPIENT'))

    sub.add_parser('status', help='Print the stock status report.')

    monitor = sub.add_parser('monitor', help='Run the low-stock alert scheduler.')
    monitor.add_argument('--to', default=os.getenv('ALERT_RECIPIENT'), required=not os.getenv('ALERT_RECIPIENT'))
    monitor.add_argument('--interval-hours', type=float)
    return parser


COMMANDS = {
    'add': cmd_add,
    'set-quantity': cmd_set_quantity,
    'update': cmd_update,
    'delete': cmd_delete,
    'list': cmd_list,
    'search': cmd_search,
    'resync': cmd_resync,
    'mirror-stats': cmd_mirror_stats,
    'check': cmd_check,
    'status': cmd_status,
    'monitor': cmd_monitor,
}


def main(argv=None, coordinator=None):
    """
    Entry point for the inventory CLI.

    Returns:
        int: 0 on success, 1 on failure, 2 if the product was not found,
             3 if the input was rejected.
    """
    args = build_parser().parse_args(argv)
    if args.command == 'search' and args.price_range:
        args.min_price, args.max_price = args.price_range

    if args.command == 'init-db':
        return EXIT_OK if initialize_database() else EXIT_FAILED

    coordinator = coordinator or build_coordinator()
    try:
        return COMMANDS[args.command](coordinator, args)
    except RecordValidationError as e:
        print(f"ERROR: Invalid input: {e}")
        return EXIT_INVALID
    except MirrorError as e:
        print(f"ERROR: Mirror file problem: {e}")
        return EXIT_FAILED
    except InventoryError as e:
        print(f"ERROR: {e}")
        return EXIT_FAILED


if __name__ == '__main__':
    from common.utils import setup_logging
    setup_logging('inventory')
    sys.exit(main())
