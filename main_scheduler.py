#!/usr/bin/env python3

"""
Long-running low-stock monitor.

Starts the alert scheduler against the PostgreSQL product store and keeps it
running until interrupted (Ctrl+C or SIGTERM), then stops it cleanly.

Configuration (environment or secrets.txt):
    ALERT_RECIPIENT       address that receives the alerts (required)
    ALERT_INTERVAL_HOURS  hours between checks, default 24
    NOTIFIER              'smtp' (default) or 'http'
"""

import os
import sys
import signal
import threading

# Add project root to the Python path
project_root = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, project_root)

from common.utils import get_secret, setup_logging
from inventory.db_utils import PostgresProductStore
from inventory.workflow import build_scheduler


def main():
    """
    Master scheduler for automated stock monitoring.
    """
    logger = setup_logging('stock_monitor')
    logger.info("=============================================")
    logger.info("===     STARTING STOCK ALERT SCHEDULER    ===")
    logger.info("=============================================")

    recipient = get_secret('ALERT_RECIPIENT')
    if not recipient:
        logger.critical("ALERT_RECIPIENT is not set. Cannot start monitoring.")
        return 1

    scheduler = build_scheduler(PostgresProductStore())
    shutdown = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: shutdown.set())

    scheduler.start(recipient)
    try:
        while not shutdown.wait(1):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        scheduler.stop()
    logger.info("--- Stock alert scheduler has shut down. ---")
    return 0


if __name__ == '__main__':
    sys.exit(main())
