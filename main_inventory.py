#!/usr/bin/env python3

"""
Main entry point for the Inventory CLI.

Adds, updates and deletes products through the sync coordinator so the
PostgreSQL store and the CSV mirror stay in step, and exposes the manual
low-stock check. The command logic lives in `inventory.workflow`.
"""

import sys
import os

# Ensure the project root is in the Python path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from common.utils import setup_logging
from inventory.workflow import main as inventory_main

if __name__ == '__main__':
    setup_logging('inventory')
    sys.exit(inventory_main())
