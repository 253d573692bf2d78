"""
Exception taxonomy for the inventory module.

- StoreError: the database could not complete an operation (connection,
  constraint, query). Always reaches the immediate caller.
- MirrorError: the CSV mirror could not be read or written.
- NotifyError: an alert could not be delivered.
- RecordValidationError: a record or argument was rejected before any I/O.
"""


class InventoryError(Exception):
    """Base class for every error raised by the inventory module."""


class StoreError(InventoryError):

    def __init__(self, operation, message):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class MirrorError(InventoryError):

    def __init__(self, path, message):
        super().__init__(f"{path}: {message}")
        self.path = str(path)


class NotifyError(InventoryError):
    pass


class RecordValidationError(InventoryError, ValueError):
    pass
