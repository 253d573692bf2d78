"""
Product record model for the inventory module.

A Record is the shape shared by the PostgreSQL `products` table and the CSV
mirror. It is frozen: a change to a product is expressed as a new Record
(see `Record.with_changes`), never by mutating one in place.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation

from inventory.errors import RecordValidationError

DEFAULT_CATEGORY = "General"
DEFAULT_THRESHOLD = 5
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Record:
    id: int | None
    name: str
    price: Decimal
    quantity: int
    category: str = DEFAULT_CATEGORY
    threshold_limit: int = DEFAULT_THRESHOLD
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def build(cls, name, price, quantity, category=None, threshold_limit=None,
              id=None, created_at=None, updated_at=None):
        """
        Creates a validated Record, applying the category and threshold defaults.

        Args:
            name (str): Product name; surrounding whitespace is stripped.
            price: Anything Decimal accepts (str, int, Decimal, float).
            quantity (int): Units on hand.
            category (str, optional): Falls back to 'General' when empty.
            threshold_limit (int, optional): Falls back to 5.
            id (int, optional): Only set for records that already exist in the store.

        Returns:
            Record: The normalized record.

        Raises:
            RecordValidationError: If any field is out of range.
        """
        return validate_record(cls(
            id=id,
            name=name,
            price=price,
            quantity=quantity,
            category=category,
            threshold_limit=DEFAULT_THRESHOLD if threshold_limit is None else threshold_limit,
            created_at=created_at,
            updated_at=updated_at,
        ))

    def with_changes(self, **changes):
        """Returns a validated copy of this record with the given fields replaced."""
        return validate_record(replace(self, **changes))

    @property
    def is_low_stock(self):
        return self.quantity <= self.threshold_limit

    @property
    def is_out_of_stock(self):
        return self.quantity == 0


def _require_int(field, value):
    # bool is an int subclass; True must not pass as a quantity of 1.
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordValidationError(f"{field} must be an integer, got {value!r}")
    return value


def normalize_price(value):
    """Converts `value` to a non-negative Decimal rounded to cents."""
    if isinstance(value, bool) or value is None:
        raise RecordValidationError(f"price must be a number, got {value!r}")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise RecordValidationError(f"price must be a number, got {value!r}")
    if not price.is_finite():
        raise RecordValidationError(f"price must be finite, got {value!r}")
    if price < 0:
        raise RecordValidationError(f"price must not be negative, got {value!r}")
    return price.quantize(CENTS)


def validate_quantity(quantity):
    """Returns `quantity` if it is a non-negative integer, otherwise raises."""
    _require_int("quantity", quantity)
    if quantity < 0:
        raise RecordValidationError(f"quantity must not be negative, got {quantity}")
    return quantity


def validate_record(record):
    """
    Checks every field of `record` and returns a normalized copy.

    The name is stripped, the price is rounded to cents and an empty category
    becomes 'General'.

    Raises:
        RecordValidationError: On the first invalid field.
    """
    if not isinstance(record.name, str) or not record.name.strip():
        raise RecordValidationError("name must be a non-empty string")
    if record.id is not None:
        _require_int("id", record.id)
        if record.id <= 0:
            raise RecordValidationError(f"id must be positive, got {record.id}")
    validate_quantity(record.quantity)
    _require_int("threshold_limit", record.threshold_limit)
    if record.threshold_limit <= 0:
        raise RecordValidationError(
            f"threshold_limit must be positive, got {record.threshold_limit}"
        )

    category = record.category
    if category is None or not str(category).strip():
        category = DEFAULT_CATEGORY
    else:
        category = str(category).strip()

    return replace(
        record,
        name=record.name.strip(),
        price=normalize_price(record.price),
        category=category,
    )
