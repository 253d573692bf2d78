import os
import sys
import abc
import logging
import psycopg2
from psycopg2 import extras

# --- Project Path Setup ---
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from database.db_utils import get_db_connection
from inventory.errors import RecordValidationError, StoreError
from inventory.models import Record, normalize_price, validate_quantity, validate_record

logger = logging.getLogger(__name__)

# =====================================================================================
# --- SQL ---
# =====================================================================================

COLUMNS = "id, name, price, quantity, category, threshold_limit, created_at, updated_at"

INSERT_PRODUCT = f"""
    INSERT INTO products (name, price, quantity, category, threshold_limit)
    VALUES (%s, %s, %s, %s, %s)
    RETURNING {COLUMNS};
"""
SELECT_PRODUCT_BY_ID = f"SELECT {COLUMNS} FROM products WHERE id = %s;"
SELECT_ALL_PRODUCTS = f"SELECT {COLUMNS} FROM products ORDER BY id;"
UPDATE_PRODUCT = """
    UPDATE products
    SET name = %s, price = %s, quantity = %s, category = %s, threshold_limit = %s, updated_at = NOW()
    WHERE id = %s;
"""
UPDATE_PRODUCT_QUANTITY = "UPDATE products SET quantity = %s, updated_at = NOW() WHERE id = %s;"
DELETE_PRODUCT = "DELETE FROM products WHERE id = %s;"
EXISTS_BY_ID = "SELECT 1 FROM products WHERE id = %s LIMIT 1;"
COUNT_PRODUCTS = "SELECT COUNT(*) AS total FROM products;"
SELECT_PRODUCTS_BY_NAME = f"SELECT {COLUMNS} FROM products WHERE LOWER(name) LIKE LOWER(%s) ESCAPE '\\' ORDER BY id;"
SELECT_PRODUCTS_BY_CATEGORY = f"SELECT {COLUMNS} FROM products WHERE LOWER(category) LIKE LOWER(%s) ESCAPE '\\' ORDER BY id;"
SELECT_PRODUCTS_BY_PRICE_RANGE = f"SELECT {COLUMNS} FROM products WHERE price BETWEEN %s AND %s ORDER BY price, id;"


def like_pattern(text):
    """Builds a LIKE pattern that matches `text` literally anywhere in a column."""
    escaped = text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f"%{escaped}%"


def row_to_record(row):
    """Maps a RealDictCursor row from the products table to a Record."""
    return Record.build(
        id=row['id'],
        name=row['name'],
        price=row['price'],
        quantity=row['quantity'],
        category=row['category'],
        threshold_limit=row['threshold_limit'],
        created_at=row.get('created_at'),
        updated_at=row.get('updated_at'),
    )


# =====================================================================================
# --- Store Contract ---
# =====================================================================================

class ProductStore(abc.ABC):
    """
    The system of record for products.

    "Not found" is a return value (None or False); any failure to talk to the
    backing store raises StoreError. Every mutation is its own transaction.
    """

    @abc.abstractmethod
    def create(self, record):
        """Inserts `record` and returns it with the store-assigned id."""

    @abc.abstractmethod
    def find_by_id(self, product_id):
        """Returns the Record for `product_id`, or None."""

    @abc.abstractmethod
    def find_all(self):
        """Returns every Record ordered by id."""

    @abc.abstractmethod
    def update(self, record):
        """Overwrites every editable field of `record.id`. False if it does not exist."""

    @abc.abstractmethod
    def update_quantity(self, product_id, quantity):
        """Sets the quantity of `product_id`. False if it does not exist."""

    @abc.abstractmethod
    def delete_by_id(self, product_id):
        """Removes `product_id`. False if it does not exist."""

    @abc.abstractmethod
    def exists_by_id(self, product_id):
        pass

    @abc.abstractmethod
    def count(self):
        pass

    @abc.abstractmethod
    def find_by_name(self, text):
        pass

    @abc.abstractmethod
    def find_by_category(self, text):
        pass

    @abc.abstractmethod
    def find_by_price_range(self, min_price, max_price):
        pass


# =====================================================================================
# --- PostgreSQL Implementation ---
# =====================================================================================

class PostgresProductStore(ProductStore):
    """
    ProductStore backed by the PostgreSQL `products` table.

    A connection is acquired for each operation and closed when it finishes.
    Mutations commit only when a row was affected; reads and not-found
    mutations end with a rollback so no transaction is ever left open.
    """

    def __init__(self, connection_factory=get_db_connection):
        """
        Args:
            connection_factory (callable): Returns a new psycopg2 connection,
                or None when the database is unreachable.
        """
        self._connection_factory = connection_factory

    # --- Transaction plumbing ---

    def _connect(self, operation):
        try:
            conn = self._connection_factory()
        except psycopg2.Error as e:
            raise StoreError(operation, f"could not acquire a database connection: {e}") from e
        if conn is None:
            raise StoreError(operation, "could not acquire a database connection")
        return conn

    def _rollback(self, conn, operation):
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed during {operation}. Reason: {e}")

    def _run(self, operation, work, commit_if=None):
        """
        Runs `work(cursor)` inside a single transaction on a fresh connection.

        Args:
            operation (str): Name used in log lines and StoreError messages.
            work (callable): Receives a RealDictCursor and returns a result.
            commit_if (callable, optional): Decides from the result whether to
                commit. When omitted the transaction is rolled back (read-only).

        Returns:
            Whatever `work` returned.

        Raises:
            StoreError: If the connection or any statement fails.
        """
        conn = self._connect(operation)
        try:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                result = work(cur)
            if commit_if is not None and commit_if(result):
                conn.commit()
            else:
                conn.rollback()
            return result
        except psycopg2.Error as e:
            logger.error(f"Could not complete '{operation}'. Reason: {e}")
            self._rollback(conn, operation)
            raise StoreError(operation, str(e)) from e
        except Exception:
            self._rollback(conn, operation)
            raise
        finally:
            conn.close()

    def _select(self, operation, query, params=None):
        def work(cur):
            cur.execute(query, params)
            return [row_to_record(row) for row in cur.fetchall()]
        return self._run(operation, work)

    def _mutate(self, operation, query, params):
        def work(cur):
            cur.execute(query, params)
            return cur.rowcount > 0
        return self._run(operation, work, commit_if=bool)

    # --- Contract ---

    def create(self, record):
        """
        Adds a new product to the 'products' table.

        Args:
            record (Record): A record without an id.

        Returns:
            Record: The stored record, including id and timestamps.
        """
        if record.id is not None:
            raise RecordValidationError("id is assigned by the store and must not be supplied")
        record = validate_record(record)

        def work(cur):
            cur.execute(
                INSERT_PRODUCT,
                (record.name, record.price, record.quantity, record.category, record.threshold_limit)
            )
            return row_to_record(cur.fetchone())

        created = self._run("create", work, commit_if=lambda r: r is not None)
        logger.info(f"Product created with ID: {created.id}")
        return created

    def find_by_id(self, product_id):
        rows = self._select("find_by_id", SELECT_PRODUCT_BY_ID, (product_id,))
        return rows[0] if rows else None

    def find_all(self):
        return self._select("find_all", SELECT_ALL_PRODUCTS)

    def update(self, record):
        if record.id is None:
            raise RecordValidationError("update requires a record with an id")
        record = validate_record(record)
        return self._mutate(
            "update",
            UPDATE_PRODUCT,
            (record.name, record.price, record.quantity, record.category, record.threshold_limit, record.id)
        )

    def update_quantity(self, product_id, quantity):
        validate_quantity(quantity)
        return self._mutate("update_quantity", UPDATE_PRODUCT_QUANTITY, (quantity, product_id))

    def delete_by_id(self, product_id):
        return self._mutate("delete_by_id", DELETE_PRODUCT, (product_id,))

    def exists_by_id(self, product_id):
        def work(cur):
            cur.execute(EXISTS_BY_ID, (product_id,))
            return cur.fetchone() is not None
        return self._run("exists_by_id", work)

    def count(self):
        def work(cur):
            cur.execute(COUNT_PRODUCTS)
            return int(cur.fetchone()['total'])
        return self._run("count", work)

    def find_by_name(self, text):
        return self._select("find_by_name", SELECT_PRODUCTS_BY_NAME, (like_pattern(text),))

    def find_by_category(self, text):
        return self._select("find_by_category", SELECT_PRODUCTS_BY_CATEGORY, (like_pattern(text),))

    def find_by_price_range(self, min_price, max_price):
        low, high = normalize_price(min_price), normalize_price(max_price)
        if low > high:
            raise RecordValidationError(f"min_price {low} is greater than max_price {high}")
        return self._select("find_by_price_range", SELECT_PRODUCTS_BY_PRICE_RANGE, (low, high))
