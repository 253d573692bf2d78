"""
CSV mirror of the products table.

The mirror is a derived, human-readable snapshot: PostgreSQL is always the
source of truth and the file is rebuilt from it. Full rewrites go through a
temporary file in the same directory followed by os.replace, so a reader
sees either the old snapshot or the new one, never a partial file.
"""

import os
import csv
import io
import logging
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime

import pandas as pd

from inventory.errors import MirrorError, RecordValidationError
from inventory.models import Record

logger = logging.getLogger(__name__)

FIELDNAMES = [
    'id', 'name', 'price', 'quantity', 'category',
    'threshold_limit', 'created_at', 'updated_at',
]
LINE_TERMINATOR = '\n'
DEFAULT_MIRROR_PATH = os.path.join('data', 'products.csv')


@dataclass(frozen=True)
class MirrorStats:
    exists: bool
    record_count: int
    size_bytes: int
    last_modified: datetime | None


def _format_timestamp(value):
    return value.isoformat() if value is not None else ''


def _parse_timestamp(text):
    return datetime.fromisoformat(text) if text else None


def record_to_row(record):
    """Returns the CSV field values for `record`, in FIELDNAMES order."""
    return [
        str(record.id),
        record.name,
        str(record.price),
        str(record.quantity),
        record.category,
        str(record.threshold_limit),
        _format_timestamp(record.created_at),
        _format_timestamp(record.updated_at),
    ]


def row_to_record(row):
    """Parses one mirror row (a dict of column -> text) back into a Record."""
    return Record.build(
        id=int(row['id']),
        name=row['name'],
        price=row['price'],
        quantity=int(row['quantity']),
        category=row['category'],
        threshold_limit=int(row['threshold_limit']),
        created_at=_parse_timestamp(row['created_at']),
        updated_at=_parse_timestamp(row['updated_at']),
    )


def serialize(records):
    """
    Renders the complete mirror file contents for `records`.

    Quoting is csv.QUOTE_MINIMAL: a field is wrapped in double quotes only
    when it contains a comma, a quote or a line break, and embedded quotes are
    doubled. The same records always produce the same text.
    """
    buffer = io.StringIO(newline='')
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator=LINE_TERMINATOR)
    writer.writerow(FIELDNAMES)
    for record in records:
        writer.writerow(record_to_row(record))
    return buffer.getvalue()


def serialize_line(record):
    buffer = io.StringIO(newline='')
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator=LINE_TERMINATOR)
    writer.writerow(record_to_row(record))
    return buffer.getvalue()


class CsvMirrorStore:
    """Flat-file projection of the product store."""

    def __init__(self, path=DEFAULT_MIRROR_PATH):
        self.path = os.path.abspath(path)
        self._lock = threading.Lock()

    def _ensure_directory(self):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)

    def full_rewrite(self, records):
        """
        Atomically replaces the mirror with a snapshot of `records`.

        Raises:
            MirrorError: If the temporary file cannot be written or moved into place.
        """
        content = serialize(records)
        with self._lock:
            tmp_path = None
            try:
                self._ensure_directory()
                fd, tmp_path = tempfile.mkstemp(
                    prefix='.products-', suffix='.csv.tmp', dir=os.path.dirname(self.path)
                )
                with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
                tmp_path = None
            except OSError as e:
                raise MirrorError(self.path, f"full rewrite failed: {e}") from e
            finally:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.remove(tmp_path)
        logger.info(f"Mirror rewritten with {len(records)} products at {self.path}")

    def append(self, record):
        """
        Appends one record to the mirror, writing the header first if the file is new.

        Raises:
            MirrorError: If the file cannot be opened or written.
        """
        line = serialize_line(record)
        with self._lock:
            try:
                self._ensure_directory()
                needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
                with open(self.path, 'a', encoding='utf-8', newline='') as f:
                    if needs_header:
                        f.write(serialize([]))
                    f.write(line)
            except OSError as e:
                raise MirrorError(self.path, f"append failed: {e}") from e
        logger.info(f"Appended product {record.id} to mirror {self.path}")

    def read_all(self):
        """
        Reads the mirror back into Records.

        Returns:
            list: Records in file order; an empty list if the file does not exist.

        Raises:
            MirrorError: If the file cannot be read or a row is malformed.
        """
        if not os.path.exists(self.path):
            logger.info(f"Mirror file not found at {self.path}, returning empty list")
            return []
        try:
            df = pd.read_csv(
                self.path,
                dtype=str,
                keep_default_na=False,
                encoding='utf-8',
            )
        except pd.errors.EmptyDataError:
            return []
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise MirrorError(self.path, f"could not parse mirror: {e}") from e

        if list(df.columns) != FIELDNAMES:
            raise MirrorError(self.path, f"unexpected header {list(df.columns)}")
        try:
            return [row_to_record(row) for row in df.to_dict('records')]
        except (KeyError, ValueError, RecordValidationError) as e:
            raise MirrorError(self.path, f"malformed mirror row: {e}") from e

    def stats(self):
        """
        Reports whether the mirror exists, how many records it holds, its size and mtime.

        Size and record count come from the same file version: in-process
        writers are held off while both are read.

        Raises:
            MirrorError: If the file cannot be inspected or holds malformed rows.
        """
        with self._lock:
            try:
                info = os.stat(self.path)
            except FileNotFoundError:
                return MirrorStats(exists=False, record_count=0, size_bytes=0, last_modified=None)
            except OSError as e:
                raise MirrorError(self.path, f"could not inspect mirror: {e}") from e
            record_count = len(self.read_all())
        return MirrorStats(
            exists=True,
            record_count=record_count,
            size_bytes=info.st_size,
            last_modified=datetime.fromtimestamp(info.st_mtime),
        )
