import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from models import Transaction

logger = logging.getLogger(__name__)

# sqlite3 raises OverflowError for integers outside 64 bits without wrapping it
WRITE_ERRORS = (SQLAlchemyError, OverflowError)


class LedgerError(Exception):
    pass


class LedgerStorageError(LedgerError):
    """The ledger could not be read or written."""


class LedgerStore:
    def __init__(self):
        self.lock = threading.RLock()

    def read_all(self):
        raise NotImplementedError

    def append(self, record):
        raise NotImplementedError

    def delete_by_id(self, record_id):
        raise NotImplementedError

    def batch(self):
        """Context manager grouping appends into one all-or-nothing write."""
        raise NotImplementedError


class SQLLedgerStore(LedgerStore):
    """Ledger kept in the ``transactions`` table.

    The schema (and, for SQLite, the parent directory of the database file)
    is created on first use, so a store that was never written reads as
    empty. A database file that exists but cannot be opened raises
    :class:`LedgerStorageError` instead.
    """

    def __init__(self, db):
        super().__init__()
        self.db = db
        self._ready = False
        self._depth = 0

    def _ensure_schema(self):
        if self._ready:
            return
        try:
            url = self.db.engine.url
            if url.get_backend_name() == 'sqlite' and url.database not in (None, '', ':memory:'):
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            self.db.create_all()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerStorageError(f"Cannot open ledger: {exc}") from exc
        self._ready = True
        logger.info("Ledger ready at %s", self.db.engine.url.render_as_string(hide_password=True))

    def _rollback(self):
        try:
            self.db.session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")

    def _commit(self):
        try:
            self.db.session.commit()
        except WRITE_ERRORS as exc:
            self._rollback()
            raise LedgerStorageError(f"Cannot write ledger: {exc}") from exc

    def read_all(self):
        with self.lock:
            self._ensure_schema()
            try:
                rows = Transaction.query.all()
            except SQLAlchemyError as exc:
                self._rollback()
                raise LedgerStorageError(f"Cannot read ledger: {exc}") from exc
            return [row.to_record() for row in rows]

    def append(self, record):
        with self.lock:
            self._ensure_schema()
            row = Transaction.from_record(record)
            try:
                self.db.session.add(row)
                self.db.session.flush()
            except WRITE_ERRORS as exc:
                self._rollback()
                raise LedgerStorageError(f"Cannot write ledger: {exc}") from exc
            stored = record.with_id(row.id)
            if not self._depth:
                self._commit()
            return stored

    def delete_by_id(self, record_id):
        with self.lock:
            self._ensure_schema()
            try:
                row = self.db.session.get(Transaction, record_id)
                if row is None:
                    return False
                bill_number = row.bill_number
                self.db.session.delete(row)
                self.db.session.flush()
            except WRITE_ERRORS as exc:
                self._rollback()
                raise LedgerStorageError(f"Cannot delete from ledger: {exc}") from exc
            if not self._depth:
                self._commit()
            logger.info("Deleted transaction %s (bill %s)", record_id, bill_number)
            return True

    @contextmanager
    def batch(self):
        """Commit every write made inside the block together, or none of them."""
        with self.lock:
            self._ensure_schema()
            self._depth += 1
            try:
                yield self
            except Exception:
                self._depth -= 1
                if not self._depth:
                    self._rollback()
                raise
            self._depth -= 1
            if not self._depth:
                self._commit()


class MemoryLedgerStore(LedgerStore):
    def __init__(self, records=None):
        super().__init__()
        self._records = []
        self._next_id = 1
        for record in records or ():
            self.append(record)

    def read_all(self):
        with self.lock:
            return list(self._records)

    def append(self, record):
        with self.lock:
            if record.bill_number is not None and any(
                r.bill_number == record.bill_number for r in self._records
            ):
                raise LedgerStorageError(f"Duplicate bill number {record.bill_number}")
            stored = record.with_id(self._next_id)
            self._next_id += 1
            self._records.append(stored)
            return stored

    def delete_by_id(self, record_id):
        with self.lock:
            for index, record in enumerate(self._records):
                if record.id == record_id:
                    del self._records[index]
                    return True
            return False

    @contextmanager
    def batch(self):
        with self.lock:
            snapshot = (list(self._records), self._next_id)
            try:
                yield self
            except Exception:
                self._records, self._next_id = snapshot
                raise
