import logging
from dataclasses import dataclass, field
from datetime import datetime

from models import TransactionRecord

logger = logging.getLogger(__name__)

DATE_FMT = "%Y-%m-%d %H:%M:%S"
SEQUENCE_WIDTH = 4


def bill_prefix(day):
    return f"{day.year:04d}{day.month:02d}"


def bill_sequence(bill_number, prefix):
    """Sequence part of ``bill_number``, or 0 when it is not a number."""
    if not bill_number or not bill_number.startswith(prefix):
        return 0
    suffix = bill_number[len(prefix):]
    if not suffix.isdigit():
        logger.warning("Ignoring malformed bill number %r", bill_number)
        return 0
    return int(suffix)


def next_bill_number(records, day):
    """Next ``YYYYMM####`` for ``day``: one past the month's highest sequence."""
    prefix = bill_prefix(day)
    last = max((bill_sequence(r.bill_number, prefix) for r in records), default=0)
    sequence = last + 1
    if sequence >= 10 ** SEQUENCE_WIDTH:
        # the field is fixed width; past 9999 the number just gets longer
        logger.warning("Bill sequence for %s overflowed to %d", prefix, sequence)
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def effective_moment(now, effective_date=None):
    """``now``, moved to ``effective_date`` but keeping the time of day."""
    if effective_date is None:
        return now
    return now.replace(year=effective_date.year, month=effective_date.month, day=effective_date.day)


def to_millis(moment):
    # truncate to the millisecond so the stamp never crosses into the next day
    moment = moment.replace(microsecond=moment.microsecond // 1000 * 1000)
    return round(moment.timestamp() * 1000)


def bill_range(bill_numbers):
    if not bill_numbers:
        return ""
    if len(bill_numbers) == 1 or bill_numbers[0] == bill_numbers[-1]:
        return bill_numbers[0]
    return f"{bill_numbers[0]} - {bill_numbers[-1]}"


@dataclass
class SaveResult:
    success: bool
    id: int
    bill_number: str
    date: str

    def to_dict(self):
        return {
            'success': self.success,
            'id': self.id,
            'billNumber': self.bill_number,
            'date': self.date,
        }


@dataclass
class SaleResult:
    student_name: str
    lines: list = field(default_factory=list)
    total: int = 0

    @property
    def bill_numbers(self):
        return [line.bill_number for line in self.lines]

    @property
    def bill_range(self):
        return bill_range(self.bill_numbers)

    def to_dict(self):
        return {
            'success': True,
            'studentName': self.student_name,
            'lines': [line.to_dict() for line in self.lines],
            'total': self.total,
            'billRange': self.bill_range,
        }


class TransactionRecorder:
    def __init__(self, store, clock=datetime.now):
        self.store = store
        self.clock = clock

    def save_transaction(self, student_name, class_name, amount, effective_date=None):
        """Append one paid line item and return its identifiers.

        Storage failures are raised as ``LedgerStorageError``; nothing is
        returned for a sale that was not recorded.
        """
        moment = effective_moment(self.clock(), effective_date)
        return self._save(student_name, class_name, amount, moment)

    def record_sale(self, student_name, items, effective_date=None, atomic=False):
        """Record every ``(class_name, amount)`` line of a cart in order.

        Each line becomes its own ledger row with its own bill number, all
        stamped with the same moment. With ``atomic`` the rows are committed
        together, otherwise a failure part way through leaves the earlier
        lines recorded.
        """
        moment = effective_moment(self.clock(), effective_date)
        result = SaleResult(student_name=student_name)
        if atomic:
            with self.store.batch():
                self._record_lines(result, items, moment)
        else:
            self._record_lines(result, items, moment)
        return result

    def _record_lines(self, result, items, moment):
        for class_name, amount in items:
            line = self._save(result.student_name, class_name, amount, moment)
            result.lines.append(line)
            result.total += amount

    def _save(self, student_name, class_name, amount, moment):
        # read-max-then-append must not interleave with another writer
        with self.store.lock:
            bill_number = next_bill_number(self.store.read_all(), moment.date())
            record = TransactionRecord(
                id=None,
                bill_number=bill_number,
                student_name=student_name,
                class_name=class_name,
                amount=amount,
                date=moment.strftime(DATE_FMT),
                timestamp=to_millis(moment),
            )
            stored = self.store.append(record)
        logger.info("Recorded %s for %s: %s Rs. %s", bill_number, student_name, class_name, amount)
        return SaveResult(success=True, id=stored.id, bill_number=bill_number, date=stored.date)
