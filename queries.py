from dataclasses import dataclass, field, fields
from datetime import datetime, time

import pandas as pd

from billing import to_millis
from models import TransactionRecord

MONTH_FMT = "%Y-%m"
SORT_KEYS = tuple(f.name for f in fields(TransactionRecord))
COLUMNS = list(SORT_KEYS)
END_OF_DAY = time(23, 59, 59, 999000)


def local_moment(record):
    return datetime.fromtimestamp(record.timestamp / 1000)


def day_bounds(start, end):
    """Epoch-ms bounds covering ``start`` 00:00:00.000 to ``end`` 23:59:59.999."""
    return (
        to_millis(datetime.combine(start, time.min)),
        to_millis(datetime.combine(end, END_OF_DAY)),
    )


# -- predicates --

def matches_search(record, text):
    needle = text.lower()
    return needle in (record.bill_number or "").lower() or needle in record.student_name.lower()


def on_day(record, day):
    return local_moment(record).date() == day


def in_month(record, month):
    return local_moment(record).strftime(MONTH_FMT) == month


def in_year(record, year):
    return local_moment(record).year == year


def for_course(record, course):
    return record.class_name == course


def filter_records(records, search=None, day=None, month=None, course=None,
                   start=None, end=None):
    """Lazily AND the given filters over ``records``.

    Calendar filters use the local date of ``timestamp``, never the stored
    ``date`` string. ``day`` takes precedence over ``month``. ``start`` and
    ``end`` cover whole days and may be given alone; a missing end of the
    range is open. With no filters the records come back unchanged and in
    the same order.
    """
    result = iter(records)
    if search:
        result = (r for r in result if matches_search(r, search))
    if day is not None:
        result = (r for r in result if on_day(r, day))
    elif month:
        result = (r for r in result if in_month(r, month))
    if course:
        result = (r for r in result if for_course(r, course))
    if start is not None or end is not None:
        low = day_bounds(start, start)[0] if start is not None else None
        high = day_bounds(end, end)[1] if end is not None else None
        result = (
            r for r in result
            if (low is None or r.timestamp >= low) and (high is None or r.timestamp <= high)
        )
    return result


def sort_records(records, key='timestamp', descending=False):
    """Sort by one field.

    Ties keep their input order (``sorted`` is stable) and no secondary key
    is applied. Records with a missing value sort after the rest when
    ascending.
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {key}")

    records = list(records)
    present = [r for r in records if getattr(r, key) is not None]
    missing = [r for r in records if getattr(r, key) is None]
    ordered = sorted(present, key=lambda r: getattr(r, key), reverse=descending)
    return missing + ordered if descending else ordered + missing


# -- revenue --

@dataclass
class RevenueSummary:
    total: int = 0
    count: int = 0
    by_course: dict = field(default_factory=dict)

    def to_dict(self):
        return {'total': self.total, 'count': self.count, 'byCourse': self.by_course}


def _plain(value):
    return value.item() if hasattr(value, 'item') else value


def _frame(records):
    return pd.DataFrame([r.to_dict() for r in records], columns=COLUMNS)


def revenue_breakdown(records):
    df = _frame(records)
    if df.empty:
        return RevenueSummary()
    grouped = df.groupby('class_name', sort=True)['amount'].sum()
    return RevenueSummary(
        total=_plain(df['amount'].sum()),
        count=len(df),
        by_course={name: _plain(amount) for name, amount in grouped.items()},
    )


def monthly_revenue(records, year, month, course=None):
    selected = filter_records(records, month=f"{year:04d}-{month:02d}", course=course)
    return revenue_breakdown(selected)


def yearly_revenue(records, year, course=None):
    selected = (r for r in filter_records(records, course=course) if in_year(r, year))
    return revenue_breakdown(selected)


def revenue_by_month(records, year, course=None):
    """Total per ``YYYY-MM`` for every month of ``year``, zero-filled."""
    months = {f"{year:04d}-{m:02d}": 0 for m in range(1, 13)}
    selected = [r for r in filter_records(records, course=course) if in_year(r, year)]
    if not selected:
        return months
    df = _frame(selected)
    df['month'] = [local_moment(r).strftime(MONTH_FMT) for r in selected]
    for month, amount in df.groupby('month')['amount'].sum().items():
        months[month] = _plain(amount)
    return months
