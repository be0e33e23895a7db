import logging
from pathlib import Path

import pandas as pd
from werkzeug.utils import secure_filename

from queries import filter_records, sort_records

logger = logging.getLogger(__name__)

SHEET_NAME = 'Transactions'
HEADERS = ['Bill No', 'Date', 'Student Name', 'Course', 'Amount (Rs.)']


def export_frame(records):
    """Rows sorted by time, followed by a TOTAL row."""
    data = [
        {
            'Bill No': r.bill_number or '',
            'Date': r.date,
            'Student Name': r.student_name,
            'Course': r.class_name,
            'Amount (Rs.)': r.amount,
        }
        for r in sort_records(records, 'timestamp')
    ]
    total = sum(r['Amount (Rs.)'] for r in data)
    data.append({'Bill No': '', 'Date': '', 'Student Name': '', 'Course': 'TOTAL', 'Amount (Rs.)': total})
    return pd.DataFrame(data, columns=HEADERS)


def export_filename(start, end):
    return secure_filename(f"transactions_{start.isoformat()}_{end.isoformat()}.xlsx")


def export_transactions(store, start, end, directory):
    """Write every record in ``[start, end]`` (whole days) to an .xlsx file."""
    if end < start:
        raise ValueError("End date is before start date")
    records = list(filter_records(store.read_all(), start=start, end=end))
    df = export_frame(records)

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(start, end)
    with pd.ExcelWriter(path, engine='xlsxwriter') as writer:
        df.to_excel(writer, index=False, sheet_name=SHEET_NAME)
    logger.info("Exported %d transactions to %s", len(records), path)
    return path
