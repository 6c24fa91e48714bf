"""
Export utilities
CSV export cho attendance records
"""
import csv
import io
from datetime import date

CSV_COLUMNS = ['subject_id', 'class_id', 'timestamp']
FORMULA_PREFIXES = ('=', '+', '-', '@', '\t', '\r')


def sanitize_csv_value(value):
    """Prefix cells that a spreadsheet would evaluate as a formula."""
    if value is None:
        return ''
    text = str(value)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def build_export_filename(day=None):
    day = day or date.today()
    return f"attendance-{day.isoformat()}.csv"


def records_to_csv(records):
    """Serialize attendance rows (from DatabaseManager) thành chuỗi CSV."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for record in records:
        writer.writerow([
            sanitize_csv_value(record.get('student_id')),
            sanitize_csv_value(record.get('class_id')),
            sanitize_csv_value(record.get('recorded_at')),
        ])
    return buffer.getvalue()
