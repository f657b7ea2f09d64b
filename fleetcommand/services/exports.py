import csv
import io
from typing import Any, Dict

from slugify import slugify

from .smartsheet_client import sheet_rows
from .validation import sanitize_csv_cell


def sheet_to_csv(sheet: Dict[str, Any]) -> str:
    """Render a fetched sheet as CSV with every field quoted."""
    titles = [c.get("title") or str(c.get("id")) for c in sheet.get("columns") or []]
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([sanitize_csv_cell(t) for t in titles])
    for row in sheet_rows(sheet):
        writer.writerow([sanitize_csv_cell(_text(row["data"].get(t))) for t in titles])
    return buf.getvalue()


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def export_filename(sheet: Dict[str, Any]) -> str:
    name = slugify(sheet.get("name") or "", separator="_", lowercase=False) or "sheet"
    return f"{name}.csv"
