# Overview: Spreadsheet parsing for import previews and row export (CSV, JSON, XLSX).

from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, time
from typing import Any, Iterable

from openpyxl import Workbook, load_workbook

from ..errors import ValidationError
from ..models import TableColumn, TableRow

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}
EXPORT_FORMATS = ("csv", "xlsx")


def _cell(value: Any) -> Any:
    """Spreadsheet cells come back as Python types; the import API expects JSON scalars."""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value


def parse_upload(filename: str, stream) -> dict:
    """
    Read an uploaded file into {headers, data, totalRows}.

    The first row becomes headers; data holds the remaining rows as lists,
    ready to send to the import endpoint with hasHeaders=true.
    """
    ext = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""

    if ext == "csv":
        try:
            text = stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV files must be UTF-8 encoded")
        rows = [row for row in csv.reader(io.StringIO(text))]
    elif ext == "json":
        try:
            payload = json.load(stream)
        except ValueError:
            raise ValidationError("Invalid JSON file")
        rows = _rows_from_json(payload)
    elif ext in XLSX_EXTENSIONS:
        wb = load_workbook(stream, data_only=True, read_only=True)
        try:
            sheet = wb.active
            rows = [[_cell(v) for v in row] for row in sheet.iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        raise ValidationError("Unsupported file format (use .csv, .json or .xlsx)")

    # Trailing blank lines are common in spreadsheet exports
    while rows and all(v is None or (isinstance(v, str) and not v.strip()) for v in rows[-1]):
        rows.pop()
    if not rows:
        raise ValidationError("File contains no rows")

    headers = ["" if h is None else str(h).strip() for h in rows[0]]
    data = [list(r) for r in rows[1:]]
    return {"headers": headers, "data": data, "totalRows": len(data)}


def _rows_from_json(payload: Any) -> list[list[Any]]:
    if isinstance(payload, dict):
        payload = payload.get("rows", [])
    if not isinstance(payload, list):
        raise ValidationError("JSON file must contain a list of rows")
    if payload and all(isinstance(r, dict) for r in payload):
        headers: list[str] = []
        for r in payload:
            for key in r:
                if key not in headers:
                    headers.append(key)
        return [headers] + [[r.get(h) for h in headers] for r in payload]
    if all(isinstance(r, list) for r in payload):
        return [list(r) for r in payload]
    raise ValidationError("JSON rows must be all objects or all lists")


def export_rows(columns: Iterable[TableColumn], rows: Iterable[TableRow], fmt: str) -> tuple[bytes, str]:
    """Return (content, mimetype) for the table's rows in column order."""
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")

    names = [c.name for c in columns]
    header = ["id"] + names
    body = [[row.id] + [(row.data or {}).get(n) for n in names] for row in rows]

    if fmt == "csv":
        out = io.StringIO()
        writer = csv.writer(out)
        writer.writerow(header)
        for line in body:
            writer.writerow(["" if v is None else v for v in line])
        return out.getvalue().encode("utf-8"), "text/csv"

    wb = Workbook()
    sheet = wb.active
    sheet.append(header)
    for line in body:
        sheet.append([json.dumps(v) if isinstance(v, (dict, list)) else v for v in line])
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
