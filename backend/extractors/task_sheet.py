"""Parser for the site task tracking sheet.

Each published package workbook carries one row per task on the
``Data_Entry`` tab.  Column headers drift between packages (``Task UID`` vs
``task_uid`` vs ``Task ID``), so columns are located by keyword rather than
by position.  The parser favours resilience: a row it cannot make sense of is
skipped and counted, never fatal, and a date it cannot read becomes ``None``.
Only a payload that is not a readable workbook or CSV raises ``ParseError``.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

import pandas as pd

from backend.core.errors import ParseError
from backend.core.schema import TaskRecord

logger = logging.getLogger(__name__)

COLUMN_KEYWORDS: dict[str, list[str]] = {
    "task_uid": ["task uid", "task id", "taskid"],
    "site_uid": ["site uid", "site id", "siteid"],
    "package_id": ["package id", "package uid", "package"],
    "site_name": ["site name", "facility name", "facility"],
    "district": ["district"],
    "task_name": ["task name", "task description", "activity"],
    "category": ["category", "phase", "work type"],
    "planned_start": ["planned start", "baseline start", "plan start"],
    "planned_finish": ["planned finish", "planned end", "baseline finish", "plan finish"],
    "actual_start": ["actual start"],
    "actual_finish": ["actual finish", "actual end", "completion date"],
    "last_updated": ["last updated", "updated at", "last update"],
    "weight": ["weight"],
    "progress": ["progress", "percent complete", "% complete"],
    "remarks": ["remarks", "comments", "notes"],
}

REQUIRED_FIELDS = ("task_uid", "site_uid")
DATE_FIELDS = ("planned_start", "planned_finish", "actual_start", "actual_finish")
TEXT_FIELDS = ("site_name", "district", "task_name", "category", "remarks")

EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_MAX_SERIAL = 2958465  # 9999-12-31
EMPTY_MARKERS = {"", "-", "--", "n/a", "na", "none", "null", "tbd", "nat"}
HEADER_SCAN_ROWS = 10

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0"


@dataclass
class TaskSheetParseResult:
    tasks: list[TaskRecord] = field(default_factory=list)
    skipped_rows: int = 0


def _normalise_header(value: Any) -> str:
    text = str(value).strip().lower().replace("_", " ")
    return " ".join(text.split())


def _find_columns(columns: list[Any]) -> dict[str, Any]:
    """Map field names to frame columns, exact keyword matches first."""

    headers = {column: _normalise_header(column) for column in columns}
    mapping: dict[str, Any] = {}
    claimed: set[Any] = set()

    for exact in (True, False):
        for field_name, keywords in COLUMN_KEYWORDS.items():
            if field_name in mapping:
                continue
            for keyword in keywords:
                match = next(
                    (
                        column
                        for column, header in headers.items()
                        if column not in claimed
                        and (header == keyword if exact else keyword in header)
                    ),
                    None,
                )
                if match is not None:
                    mapping[field_name] = match
                    claimed.add(match)
                    break
    return mapping


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _coerce_text(value: Any) -> str | None:
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if text.lower() in EMPTY_MARKERS:
        return None
    return text


def _coerce_number(value: Any) -> float | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if text.endswith("%"):
            text = text[:-1].strip()
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _from_excel_serial(serial: float) -> datetime | None:
    if not 1 <= serial <= EXCEL_MAX_SERIAL:
        return None
    return EXCEL_EPOCH + timedelta(days=serial)


def _coerce_datetime(value: Any) -> datetime | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, (int, float)):
        return _from_excel_serial(float(value))

    text = str(value).strip()
    if text.lower() in EMPTY_MARKERS:
        return None
    number = _coerce_number(text)
    if number is not None:
        return _from_excel_serial(number)
    parsed = pd.to_datetime(text, errors="coerce")
    if _is_missing(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC").tz_localize(None)
    return parsed.to_pydatetime()


def _coerce_date(value: Any) -> date | None:
    parsed = _coerce_datetime(value)
    return parsed.date() if parsed is not None else None


def _looks_like_workbook(payload: bytes) -> bool:
    return payload.startswith(XLSX_MAGIC) or payload.startswith(XLS_MAGIC)


def _read_frame(payload: bytes, sheet_name: str | None) -> pd.DataFrame:
    if not payload:
        raise ParseError("payload is empty")

    if not _looks_like_workbook(payload):
        try:
            return pd.read_csv(io.BytesIO(payload), dtype=object)
        except ValueError as exc:
            raise ParseError(f"payload is neither a workbook nor CSV: {exc}") from exc

    try:
        excel = pd.ExcelFile(io.BytesIO(payload))
    except Exception as exc:  # pandas/openpyxl raise a wide range of errors
        raise ParseError(f"unreadable workbook: {exc}") from exc

    target = sheet_name if sheet_name in excel.sheet_names else excel.sheet_names[0]
    if sheet_name and target != sheet_name:
        logger.warning("Sheet %r not found, reading %r instead", sheet_name, target)
    try:
        return excel.parse(sheet_name=target, dtype=object)
    except Exception as exc:  # pandas/openpyxl raise a wide range of errors
        raise ParseError(f"unreadable sheet {target!r}: {exc}") from exc


def _locate_header(frame: pd.DataFrame) -> pd.DataFrame:
    """Return the frame re-headed on the first row naming the id columns.

    The original index is kept, so ``index + 2`` is still the spreadsheet
    row number of every data row.
    """

    columns = _find_columns(list(frame.columns))
    if all(name in columns for name in REQUIRED_FIELDS):
        return frame

    for position in range(min(HEADER_SCAN_ROWS, len(frame))):
        candidate = list(frame.iloc[position].values)
        mapping = _find_columns([value for value in candidate if not _is_missing(value)])
        if all(name in mapping for name in REQUIRED_FIELDS):
            body = frame.iloc[position + 1 :].copy()
            body.columns = [
                value if not _is_missing(value) else f"unnamed_{index}"
                for index, value in enumerate(candidate)
            ]
            return body
    return frame


def _build_record(
    row: pd.Series,
    columns: dict[str, Any],
    source_id: str,
    row_number: int,
) -> TaskRecord | None:
    def cell(name: str) -> Any:
        column = columns.get(name)
        return row.get(column) if column is not None else None

    task_uid = _coerce_text(cell("task_uid"))
    site_uid = _coerce_text(cell("site_uid"))
    if not task_uid or not site_uid:
        return None

    weight = _coerce_number(cell("weight"))
    payload: dict[str, Any] = {
        "task_uid": task_uid,
        "site_uid": site_uid,
        "package_id": _coerce_text(cell("package_id")) or source_id,
        "last_updated": _coerce_datetime(cell("last_updated")),
        "weight": weight if weight is not None and weight > 0 else 0.0,
        "progress": _coerce_number(cell("progress")),
        "source_id": source_id,
        "source_row": row_number,
    }
    for name in TEXT_FIELDS:
        payload[name] = _coerce_text(cell(name))
    for name in DATE_FIELDS:
        payload[name] = _coerce_date(cell(name))
    return TaskRecord(**payload)


def parse(payload: bytes, source_id: str, *, sheet_name: str | None = "Data_Entry") -> TaskSheetParseResult:
    frame = _read_frame(payload, sheet_name)
    frame = frame.dropna(how="all")
    frame = _locate_header(frame)

    columns = _find_columns(list(frame.columns))
    missing = [name for name in REQUIRED_FIELDS if name not in columns]
    if missing:
        raise ParseError(f"{source_id}: task sheet lacks columns {', '.join(missing)}")

    result = TaskSheetParseResult()
    for index, row in frame.iterrows():
        row_number = int(index) + 2  # zero-based index + header row
        try:
            record = _build_record(row, columns, source_id, row_number)
        except (TypeError, ValueError) as exc:
            logger.debug("%s row %s skipped: %s", source_id, row_number, exc)
            record = None
        if record is None:
            result.skipped_rows += 1
            continue
        result.tasks.append(record)

    if result.skipped_rows:
        logger.warning("%s: skipped %d malformed rows", source_id, result.skipped_rows)
    return result
