"""Result file parsers.

Bulk result files come in two encodings, chosen by file extension:

- delimited text (``.csv``): header row, columns matched by substring
- spreadsheet (``.xlsx``/``.xlsm``): first sheet, header aliases

Both produce a list of ``ParsedRow``. Anything that prevents reading the
file as a whole raises ``MalformedInputError``; problems with single rows
are left to the ingestor.
"""

import csv
import io
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from zipfile import BadZipFile

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from placement_api.middleware.error_handler import MalformedInputError
from placement_api.models import UploadMethod

logger = structlog.get_logger()


DELIMITED_EXTENSIONS = {".csv"}
SPREADSHEET_EXTENSIONS = {".xlsx", ".xlsm"}

# Accepted spreadsheet header spellings, in priority order
STUDENT_ID_HEADERS = ["Student ID", "student_id", "StudentID", "Student Id", "studentId"]
MARKS_HEADERS = ["Marks Obtained", "Marks", "Score"]


@dataclass
class ParsedRow:
    """One (candidate, marks) pair read from a result file."""

    row_number: int
    student_id: Optional[str]
    marks_obtained: float
    raw: dict[str, Any] = field(default_factory=dict)


def upload_method_for(filename: str) -> UploadMethod:
    """Map a file name to its upload method, rejecting unsupported types."""
    extension = os.path.splitext(filename or "")[1].lower()
    if extension in DELIMITED_EXTENSIONS:
        return UploadMethod.CSV
    if extension in SPREADSHEET_EXTENSIONS:
        return UploadMethod.EXCEL
    raise MalformedInputError(
        "Invalid file format. Only CSV and Excel (.xlsx) files are supported."
    )


def parse_result_file(filename: str, content: bytes) -> list[ParsedRow]:
    """Parse an uploaded result file into rows."""
    method = upload_method_for(filename)
    if method is UploadMethod.CSV:
        rows = parse_delimited(content)
    else:
        rows = parse_spreadsheet(content)

    logger.debug("Result file parsed", filename=filename, method=method.value, rows=len(rows))
    return rows


def _to_marks(value: Any) -> float:
    # Unreadable marks count as zero
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_identifier(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_delimited(content: bytes) -> list[ParsedRow]:
    """
    Parse comma-separated results.

    The identifier column is the first header containing both "student"
    and "id"; the marks column is the first containing "marks" or "score".
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise MalformedInputError("File is not valid UTF-8 text")

    lines = [line for line in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in line)]
    if len(lines) < 2:
        raise MalformedInputError("CSV file is empty or has no data rows")

    headers = [h.strip().lower() for h in lines[0]]
    id_index = next((i for i, h in enumerate(headers) if "student" in h and "id" in h), None)
    marks_index = next((i for i, h in enumerate(headers) if "marks" in h or "score" in h), None)

    if id_index is None or marks_index is None:
        raise MalformedInputError(
            "Invalid CSV format. Required columns: Student ID, Marks Obtained"
        )

    rows = []
    for row_number, values in enumerate(lines[1:], start=2):
        values = [v.strip() for v in values]
        if len(values) < 2:
            continue
        raw = dict(zip(lines[0], values))
        rows.append(ParsedRow(
            row_number=row_number,
            student_id=_to_identifier(values[id_index]) if id_index < len(values) else None,
            marks_obtained=_to_marks(values[marks_index]) if marks_index < len(values) else 0.0,
            raw=raw,
        ))

    if not rows:
        raise MalformedInputError("No valid data found in file")
    return rows


def _first_present(record: dict[str, Any], keys: list[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_spreadsheet(content: bytes) -> list[ParsedRow]:
    """Parse the first sheet of a workbook, using its first row as headers."""
    try:
        workbook = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, OSError, KeyError) as e:
        logger.warning("Unreadable workbook", error=str(e))
        raise MalformedInputError("Could not read the spreadsheet file")

    try:
        sheet = workbook.worksheets[0]
        records = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if not records:
        raise MalformedInputError("No valid data found in file")

    headers = [str(h).strip() if h is not None else "" for h in records[0]]

    rows = []
    for row_number, values in enumerate(records[1:], start=2):
        if all(v is None or str(v).strip() == "" for v in values):
            continue
        record = {h: v for h, v in zip(headers, values) if h}
        rows.append(ParsedRow(
            row_number=row_number,
            student_id=_to_identifier(_first_present(record, STUDENT_ID_HEADERS)),
            marks_obtained=_to_marks(_first_present(record, MARKS_HEADERS)),
            raw={k: v for k, v in record.items() if v is not None},
        ))

    if not rows:
        raise MalformedInputError("No valid data found in file")
    return rows
