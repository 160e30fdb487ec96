"""Excel export of a project's tasks (pandas + openpyxl)."""
import io
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from .normalizer import is_assignee_header, is_system_field
from .schema import Task

EXPORT_PREFIX_COLUMNS = ("Status", "Assignee")
DEFAULT_SHEET_NAME = "Tasks"
MIN_COLUMN_WIDTH = 12
MAX_COLUMN_WIDTH = 50

_SHEET_NAME_INVALID = re.compile(r"[\[\]:*?/\\]")
_FILENAME_INVALID = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def export_columns(headers: Iterable[str]) -> List[str]:
    """Status and Assignee first, then every non-system header once."""
    columns = list(EXPORT_PREFIX_COLUMNS)
    for header in headers:
        if is_system_field(header) or is_assignee_header(header) or header in columns:
            continue
        columns.append(header)
    return columns


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    # Excel cannot hold timezone-aware datetimes
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def _sheet_name(name: Optional[str]) -> str:
    clean = _SHEET_NAME_INVALID.sub("_", (name or "").strip())[:31]
    return clean or DEFAULT_SHEET_NAME


def column_width(values: Iterable[Any]) -> int:
    longest = max((len(str(v)) for v in values if v is not None), default=0)
    return min(max(longest + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)


def export_frame(tasks: Iterable[Task], headers: Iterable[str]) -> pd.DataFrame:
    columns = export_columns(headers)
    rows = []
    for task in tasks:
        row = [task.status, task.assignee]
        row.extend(_cell(task.fields.get(h)) for h in columns[len(EXPORT_PREFIX_COLUMNS):])
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def export_workbook(tasks: Iterable[Task], headers: Iterable[str],
                    sheet_name: Optional[str] = None) -> bytes:
    """Render tasks to .xlsx bytes, one row per task."""
    frame = export_frame(tasks, headers)
    sheet = _sheet_name(sheet_name)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=sheet, index=False)
        worksheet = writer.sheets[sheet]
        for i, column in enumerate(frame.columns, start=1):
            width = column_width([column, *frame[column].tolist()])
            worksheet.column_dimensions[get_column_letter(i)].width = width
    return buffer.getvalue()


def export_filename(project_name: Optional[str] = None, today: Optional[date] = None) -> str:
    """
    `<name>-<YYYY-MM-DD>.xlsx`, every non-alphanumeric character in the
    project name replaced with `_`. Without a name: `tasks-export-<date>.xlsx`.
    """
    stamp = (today or date.today()).isoformat()
    if not project_name:
        return f"tasks-export-{stamp}.xlsx"
    return f"{_FILENAME_INVALID.sub('_', project_name)}-{stamp}.xlsx"
