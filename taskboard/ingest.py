"""Import pipeline.

Reads CSV / TXT / Excel input with pandas, turns the parsed table into
canonical Tasks, and reports the three user-visible failure kinds: the file
type is unsupported, the file cannot be parsed, or it yields no tasks.
"""
import io
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

import pandas as pd

from .errors import EmptyImportError, ImportParseError, UnsupportedFileTypeError
from .factory import create_task, make_task_id
from .normalizer import canonical_headers, clean_row, is_blank
from .schema import Task

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = ("csv", "txt")
EXCEL_EXTENSIONS = ("xlsx", "xls")
DELIMITERS = (",", "\t", ";", "|")

Source = Union[str, Path, bytes, io.IOBase, Any]
Rows = List[Dict[str, Any]]


class ImportResult(NamedTuple):
    tasks: List[Task]
    headers: List[str]


# ── Batch processing ─────────────────────────────────────────────────────────

def _has_content(row: Any) -> bool:
    if not isinstance(row, Mapping):
        return False
    return any(not is_blank(v) for v in row.values())


def process_parsed_data(rows: Iterable[Mapping[str, Any]], extracted_headers: Iterable[Any],
                        project_id: Optional[str] = None) -> ImportResult:
    """
    Turn a parsed table into tasks sharing one canonical header list.

    Fully blank rows are dropped silently. A row id already used earlier in
    the batch is replaced with a generated one so ids stay unique.
    """
    headers = canonical_headers(extracted_headers)
    project_id = project_id or f"default_{int(time.time() * 1000)}"

    tasks: List[Task] = []
    seen_ids = set()
    total = 0
    for row in rows:
        total += 1
        if not _has_content(row):
            continue
        task = create_task(clean_row(row), headers, project_id)
        if task.id in seen_ids:
            task.id = make_task_id(project_id)
        seen_ids.add(task.id)
        tasks.append(task)

    logger.debug(f"Processed {total} rows into {len(tasks)} tasks for {project_id}")
    return ImportResult(tasks=tasks, headers=headers)


# ── Readers ──────────────────────────────────────────────────────────────────

def _is_placeholder(name: Any) -> bool:
    """pandas names blank header cells 'Unnamed: N'."""
    return isinstance(name, str) and name.startswith("Unnamed: ")


def _header_names(columns: Iterable[Any]) -> List[str]:
    return ["" if (c is None or _is_placeholder(c)) else str(c) for c in columns]


def _sniff_delimiter(text: str) -> str:
    """Pick the candidate delimiter that occurs most in the header line."""
    first = next((line for line in text.splitlines() if line.strip()), "")
    best = max(DELIMITERS, key=first.count)
    return best if first.count(best) > 0 else ","


def _read_bytes(source: Source) -> bytes:
    if isinstance(source, bytes):
        return source
    if hasattr(source, "read"):
        data = source.read()
        return data.encode("utf-8") if isinstance(data, str) else data
    return Path(source).read_bytes()


def _records(frame: pd.DataFrame, headers: List[str], convert=None) -> Rows:
    rows = []
    for record in frame.itertuples(index=False, name=None):
        values = record if convert is None else [convert(v) for v in record]
        rows.append(dict(zip(headers, values)))
    return rows


def frame_from_csv_text(text: str) -> Tuple[Rows, List[str]]:
    """Parse delimited text with a header row. All cells are read as text."""
    frame = pd.read_csv(
        io.StringIO(text),
        sep=_sniff_delimiter(text),
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    headers = _header_names(frame.columns)
    return _records(frame, headers), headers


def read_csv(source: Source) -> Tuple[Rows, List[str]]:
    """Read a CSV/TXT file (path, bytes or stream). Returns (rows, headers)."""
    text = _read_bytes(source).decode("utf-8-sig")
    return frame_from_csv_text(text)


def _excel_cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    item = getattr(value, "item", None)
    if callable(item):
        # numpy scalar
        return item()
    return value


def read_excel(source: Source) -> Tuple[Rows, List[str]]:
    """Read the first worksheet; first row is the header row."""
    frame = pd.read_excel(io.BytesIO(_read_bytes(source)), sheet_name=0, header=0, dtype=object)
    headers = _header_names(frame.columns)
    return _records(frame, headers, convert=_excel_cell), headers


# ── Entry points ─────────────────────────────────────────────────────────────

def file_extension(filename: str) -> str:
    name = Path(filename or "").name
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def parse_csv_text(text: str, project_id: Optional[str] = None) -> ImportResult:
    """Import pasted CSV text."""
    if not text or not text.strip():
        raise EmptyImportError("Please enter some CSV data.")
    try:
        rows, headers = frame_from_csv_text(text)
    except pd.errors.EmptyDataError:
        raise EmptyImportError("No valid tasks found in the CSV data.")
    except (pd.errors.ParserError, ValueError) as e:
        logger.warning(f"Error parsing pasted CSV data: {e}")
        raise ImportParseError("Error parsing CSV data. Please check the format.") from e

    result = process_parsed_data(rows, headers, project_id)
    if not result.tasks:
        raise EmptyImportError("No valid tasks found in the CSV data.")
    return result


def import_file(source: Optional[Source], filename: str,
                project_id: Optional[str] = None) -> ImportResult:
    """
    Import a CSV, TXT or Excel file.

    Args:
        source: path, bytes or binary stream; None reads `filename` from disk
        filename: original file name, used to pick the reader
        project_id: owning project for the new tasks

    Raises:
        UnsupportedFileTypeError, ImportParseError, EmptyImportError
    """
    ext = file_extension(filename)
    if source is None:
        source = filename

    if ext in CSV_EXTENSIONS:
        try:
            rows, headers = read_csv(source)
        except pd.errors.EmptyDataError:
            raise EmptyImportError("No valid tasks found in the file.")
        except (pd.errors.ParserError, UnicodeDecodeError, ValueError, OSError) as e:
            logger.warning(f"Error parsing CSV file {filename}: {e}")
            raise ImportParseError("Error parsing CSV file. Please check the format.") from e
    elif ext in EXCEL_EXTENSIONS:
        try:
            rows, headers = read_excel(source)
        except Exception as e:
            logger.warning(f"Error parsing Excel file {filename}: {e}")
            raise ImportParseError("Error parsing Excel file. Please check the format.") from e
        if not rows:
            raise EmptyImportError("No data found in the Excel file.")
    else:
        raise UnsupportedFileTypeError(filename)

    result = process_parsed_data(rows, headers, project_id)
    if not result.tasks:
        raise EmptyImportError("No valid tasks found in the file.")
    logger.info(f"Imported {len(result.tasks)} tasks from {filename}")
    return result
