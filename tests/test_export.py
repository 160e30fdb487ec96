"""
Tests for Excel export and the import template.

Covers:
    - export_columns() / export_workbook() - layout, widths, sheet names
    - export_filename()                    - sanitising, date stamp
    - export → import round trip
    - template_csv() / template_workbook() / template_info()
"""

import io
from datetime import date, datetime, timezone

from openpyxl import load_workbook

from taskboard.export import export_columns, export_filename, export_workbook
from taskboard.ingest import import_file, parse_csv_text
from taskboard.schema import KANBAN_COLUMNS, Task
from taskboard.template import (
    DEFAULT_TEMPLATE,
    INSTRUCTIONS_SHEET_NAME,
    STATUS_FILLS,
    TEMPLATE_SHEET_NAME,
    template_csv,
    template_info,
    template_workbook,
)


def sheet_rows(content, index=0):
    wb = load_workbook(io.BytesIO(content))
    ws = wb.worksheets[index]
    return ws, [list(r) for r in ws.iter_rows(values_only=True)]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Export
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_export_columns_drop_system_headers():
    headers = ["Task Name", "Assigned To", "Status", "assignee", "Priority", "Task Name"]
    assert export_columns(headers) == ["Status", "Assignee", "Task Name", "Priority"]


def test_export_workbook_layout():
    tasks = [
        Task(id="1", status="Bugs", assignee="Bob", fields={"Task Name": "Fix", "Effort": 2}),
        Task(id="2", status="Tested", assignee="", fields={"Task Name": "Docs"}),
    ]
    content = export_workbook(tasks, ["Task Name", "Status", "Assigned To", "Effort"],
                              sheet_name="Website Redesign")
    ws, rows = sheet_rows(content)

    assert ws.title == "Website Redesign"
    assert rows[0] == ["Status", "Assignee", "Task Name", "Effort"]
    assert rows[1] == ["Bugs", "Bob", "Fix", 2]
    assert rows[2][:3] == ["Tested", None, "Docs"]
    assert len(rows) == 3


def test_export_column_widths_clamped():
    tasks = [Task(id="1", fields={"Notes": "n" * 200, "X": "y"})]
    content = export_workbook(tasks, ["Notes", "X"])
    ws, _ = sheet_rows(content)
    assert ws.column_dimensions["C"].width == 50
    assert ws.column_dimensions["D"].width == 12


def test_export_handles_aware_datetimes():
    when = datetime(2025, 1, 25, 9, 0, tzinfo=timezone.utc)
    content = export_workbook([Task(id="1", fields={"Due": when})], ["Due"])
    _, rows = sheet_rows(content)
    assert rows[1][2] == datetime(2025, 1, 25, 9, 0)


def test_export_sheet_name_sanitised():
    content = export_workbook([], [], sheet_name="Q1/Q2: [plans]?")
    ws, rows = sheet_rows(content)
    assert ws.title == "Q1_Q2_ _plans__"
    assert rows == [["Status", "Assignee"]]


def test_export_filename():
    today = date(2025, 3, 7)
    assert export_filename("Website Redesign!", today) == "Website_Redesign_-2025-03-07.xlsx"
    assert export_filename(None, today) == "tasks-export-2025-03-07.xlsx"


def test_roundtrip_reproduces_tasks():
    source = ("Task Name,Status,Assigned To,Priority,Effort\n"
              "Write docs,In Progress,Alice,High,3 hours\n"
              "Fix login,Bugs,,Medium,\n"
              "Ship it,Deployed,Carol,,1 day\n")
    imported = parse_csv_text(source, "p1")
    content = export_workbook(imported.tasks, imported.headers)
    reimported = import_file(content, "export.xlsx", "p1")

    def tuples(tasks):
        return sorted((t.status, t.assignee, tuple(sorted(t.fields.items()))) for t in tasks)

    assert tuples(reimported.tasks) == tuples(imported.tasks)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Template
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_template_has_ten_rows():
    assert len(DEFAULT_TEMPLATE["sample_data"]) == 10
    assert set(DEFAULT_TEMPLATE["sample_data"][0]) == set(DEFAULT_TEMPLATE["headers"])


def test_template_csv_imports_cleanly():
    text = template_csv()
    assert text.splitlines()[0] == ",".join(DEFAULT_TEMPLATE["headers"])
    assert '"setup, git, initialization"' in text

    result = parse_csv_text(text, "p1")
    assert len(result.tasks) == 10
    assert result.tasks[0].assignee == "John Doe"
    assert result.tasks[0].fields["Tags"] == "setup, git, initialization"


def test_template_workbook_sheets_and_styles():
    content = template_workbook()
    wb = load_workbook(io.BytesIO(content))
    assert wb.sheetnames == [TEMPLATE_SHEET_NAME, INSTRUCTIONS_SHEET_NAME]

    ws = wb[TEMPLATE_SHEET_NAME]
    assert [c.value for c in ws[1]] == DEFAULT_TEMPLATE["headers"]
    assert ws["A1"].font.bold
    assert ws["A1"].fill.fgColor.rgb == "FF3B82F6"
    assert ws.max_row == 11

    status_cell = ws["B2"]
    assert status_cell.fill.fgColor.rgb == STATUS_FILLS[status_cell.value]

    instructions = wb[INSTRUCTIONS_SHEET_NAME]
    assert instructions["A1"].value == "Task Manager Template - Instructions"
    assert instructions.column_dimensions["A"].width == 80


def test_template_workbook_imports_cleanly():
    result = import_file(template_workbook(), "template.xlsx", "p1")
    assert len(result.tasks) == 10
    assert {t.status for t in result.tasks} == set(KANBAN_COLUMNS)


def test_template_info():
    info = template_info()
    assert info["requiredColumns"] == ["Task Name", "Status", "Assigned To"]
    assert info["recommendedColumns"] == ["Priority", "Project", "Due Date", "Description"]
    assert info["statusOptions"] == list(KANBAN_COLUMNS)
    assert info["priorityOptions"] == ["High", "Medium", "Low"]
    assert info["sampleRowCount"] == 10
    assert info["columnCount"] == 10
