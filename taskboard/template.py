# Taskboard - import template
#
# A fixed template users can download, fill in and import. Nothing here
# depends on stored data.
#
# RULES:
#   - Header order is the column order of every generated file
#   - Required columns: Task Name, Status, Assigned To
#   - The Excel variant carries a second "Instructions" sheet

import io
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .export import column_width
from .schema import KANBAN_COLUMNS

TEMPLATE_CSV_FILENAME = "task-manager-template.csv"
TEMPLATE_XLSX_FILENAME = "task-manager-template.xlsx"
TEMPLATE_SHEET_NAME = "Task Manager Template"
INSTRUCTIONS_SHEET_NAME = "Instructions"

REQUIRED_COLUMNS = ("Task Name", "Status", "Assigned To")
RECOMMENDED_COLUMNS = ("Priority", "Project", "Due Date", "Description")
PRIORITY_OPTIONS = ("High", "Medium", "Low")

DEFAULT_TEMPLATE: Dict[str, Any] = {
    "headers": [
        "Task Name",
        "Status",
        "Assigned To",
        "Priority",
        "Project",
        "Due Date",
        "Description",
        "Category",
        "Effort",
        "Tags",
    ],
    "sample_data": [
        {
            "Task Name": "Set up project repository",
            "Status": "Not Started",
            "Assigned To": "John Doe",
            "Priority": "High",
            "Project": "Website Redesign",
            "Due Date": "2024-12-31",
            "Description": "Initialize Git repository and set up basic project structure",
            "Category": "Setup",
            "Effort": "3 hours",
            "Tags": "setup, git, initialization",
        },
        {
            "Task Name": "Design user interface mockups",
            "Status": "In Progress",
            "Assigned To": "Jane Smith",
            "Priority": "High",
            "Project": "Website Redesign",
            "Due Date": "2025-01-15",
            "Description": "Create wireframes and high-fidelity mockups for all main pages",
            "Category": "Design",
            "Effort": "2 days",
            "Tags": "design, ui, mockups",
        },
        {
            "Task Name": "Implement user authentication",
            "Status": "Dev Completed",
            "Assigned To": "Mike Johnson",
            "Priority": "High",
            "Project": "Backend Services",
            "Due Date": "2025-01-10",
            "Description": "Build login/logout functionality with JWT tokens",
            "Category": "Feature",
            "Effort": "1 week",
            "Tags": "auth, backend, security",
        },
        {
            "Task Name": "Write API documentation",
            "Status": "Tested",
            "Assigned To": "Sarah Wilson",
            "Priority": "Medium",
            "Project": "Backend Services",
            "Due Date": "2025-01-20",
            "Description": "Document all API endpoints with examples and parameters",
            "Category": "Documentation",
            "Effort": "4 hours",
            "Tags": "docs, api, documentation",
        },
        {
            "Task Name": "Deploy to production",
            "Status": "Deployed",
            "Assigned To": "DevOps Team",
            "Priority": "High",
            "Project": "Website Redesign",
            "Due Date": "2025-01-25",
            "Description": "Deploy the completed website to production servers",
            "Category": "Deployment",
            "Effort": "2 hours",
            "Tags": "deployment, production, release",
        },
        {
            "Task Name": "Fix mobile responsive issues",
            "Status": "Bugs",
            "Assigned To": "Jane Smith",
            "Priority": "Medium",
            "Project": "Website Redesign",
            "Due Date": "2025-01-12",
            "Description": "Resolve layout issues on mobile devices under 768px width",
            "Category": "Bug",
            "Effort": "1 day",
            "Tags": "mobile, responsive, css",
        },
        {
            "Task Name": "Add search to product catalogue",
            "Status": "In Progress",
            "Assigned To": "Mike Johnson",
            "Priority": "Medium",
            "Project": "Website Redesign",
            "Due Date": "2025-02-03",
            "Description": "Full-text search with filters for category and price range",
            "Category": "Feature",
            "Effort": "5 days",
            "Tags": "search, catalogue, frontend",
        },
        {
            "Task Name": "Set up database backups",
            "Status": "Not Started",
            "Assigned To": "DevOps Team",
            "Priority": "High",
            "Project": "Backend Services",
            "Due Date": "2025-02-01",
            "Description": "Nightly snapshots with a 30 day retention policy",
            "Category": "Setup",
            "Effort": "1 day",
            "Tags": "database, backup, ops",
        },
        {
            "Task Name": "Improve page load performance",
            "Status": "Tested",
            "Assigned To": "Jane Smith",
            "Priority": "Low",
            "Project": "Website Redesign",
            "Due Date": "2025-02-10",
            "Description": "Lazy-load images and split the main JavaScript bundle",
            "Category": "Enhancement",
            "Effort": "3 days",
            "Tags": "performance, frontend",
        },
        {
            "Task Name": "Rate limit public API",
            "Status": "Bugs",
            "Assigned To": "Sarah Wilson",
            "Priority": "Low",
            "Project": "Backend Services",
            "Due Date": "2025-02-14",
            "Description": "Limits are applied per process instead of per client",
            "Category": "Bug",
            "Effort": "4 hours",
            "Tags": "api, security, backend",
        },
    ],
    "description": (
        "This template includes all essential columns for effective task "
        "management with Kanban boards and project tracking."
    ),
}

# ARGB fills for the Excel variant
STATUS_FILLS = {
    "Not Started": "FFF3F4F6",
    "In Progress": "FFDBEAFE",
    "Bugs": "FFFECACA",
    "Dev Completed": "FFD1FAE5",
    "Tested": "FFEDE9FE",
    "Deployed": "FFE0E7FF",
}
PRIORITY_FILLS = {
    "High": "FFFECACA",
    "Medium": "FFFEF3C7",
    "Low": "FFD1FAE5",
}
HEADER_FILL = "FF3B82F6"
DATA_BORDER_COLOR = "FFE5E7EB"

INSTRUCTIONS = [
    "Task Manager Template - Instructions",
    "",
    "REQUIRED COLUMNS (Do not remove):",
    "• Task Name: Primary identifier for each task",
    "• Status: Must be one of: " + ", ".join(KANBAN_COLUMNS),
    "• Assigned To: Person responsible for the task",
    "",
    "RECOMMENDED COLUMNS:",
    "• Priority: High, Medium, or Low",
    "• Project: Group related tasks together",
    "• Due Date: Target completion date (YYYY-MM-DD format)",
    "• Description: Detailed task information",
    "• Category: Type of work (Feature, Bug, Enhancement, etc.)",
    "• Effort: Time estimate or story points",
    "• Tags: Comma-separated keywords for filtering",
    "",
    "USAGE TIPS:",
    "• You can add more columns as needed",
    "• Dates should be in YYYY-MM-DD format",
    "• Keep task names concise but descriptive",
    "• Use consistent values for Status and Priority",
    "• Tags help with filtering and organization",
    "",
    "GETTING STARTED:",
    "1. Fill in your tasks using the sample data as a guide",
    "2. Save the file as CSV or keep as Excel",
    "3. Upload to your Task Manager project",
    "4. Start managing your tasks with Kanban boards!",
    "",
    "Need help? Check the application documentation.",
]


def template_frame() -> pd.DataFrame:
    headers = DEFAULT_TEMPLATE["headers"]
    rows = [[row.get(h, "") for h in headers] for row in DEFAULT_TEMPLATE["sample_data"]]
    return pd.DataFrame(rows, columns=headers)


def template_csv() -> str:
    """The template as CSV text (values with commas are quoted)."""
    return template_frame().to_csv(index=False, lineterminator="\n")


# ═══════════════════════════════════════════════════════════════
# EXCEL
# ═══════════════════════════════════════════════════════════════

def _solid(argb: str) -> PatternFill:
    return PatternFill(fill_type="solid", start_color=argb, end_color=argb)


def _border(color: Optional[str] = None) -> Border:
    side = Side(style="thin", color=color)
    return Border(top=side, left=side, bottom=side, right=side)


def _write_template_sheet(ws) -> None:
    headers = DEFAULT_TEMPLATE["headers"]
    ws.append(headers)
    for cell in ws[1]:
        cell.fill = _solid(HEADER_FILL)
        cell.font = Font(color="FFFFFFFF", bold=True, size=12)
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = _border()

    data_border = _border(DATA_BORDER_COLOR)
    for row in DEFAULT_TEMPLATE["sample_data"]:
        ws.append([row.get(h, "") for h in headers])
        for header, cell in zip(headers, ws[ws.max_row]):
            cell.border = data_border
            if header == "Status":
                cell.fill = _solid(STATUS_FILLS.get(cell.value, STATUS_FILLS["Not Started"]))
                cell.font = Font(bold=True)
            elif header == "Priority":
                cell.fill = _solid(PRIORITY_FILLS.get(cell.value, PRIORITY_FILLS["Medium"]))
                cell.font = Font(bold=True)

    for i, header in enumerate(headers, start=1):
        values = [header, *(row.get(header, "") for row in DEFAULT_TEMPLATE["sample_data"])]
        ws.column_dimensions[get_column_letter(i)].width = column_width(values)


def _write_instructions_sheet(ws) -> None:
    for index, line in enumerate(INSTRUCTIONS):
        ws.append([line])
        cell = ws.cell(row=ws.max_row, column=1)
        if index == 0:
            cell.font = Font(bold=True, size=16, color="FF1F2937")
        elif ":" in line and not line.startswith("•"):
            cell.font = Font(bold=True, size=12, color="FF374151")
        elif line.startswith("•") or line[:1].isdigit():
            cell.font = Font(size=11, color="FF4B5563")
    ws.column_dimensions["A"].width = 80


def template_workbook() -> bytes:
    """The styled Excel template (.xlsx bytes)."""
    wb = Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET_NAME
    _write_template_sheet(ws)
    _write_instructions_sheet(wb.create_sheet(INSTRUCTIONS_SHEET_NAME))

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def template_info() -> Dict[str, Any]:
    return {
        "description": DEFAULT_TEMPLATE["description"],
        "columnCount": len(DEFAULT_TEMPLATE["headers"]),
        "sampleRowCount": len(DEFAULT_TEMPLATE["sample_data"]),
        "requiredColumns": list(REQUIRED_COLUMNS),
        "recommendedColumns": list(RECOMMENDED_COLUMNS),
        "statusOptions": list(KANBAN_COLUMNS),
        "priorityOptions": list(PRIORITY_OPTIONS),
    }


def template_headers() -> List[str]:
    return list(DEFAULT_TEMPLATE["headers"])
