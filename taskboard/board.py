"""Board views over a project's tasks: filtering, pagination, Kanban columns, stats."""
import math
from collections import OrderedDict
from typing import Dict, Iterable, List, NamedTuple

from .schema import COMPLETED_STATUS, KANBAN_COLUMNS, ProjectFilters, Task

ITEMS_PER_PAGE = 20

STATUS_COLORS = {
    "Not Started": "#F3F4F6",    # Gray
    "In Progress": "#DBEAFE",    # Blue
    "Bugs": "#FECACA",           # Red
    "Dev Completed": "#D1FAE5",  # Green
    "Tested": "#EDE9FE",         # Purple
    "Deployed": "#E0E7FF",       # Indigo
}
DEFAULT_STATUS_COLOR = STATUS_COLORS["Not Started"]

PRIORITY_COLORS = {
    "High": "#FECACA",
    "Medium": "#FEF3C7",
    "Low": "#D1FAE5",
}
DEFAULT_PRIORITY_COLOR = PRIORITY_COLORS["Medium"]

# Checked in order when picking a card title
DISPLAY_NAME_FIELDS = (
    "Task Name", "Plan", "Focus", "Project", "Key Topics",
    "Title", "Name", "Task", "Description",
)


class Page(NamedTuple):
    items: List[Task]
    page: int
    total_pages: int
    total: int


def status_color(status: str) -> str:
    """Unknown statuses render with the default style."""
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def priority_color(priority: str) -> str:
    return PRIORITY_COLORS.get(priority, DEFAULT_PRIORITY_COLOR)


def matches_filters(task: Task, filters: ProjectFilters) -> bool:
    if filters.assignee and filters.assignee.lower() not in task.assignee.lower():
        return False
    if filters.search:
        needle = filters.search.lower()
        if not any(v is not None and needle in str(v).lower() for v in task.values()):
            return False
    if filters.status and task.status != filters.status:
        return False
    if filters.priority and str(task.fields.get("Priority", "")) != filters.priority:
        return False
    return True


def filter_tasks(tasks: Iterable[Task], filters: ProjectFilters) -> List[Task]:
    return [t for t in tasks if matches_filters(t, filters)]


def paginate(tasks: List[Task], page: int, per_page: int = ITEMS_PER_PAGE) -> Page:
    """Slice one page out of `tasks`; `page` is 1-based and clamped into range."""
    total = len(tasks)
    total_pages = math.ceil(total / per_page) if per_page > 0 else 1
    page = min(max(1, page), max(1, total_pages))
    start = (page - 1) * per_page
    return Page(items=tasks[start:start + per_page], page=page,
                total_pages=total_pages, total=total)


def group_by_status(tasks: Iterable[Task]) -> "OrderedDict[str, List[Task]]":
    """
    Kanban columns in workflow order. Tasks with an unknown status get a
    trailing column of their own, in first-seen order.
    """
    columns: "OrderedDict[str, List[Task]]" = OrderedDict((c, []) for c in KANBAN_COLUMNS)
    for task in tasks:
        columns.setdefault(task.status, []).append(task)
    return columns


def task_stats(tasks: List[Task]) -> Dict[str, object]:
    total = len(tasks)
    by_status = {c: 0 for c in KANBAN_COLUMNS}
    for task in tasks:
        by_status[task.status] = by_status.get(task.status, 0) + 1
    completed = by_status.get(COMPLETED_STATUS, 0)
    return {
        "total": total,
        "completed": completed,
        "by_status": by_status,
        "completion_rate": round(completed / total * 100) if total else 0,
    }


def unique_assignees(tasks: Iterable[Task]) -> List[str]:
    return sorted({t.assignee.strip() for t in tasks if t.assignee and t.assignee.strip()})


def task_display_name(task: Task) -> str:
    for name in DISPLAY_NAME_FIELDS:
        value = task.fields.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    for value in task.fields.values():
        if isinstance(value, str) and value.strip():
            return value.strip()
    return "Untitled Task"
