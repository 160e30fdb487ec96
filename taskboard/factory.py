"""
Task factory: turn one cleaned row into a canonical Task.
"""
import time
import uuid
from typing import Any, Iterable, Mapping, Optional

from .normalizer import is_blank, is_system_field, resolve_assignee, resolve_status
from .schema import DEFAULT_STATUS, Task, utc_now


def make_task_id(project_id: Optional[str] = None) -> str:
    """Generate a unique task ID: owning project, ms-precision timestamp, random token."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:9]
    return f"{project_id or 'default'}_{ts}_{rand}"


def create_task(row: Mapping[str, Any], headers: Iterable[str],
                project_id: Optional[str] = None) -> Task:
    """
    Build a Task from one row shaped by the canonical header list.

    The row's own id is kept when present. Every non-system header with a
    non-empty value is copied into the task's extension fields; empty values
    are left out rather than stored as "".
    """
    raw_id = row.get("id")
    task_id = str(raw_id).strip() if not is_blank(raw_id) else make_task_id(project_id)

    fields = {}
    for header in headers:
        if is_system_field(header):
            continue
        value = row.get(header)
        if value is None or value == "":
            continue
        fields[header] = value

    return Task(
        id=task_id,
        status=resolve_status(row),
        assignee=resolve_assignee(row),
        project_id=project_id or "default",
        created_at=utc_now(),
        fields=fields,
    )


def new_blank_task(project_id: str) -> Task:
    """The manual "add task" action: an unassigned task at the start of the workflow."""
    return Task(
        id=make_task_id(project_id),
        status=DEFAULT_STATUS,
        assignee="",
        project_id=project_id,
        fields={"Task Name": "New Task"},
    )
