"""
Task, project and app-state schema.

Workflow:
  Not Started → In Progress → Bugs → Dev Completed → Tested → Deployed

Status is a plain string: values outside the workflow are stored untouched
and rendered with the default style. Tasks carry a fixed core plus an ordered
map of extension fields taken from whatever columns were imported.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Tuple, Union

KANBAN_COLUMNS = (
    "Not Started",
    "In Progress",
    "Bugs",
    "Dev Completed",
    "Tested",
    "Deployed",
)

DEFAULT_STATUS = "Not Started"
COMPLETED_STATUS = "Deployed"

PROJECT_COLORS = (
    "#3B82F6",  # Blue
    "#10B981",  # Emerald
    "#F59E0B",  # Amber
    "#EF4444",  # Red
    "#8B5CF6",  # Violet
    "#06B6D4",  # Cyan
    "#84CC16",  # Lime
    "#F97316",  # Orange
    "#EC4899",  # Pink
    "#6366F1",  # Indigo
)

MAX_PROJECTS = 10
PROJECT_NAME_MIN = 2
PROJECT_NAME_MAX = 50
PROJECT_DESCRIPTION_MAX = 200

VIEW_KANBAN = "kanban"
VIEW_TABLE = "table"
VIEW_MODES = (VIEW_KANBAN, VIEW_TABLE)

Scalar = Union[str, int, float, date, datetime]

# Priority order matters: first non-empty wins
ASSIGNEE_ALIASES = ("Assigned To", "assignee", "Assignee", "assigned_to", "assigned to")
STATUS_ALIASES = ("Status", "status")

# Column names the core struct owns; never stored as extension fields
SYSTEM_FIELDS = (
    "id",
    "status",
    "assignee",
    "Status",
    *ASSIGNEE_ALIASES,
    "createdAt",
    "projectId",
)
SYSTEM_FIELDS_LOWER = frozenset(name.lower() for name in SYSTEM_FIELDS)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (JS 'Z' suffix accepted). Returns None on failure."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _alias_value(data: Dict[str, Any], aliases: Tuple[str, ...]) -> Any:
    """First non-blank value under any alias (case-insensitive), in alias order."""
    for alias in aliases:
        wanted = alias.lower()
        for key, value in data.items():
            if str(key).strip().lower() == wanted and value is not None and str(value).strip():
                return value
    return None


def _json_scalar(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass
class Task:
    """One unit of work: core fields plus imported extension columns."""

    id: str
    status: str = DEFAULT_STATUS
    assignee: str = ""
    project_id: str = "default"
    created_at: datetime = field(default_factory=utc_now)
    fields: Dict[str, Scalar] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Read a value by column name, core fields included."""
        core = {
            "id": self.id,
            "status": self.status,
            "assignee": self.assignee,
            "projectId": self.project_id,
            "createdAt": self.created_at,
        }
        if name in core:
            return core[name]
        return self.fields.get(name, default)

    def values(self) -> List[Any]:
        """All values of the task, core first, in column order."""
        return [self.id, self.status, self.assignee, self.project_id,
                self.created_at, *self.fields.values()]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the flat stored shape (extension fields inline)."""
        data: Dict[str, Any] = {
            "id": self.id,
            "status": self.status,
            "assignee": self.assignee,
            "projectId": self.project_id,
            "createdAt": self.created_at.isoformat(),
        }
        for name, value in self.fields.items():
            if name not in data:
                data[name] = _json_scalar(value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """
        Deserialize from the flat stored shape. System column names in any
        casing (Status, Assigned To, ...) land on the core fields, never in
        `fields`.
        """
        extra = {k: v for k, v in data.items()
                 if v is not None and str(k).strip().lower() not in SYSTEM_FIELDS_LOWER}
        status = data.get("status") or _alias_value(data, STATUS_ALIASES)
        assignee = data.get("assignee") or _alias_value(data, ASSIGNEE_ALIASES)
        return cls(
            id=str(data.get("id", "")),
            status=str(status or DEFAULT_STATUS),
            assignee=str(assignee or "").strip(),
            project_id=str(data.get("projectId") or "default"),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            fields=extra,
        )


@dataclass
class Project:
    """A named, coloured container of tasks."""

    id: str
    name: str
    color: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    task_count: int = 0
    completed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "taskCount": self.task_count,
            "completedCount": self.completed_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            color=str(data.get("color") or PROJECT_COLORS[0]),
            description=data.get("description") or None,
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utc_now(),
            task_count=int(data.get("taskCount") or 0),
            completed_count=int(data.get("completedCount") or 0),
        )


@dataclass
class ProjectFilters:
    """Per-project filter state. Empty string means "no filter"."""

    assignee: str = ""
    search: str = ""
    status: str = ""
    priority: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "assignee": self.assignee,
            "search": self.search,
            "status": self.status,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProjectFilters":
        data = data or {}
        return cls(
            assignee=str(data.get("assignee") or ""),
            search=str(data.get("search") or ""),
            status=str(data.get("status") or ""),
            priority=str(data.get("priority") or ""),
        )


@dataclass
class ProjectData:
    """Everything stored under one project key, written as a single unit."""

    tasks: List[Task] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)
    filters: ProjectFilters = field(default_factory=ProjectFilters)
    view: str = VIEW_KANBAN
    current_page: int = 1

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "headers": list(self.headers),
            "filters": self.filters.to_dict(),
            "view": self.view,
            "currentPage": self.current_page,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProjectData":
        data = data or {}
        view = data.get("view")
        try:
            page = max(1, int(data.get("currentPage") or 1))
        except (TypeError, ValueError):
            page = 1
        return cls(
            tasks=[Task.from_dict(t) for t in data.get("tasks") or [] if isinstance(t, dict)],
            headers=[str(h) for h in data.get("headers") or []],
            filters=ProjectFilters.from_dict(data.get("filters")),
            view=view if view in VIEW_MODES else VIEW_KANBAN,
            current_page=page,
        )


@dataclass
class AppState:
    """Global state: current project, project snapshot, theme, sidebar."""

    current_project_id: Optional[str] = None
    projects: List[Project] = field(default_factory=list)
    dark_mode: bool = False
    sidebar_collapsed: bool = False

    @property
    def current_project(self) -> Optional[Project]:
        for project in self.projects:
            if project.id == self.current_project_id:
                return project
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentProjectId": self.current_project_id,
            "projects": [p.to_dict() for p in self.projects],
            "darkMode": self.dark_mode,
            "sidebarCollapsed": self.sidebar_collapsed,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AppState":
        data = data or {}
        return cls(
            current_project_id=data.get("currentProjectId") or None,
            projects=[Project.from_dict(p) for p in data.get("projects") or [] if isinstance(p, dict)],
            dark_mode=bool(data.get("darkMode", False)),
            sidebar_collapsed=bool(data.get("sidebarCollapsed", False)),
        )
