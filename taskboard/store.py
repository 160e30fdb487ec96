"""
Project and task persistence on top of a StoragePort.

Key layout (one scheme only):
    taskManager_appState        current project, project snapshot, theme, sidebar
    taskManager_projects        list of project metadata
    taskManager_project_{id}    one ProjectData blob per project

Every task mutation rewrites the owning project's whole blob and then
recomputes the project's cached counters. Storage faults (corrupt JSON,
quota exceeded, I/O errors) are logged and recovered here; reads fall back
to empty defaults and writes report False.
"""
import json
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import (
    ProjectLimitError,
    ProjectNotFoundError,
    StorageQuotaExceeded,
    ValidationError,
)
from .factory import make_task_id
from .normalizer import is_assignee_header, is_status_header, is_system_field
from .schema import (
    COMPLETED_STATUS,
    MAX_PROJECTS,
    PROJECT_COLORS,
    PROJECT_DESCRIPTION_MAX,
    PROJECT_NAME_MAX,
    PROJECT_NAME_MIN,
    AppState,
    Project,
    ProjectData,
    Task,
    utc_now,
)
from .storage import StoragePort

logger = logging.getLogger(__name__)

KEY_PREFIX = "taskManager_"
APP_STATE_KEY = f"{KEY_PREFIX}appState"
PROJECTS_KEY = f"{KEY_PREFIX}projects"
PROJECT_KEY_PREFIX = f"{KEY_PREFIX}project_"

SNAPSHOT_VERSION = "1.0.0"


def project_key(project_id: str) -> str:
    return f"{PROJECT_KEY_PREFIX}{project_id}"


def project_id_from_key(key: str) -> Optional[str]:
    if key.startswith(PROJECT_KEY_PREFIX):
        return key[len(PROJECT_KEY_PREFIX):]
    return None


def make_project_id() -> str:
    return f"project_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ProjectStore:
    """Storage-backed store for projects, their tasks, and app state."""

    def __init__(self, storage: StoragePort, max_projects: int = MAX_PROJECTS):
        self.storage = storage
        self.max_projects = max_projects

    # ──────────────────────────────────────────
    # Raw JSON access
    # ──────────────────────────────────────────

    def _read_json(self, key: str) -> Any:
        try:
            raw = self.storage.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except (ValueError, TypeError, OSError) as e:
            logger.error(f"Error reading {key}: {e}")
            return None

    def _write_json(self, key: str, value: Any) -> bool:
        try:
            self.storage.set(key, json.dumps(value))
            return True
        except (StorageQuotaExceeded, OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving {key}: {e}")
            return False

    # ──────────────────────────────────────────
    # App state
    # ──────────────────────────────────────────

    def get_app_state(self) -> AppState:
        """
        Load app state. The project list always comes from the projects key,
        never from the snapshot stored in the app state itself.
        """
        projects = self.get_projects()
        first_id = projects[0].id if projects else None
        data = self._read_json(APP_STATE_KEY)
        if not isinstance(data, dict):
            return AppState(current_project_id=first_id, projects=projects)

        current = data.get("currentProjectId")
        if current not in {p.id for p in projects}:
            current = first_id
        return AppState(
            current_project_id=current,
            projects=projects,
            dark_mode=bool(data.get("darkMode", False)),
            sidebar_collapsed=bool(data.get("sidebarCollapsed", False)),
        )

    def save_app_state(self, state: AppState) -> bool:
        return self._write_json(APP_STATE_KEY, state.to_dict())

    def select_project(self, project_id: str) -> AppState:
        state = self.get_app_state()
        if project_id not in {p.id for p in state.projects}:
            raise ProjectNotFoundError(project_id)
        state.current_project_id = project_id
        self.save_app_state(state)
        return state

    def set_dark_mode(self, enabled: bool) -> AppState:
        state = self.get_app_state()
        state.dark_mode = bool(enabled)
        self.save_app_state(state)
        return state

    def toggle_dark_mode(self) -> bool:
        state = self.get_app_state()
        return self.set_dark_mode(not state.dark_mode).dark_mode

    def set_sidebar_collapsed(self, collapsed: bool) -> AppState:
        state = self.get_app_state()
        state.sidebar_collapsed = bool(collapsed)
        self.save_app_state(state)
        return state

    # ──────────────────────────────────────────
    # Projects
    # ──────────────────────────────────────────

    def get_projects(self) -> List[Project]:
        data = self._read_json(PROJECTS_KEY)
        if not isinstance(data, list):
            return []
        projects = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                projects.append(Project.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable project entry: {e}")
        return projects

    def save_projects(self, projects: Iterable[Project]) -> bool:
        return self._write_json(PROJECTS_KEY, [p.to_dict() for p in projects])

    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self.get_projects():
            if project.id == project_id:
                return project
        return None

    def validate_project(
        self,
        name: Optional[str],
        description: Optional[str] = None,
        color: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Check project fields. Returns {field: message}; empty means valid.

        `name=None` skips the name checks (partial update). `project_id`
        excludes the project being edited from the duplicate check.
        """
        errors: Dict[str, str] = {}
        if name is not None:
            clean = name.strip()
            if not clean:
                errors["name"] = "Project name is required"
            elif len(clean) < PROJECT_NAME_MIN:
                errors["name"] = f"Project name must be at least {PROJECT_NAME_MIN} characters"
            elif len(clean) > PROJECT_NAME_MAX:
                errors["name"] = f"Project name must be {PROJECT_NAME_MAX} characters or less"
            elif any(
                p.name.lower() == clean.lower() and p.id != project_id
                for p in self.get_projects()
            ):
                errors["name"] = "A project with this name already exists"

        if description is not None and len(description.strip()) > PROJECT_DESCRIPTION_MAX:
            errors["description"] = (
                f"Description must be {PROJECT_DESCRIPTION_MAX} characters or less"
            )

        if color is not None and color not in PROJECT_COLORS:
            errors["color"] = "Color must be one of the project palette colors"
        return errors

    @staticmethod
    def _pick_color(projects: List[Project]) -> str:
        """First unused palette colour; once exhausted, cycle by project count."""
        used = {p.color for p in projects}
        for color in PROJECT_COLORS:
            if color not in used:
                return color
        return PROJECT_COLORS[len(projects) % len(PROJECT_COLORS)]

    def create_project(self, name: str, description: Optional[str] = None) -> Project:
        """
        Create a project with an empty task collection.

        Raises:
            ProjectLimitError: the project limit is already reached
            ValidationError: name or description is invalid
        """
        projects = self.get_projects()
        if len(projects) >= self.max_projects:
            raise ProjectLimitError(self.max_projects)

        errors = self.validate_project(name, description)
        if errors:
            raise ValidationError(errors)

        project = Project(
            id=make_project_id(),
            name=name.strip(),
            color=self._pick_color(projects),
            description=(description or "").strip() or None,
        )
        self.save_projects([*projects, project])
        self.save_project_data(project.id, ProjectData())
        logger.info(f"Created project {project.id} ({project.name})")
        return project

    def update_project(self, project_id: str, **updates: Any) -> Optional[Project]:
        """
        Apply field updates to a project. Returns the updated project, or None
        when it does not exist. Raises ValidationError on invalid fields.
        """
        projects = self.get_projects()
        index = next((i for i, p in enumerate(projects) if p.id == project_id), None)
        if index is None:
            return None

        errors = self.validate_project(
            updates.get("name"),
            updates.get("description"),
            updates.get("color"),
            project_id=project_id,
        )
        if errors:
            raise ValidationError(errors)

        project = projects[index]
        if updates.get("name") is not None:
            project.name = updates["name"].strip()
        if "description" in updates:
            project.description = (updates["description"] or "").strip() or None
        if updates.get("color") is not None:
            project.color = updates["color"]
        if "task_count" in updates:
            project.task_count = int(updates["task_count"])
        if "completed_count" in updates:
            project.completed_count = int(updates["completed_count"])
        project.updated_at = utc_now()

        self.save_projects(projects)
        return project

    def delete_project(self, project_id: str) -> bool:
        """
        Remove a project and all of its task data. If it was the current
        project, the first remaining project (or none) becomes current.
        """
        try:
            projects = self.get_projects()
            remaining = [p for p in projects if p.id != project_id]
            if len(remaining) == len(projects):
                return False
            if not self.save_projects(remaining):
                return False
            self.storage.remove(project_key(project_id))

            state = self.get_app_state()
            self.save_app_state(state)
            logger.info(f"Deleted project {project_id}")
            return True
        except (StorageQuotaExceeded, OSError, ValueError) as e:
            logger.error(f"Error deleting project {project_id}: {e}")
            return False

    # ──────────────────────────────────────────
    # Project data
    # ──────────────────────────────────────────

    def get_project_data(self, project_id: str) -> ProjectData:
        """Load a project's data; missing or corrupt entries yield empty data."""
        data = self._read_json(project_key(project_id))
        if not isinstance(data, dict):
            return ProjectData()
        try:
            return ProjectData.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Error reading project data for {project_id}: {e}")
            return ProjectData()

    def save_project_data(self, project_id: str, data: ProjectData) -> bool:
        """Write the whole ProjectData, then refresh the project's counters."""
        if not self._write_json(project_key(project_id), data.to_dict()):
            return False
        self.update_project_metadata(project_id, data.tasks)
        return True

    def update_project_metadata(self, project_id: str, tasks: List[Task]) -> Optional[Project]:
        completed = sum(1 for t in tasks if t.status == COMPLETED_STATUS)
        return self.update_project(project_id, task_count=len(tasks), completed_count=completed)

    # ──────────────────────────────────────────
    # Task operations (each rewrites the whole blob)
    # ──────────────────────────────────────────

    def _require_project(self, project_id: str) -> None:
        if self.get_project(project_id) is None:
            raise ProjectNotFoundError(project_id)

    def add_task(self, project_id: str, task: Task) -> Task:
        """Prepend a task to a project."""
        self._require_project(project_id)
        data = self.get_project_data(project_id)
        task.project_id = project_id
        if data.find_task(task.id) is not None:
            task.id = make_task_id(project_id)
        data.tasks.insert(0, task)
        self.save_project_data(project_id, data)
        return task

    def update_task(self, project_id: str, task_id: str, updates: Dict[str, Any]) -> bool:
        """
        Merge field updates into one task. Status and assignee names (any
        casing, any assignee alias) update the core struct, other names
        update extension fields (an empty value removes the field). id,
        projectId and createdAt are never changed.
        """
        data = self.get_project_data(project_id)
        task = data.find_task(task_id)
        if task is None:
            return False

        for name, value in updates.items():
            name = str(name)
            if is_status_header(name):
                task.fields.pop(name, None)
                if value not in (None, "") and str(value).strip():
                    task.status = str(value).strip()
            elif is_assignee_header(name):
                task.fields.pop(name, None)
                task.assignee = "" if value is None else str(value).strip()
            elif is_system_field(name):
                continue
            elif value is None or value == "":
                task.fields.pop(name, None)
            else:
                task.fields[name] = value
        return self.save_project_data(project_id, data)

    def set_task_status(self, project_id: str, task_id: str, status: str) -> bool:
        return self.update_task(project_id, task_id, {"status": status})

    def replace_task(self, project_id: str, task: Task) -> bool:
        """Swap in an edited copy of a task, matched by id."""
        data = self.get_project_data(project_id)
        for i, existing in enumerate(data.tasks):
            if existing.id == task.id:
                task.project_id = project_id
                data.tasks[i] = task
                return self.save_project_data(project_id, data)
        return False

    def delete_task(self, project_id: str, task_id: str) -> bool:
        data = self.get_project_data(project_id)
        remaining = [t for t in data.tasks if t.id != task_id]
        if len(remaining) == len(data.tasks):
            return False
        data.tasks = remaining
        return self.save_project_data(project_id, data)

    def import_tasks(self, project_id: str, tasks: List[Task], headers: List[str]) -> ProjectData:
        """
        Merge an import into a project: new tasks go first, headers become
        the de-duplicated union (new headers first). Ids that collide with
        existing tasks are regenerated.
        """
        self._require_project(project_id)
        data = self.get_project_data(project_id)
        existing_ids = {t.id for t in data.tasks}
        for task in tasks:
            task.project_id = project_id
            if task.id in existing_ids:
                task.id = make_task_id(project_id)
            existing_ids.add(task.id)

        data.tasks = [*tasks, *data.tasks]
        data.headers = list(dict.fromkeys([*headers, *data.headers]))
        self.save_project_data(project_id, data)
        logger.info(f"Imported {len(tasks)} tasks into {project_id}")
        return data

    # ──────────────────────────────────────────
    # Export / backup / maintenance
    # ──────────────────────────────────────────

    def export_project_data(self, project_id: str) -> Optional[Tuple[Project, ProjectData]]:
        project = self.get_project(project_id)
        if project is None:
            return None
        return project, self.get_project_data(project_id)

    def export_snapshot(self) -> Dict[str, Any]:
        """Full backup of every project and its data."""
        projects = self.get_projects()
        return {
            "appState": self.get_app_state().to_dict(),
            "projects": [
                {**p.to_dict(), "data": self.get_project_data(p.id).to_dict()}
                for p in projects
            ],
            "exportedAt": utc_now().isoformat(),
            "version": SNAPSHOT_VERSION,
        }

    def import_snapshot(self, snapshot: Dict[str, Any]) -> bool:
        """Replace all stored data with a backup made by export_snapshot()."""
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("projects"), list):
            return False
        try:
            entries = [p for p in snapshot.get("projects") or [] if isinstance(p, dict)]
            projects = [Project.from_dict(p) for p in entries]
            datas = [
                (p.id, ProjectData.from_dict(e["data"]))
                for p, e in zip(projects, entries) if e.get("data")
            ]
            app_state = AppState.from_dict(snapshot.get("appState")) if snapshot.get("appState") else None
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Error importing snapshot: {e}")
            return False

        self.clear_all_data()
        if app_state is not None:
            self.save_app_state(app_state)
        self.save_projects(projects)
        for project_id, data in datas:
            self.save_project_data(project_id, data)
        logger.info(f"Restored {len(projects)} projects from snapshot")
        return True

    def get_total_storage_size(self) -> int:
        """Characters used by this store's keys."""
        total = 0
        for key in self.storage.keys():
            if key.startswith(KEY_PREFIX):
                total += len(self.storage.get(key) or "")
        return total

    def clear_all_data(self) -> None:
        for key in self.storage.keys():
            if key.startswith(KEY_PREFIX):
                try:
                    self.storage.remove(key)
                except OSError as e:
                    logger.error(f"Error clearing {key}: {e}")
