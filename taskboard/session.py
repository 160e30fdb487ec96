"""
TrackerSession: one open view ("tab") over the store.

The session keeps an in-memory copy of the app state and of the current
project's data, applies UI actions through the store, and re-reads from
storage whenever another view announces a change to a key it shows. There
is no merge; a reload simply replaces the in-memory copy.
"""
import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import board
from .errors import ProjectNotFoundError, ValidationError
from .events import STORAGE_CHANGED, StorageEventBridge
from .export import export_filename, export_workbook
from .factory import new_blank_task
from .ingest import ImportResult, import_file, parse_csv_text
from .schema import VIEW_MODES, AppState, Project, ProjectData, ProjectFilters, Task
from .store import APP_STATE_KEY, PROJECTS_KEY, ProjectStore, project_id_from_key

logger = logging.getLogger(__name__)


class TrackerSession:
    """In-memory state of one view, kept in step with the store."""

    def __init__(self, store: ProjectStore, bridge: Optional[StorageEventBridge] = None,
                 origin: Optional[str] = None, items_per_page: int = board.ITEMS_PER_PAGE):
        self.store = store
        self.bridge = bridge
        self.origin = origin
        self.items_per_page = items_per_page
        self.app_state = AppState()
        self.project_data = ProjectData()
        self._lock = threading.RLock()
        self._listeners: List[Callable[[str], None]] = []

        if bridge is not None:
            bridge.subscribe(STORAGE_CHANGED, self.on_storage_changed, origin=origin)
        self.load()

    # ──────────────────────────────────────────
    # Loading / external changes
    # ──────────────────────────────────────────

    def load(self) -> None:
        """Read app state and the current project's data from storage."""
        with self._lock:
            self.app_state = self.store.get_app_state()
            self._load_project_data()

    def _load_project_data(self) -> None:
        project_id = self.app_state.current_project_id
        self.project_data = self.store.get_project_data(project_id) if project_id else ProjectData()

    def on_storage_changed(self, key: str, origin: Optional[str] = None) -> None:
        """Re-read whatever the changed key affects. Last write wins."""
        with self._lock:
            if key in (APP_STATE_KEY, PROJECTS_KEY):
                previous = self.app_state.current_project_id
                self.app_state = self.store.get_app_state()
                if self.app_state.current_project_id != previous:
                    self._load_project_data()
            elif project_id_from_key(key) == self.app_state.current_project_id:
                self._load_project_data()
            else:
                return
            logger.debug(f"Reloaded after external change to {key}")
        self._notify(key)

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Called with the changed key after every external reload."""
        self._listeners.append(callback)

    def _notify(self, key: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(key)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")

    def close(self) -> None:
        if self.bridge is not None:
            self.bridge.unsubscribe(STORAGE_CHANGED, self.on_storage_changed)
            self.bridge = None

    # ──────────────────────────────────────────
    # Projects
    # ──────────────────────────────────────────

    @property
    def current_project(self) -> Optional[Project]:
        return self.app_state.current_project

    def _current_id(self) -> str:
        project_id = self.app_state.current_project_id
        if not project_id:
            raise ProjectNotFoundError(None)
        return project_id

    def select_project(self, project_id: str) -> Project:
        with self._lock:
            self.app_state = self.store.select_project(project_id)
            self._load_project_data()
            return self.app_state.current_project

    def create_project(self, name: str, description: Optional[str] = None) -> Project:
        """Create a project and make it current."""
        with self._lock:
            project = self.store.create_project(name, description)
            return self.select_project(project.id)

    def edit_project(self, project_id: str, **updates: Any) -> Project:
        with self._lock:
            project = self.store.update_project(project_id, **updates)
            if project is None:
                raise ProjectNotFoundError(project_id)
            self.app_state = self.store.get_app_state()
            return project

    def delete_project(self, project_id: str) -> None:
        with self._lock:
            if not self.store.delete_project(project_id):
                raise ProjectNotFoundError(project_id)
            self.load()

    # ──────────────────────────────────────────
    # Import
    # ──────────────────────────────────────────

    def _apply_import(self, result: ImportResult) -> int:
        project_id = self._current_id()
        self.project_data = self.store.import_tasks(project_id, result.tasks, result.headers)
        self.app_state = self.store.get_app_state()
        return len(result.tasks)

    def import_file(self, source: Any, filename: str) -> int:
        """Import a CSV/TXT/Excel file into the current project. Returns tasks added."""
        with self._lock:
            project_id = self._current_id()
            return self._apply_import(import_file(source, filename, project_id))

    def import_text(self, text: str) -> int:
        """Import pasted CSV text into the current project. Returns tasks added."""
        with self._lock:
            project_id = self._current_id()
            return self._apply_import(parse_csv_text(text, project_id))

    # ──────────────────────────────────────────
    # Tasks
    # ──────────────────────────────────────────

    def _after_task_write(self) -> None:
        self.project_data = self.store.get_project_data(self._current_id())
        self.app_state = self.store.get_app_state()

    def add_task(self) -> Task:
        with self._lock:
            project_id = self._current_id()
            task = self.store.add_task(project_id, new_blank_task(project_id))
            self._after_task_write()
            return task

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> bool:
        with self._lock:
            ok = self.store.update_task(self._current_id(), task_id, updates)
            self._after_task_write()
            return ok

    def change_status(self, task_id: str, status: str) -> bool:
        return self.update_task(task_id, {"status": status})

    def update_field(self, task_id: str, name: str, value: Any) -> bool:
        return self.update_task(task_id, {name: value})

    def replace_task(self, task: Task) -> bool:
        with self._lock:
            ok = self.store.replace_task(self._current_id(), task)
            self._after_task_write()
            return ok

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            ok = self.store.delete_task(self._current_id(), task_id)
            self._after_task_write()
            return ok

    # ──────────────────────────────────────────
    # View state (persisted with the project data)
    # ──────────────────────────────────────────

    def _save_view_state(self) -> None:
        project_id = self.app_state.current_project_id
        if project_id:
            self.store.save_project_data(project_id, self.project_data)

    def set_filters(self, **filters: str) -> ProjectFilters:
        """Update any of assignee/search/status/priority. Resets to page 1."""
        with self._lock:
            current = self.project_data.filters.to_dict()
            for name, value in filters.items():
                if name in current:
                    current[name] = value or ""
            self.project_data.filters = ProjectFilters.from_dict(current)
            self.project_data.current_page = 1
            self._save_view_state()
            return self.project_data.filters

    def clear_filters(self) -> ProjectFilters:
        with self._lock:
            self.project_data.filters = ProjectFilters()
            self.project_data.current_page = 1
            self._save_view_state()
            return self.project_data.filters

    def set_view(self, view: str) -> None:
        if view not in VIEW_MODES:
            raise ValidationError({"view": f"View must be one of: {', '.join(VIEW_MODES)}"})
        with self._lock:
            self.project_data.view = view
            self._save_view_state()

    def set_page(self, page: int) -> int:
        """Go to a page; out-of-range pages are clamped."""
        with self._lock:
            visible = self.visible_tasks()
            self.project_data.current_page = board.paginate(
                visible, int(page), self.items_per_page
            ).page
            self._save_view_state()
            return self.project_data.current_page

    # ──────────────────────────────────────────
    # App preferences
    # ──────────────────────────────────────────

    def toggle_dark_mode(self) -> bool:
        with self._lock:
            enabled = self.store.toggle_dark_mode()
            self.app_state = self.store.get_app_state()
            return enabled

    def set_sidebar_collapsed(self, collapsed: bool) -> bool:
        with self._lock:
            self.app_state = self.store.set_sidebar_collapsed(collapsed)
            return self.app_state.sidebar_collapsed

    # ──────────────────────────────────────────
    # Views / export
    # ──────────────────────────────────────────

    def visible_tasks(self) -> List[Task]:
        return board.filter_tasks(self.project_data.tasks, self.project_data.filters)

    def board_view(self) -> Dict[str, Any]:
        """JSON-ready snapshot of what the board shows right now."""
        with self._lock:
            data = self.project_data
            visible = self.visible_tasks()
            page = board.paginate(visible, data.current_page, self.items_per_page)

            def card(task: Task) -> Dict[str, Any]:
                return {
                    **task.to_dict(),
                    "displayName": board.task_display_name(task),
                    "statusColor": board.status_color(task.status),
                }

            return {
                "project": self.current_project.to_dict() if self.current_project else None,
                "view": data.view,
                "filters": data.filters.to_dict(),
                "headers": list(data.headers),
                "columns": [
                    {
                        "status": status,
                        "color": board.status_color(status),
                        "tasks": [card(t) for t in tasks],
                    }
                    for status, tasks in board.group_by_status(visible).items()
                ],
                "page": {
                    "items": [card(t) for t in page.items],
                    "page": page.page,
                    "totalPages": page.total_pages,
                    "total": page.total,
                },
                "stats": board.task_stats(data.tasks),
                "assignees": board.unique_assignees(data.tasks),
            }

    def export_current(self, today: Optional[date] = None) -> Tuple[str, bytes]:
        """Export the visible (filtered) tasks. Returns (filename, xlsx bytes)."""
        with self._lock:
            project = self.current_project
            if project is None:
                raise ProjectNotFoundError(None)
            content = export_workbook(self.visible_tasks(), self.project_data.headers,
                                      sheet_name=project.name)
            return export_filename(project.name, today), content
