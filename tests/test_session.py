"""
Tests for change notifications (events.py) and TrackerSession (session.py).

Covers:
    - StorageEventBridge   - subscribe / origin filtering / failing callbacks
    - SyncedStorage        - two views over one backend converge
    - StorageFileHandler   - file events mapped to keys, trailing debounce
    - TrackerSession       - UI actions, view state, board view, export
"""

import io
import time
from types import SimpleNamespace

import pytest
from openpyxl import load_workbook

from taskboard.errors import (
    EmptyImportError,
    ProjectNotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from taskboard.events import (
    STORAGE_CHANGED,
    StorageEventBridge,
    StorageFileHandler,
    StorageWatcher,
    SyncedStorage,
)
from taskboard.schema import KANBAN_COLUMNS
from taskboard.session import TrackerSession
from taskboard.storage import FileStorage, MemoryStorage
from taskboard.store import APP_STATE_KEY, ProjectStore, project_key


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Bridge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestBridge:

    def test_publish_reaches_subscribers(self):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        bridge.publish_change("k1")
        assert seen == ["k1"]

    def test_origin_not_notified_of_own_change(self):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(("a", key)), origin="a")
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(("b", key)), origin="b")
        bridge.publish_change("k", origin="a")
        assert seen == [("b", "k")]

    def test_failing_callback_does_not_stop_others(self):
        bridge = StorageEventBridge()
        seen = []

        def broken(key, origin=None):
            raise RuntimeError("boom")

        bridge.subscribe(STORAGE_CHANGED, broken)
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        bridge.publish_change("k")
        assert seen == ["k"]

    def test_unsubscribe(self):
        bridge = StorageEventBridge()
        seen = []

        def cb(key, origin=None):
            seen.append(key)

        bridge.subscribe(STORAGE_CHANGED, cb)
        bridge.unsubscribe(STORAGE_CHANGED, cb)
        bridge.publish_change("k")
        assert seen == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Two views over one backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@pytest.fixture
def two_tabs():
    backend = MemoryStorage()
    bridge = StorageEventBridge()

    def open_tab(name):
        storage = SyncedStorage(backend, bridge, origin=name)
        return TrackerSession(ProjectStore(storage), bridge=bridge, origin=name)

    return open_tab("tab-a"), open_tab("tab-b")


class TestCrossTab:

    def test_new_project_visible_in_other_tab(self, two_tabs):
        a, b = two_tabs
        project = a.create_project("Shared")
        assert [p.id for p in b.app_state.projects] == [project.id]
        assert b.app_state.current_project_id == project.id

    def test_task_edits_reload_other_tab(self, two_tabs):
        a, b = two_tabs
        a.create_project("Shared")
        a.import_text("Task Name,Status\nWrite docs,In Progress\n")
        assert [t.fields["Task Name"] for t in b.project_data.tasks] == ["Write docs"]

        task_id = b.project_data.tasks[0].id
        b.change_status(task_id, "Deployed")
        assert a.project_data.find_task(task_id).status == "Deployed"

    def test_last_write_wins(self, two_tabs):
        a, b = two_tabs
        a.create_project("Shared")
        task = a.add_task()
        a.update_field(task.id, "Task Name", "from A")
        b.update_field(task.id, "Task Name", "from B")
        assert a.project_data.find_task(task.id).fields["Task Name"] == "from B"

    def test_listener_called_on_external_change(self, two_tabs):
        a, b = two_tabs
        seen = []
        b.add_listener(seen.append)
        a.create_project("Shared")
        assert APP_STATE_KEY in seen

    def test_other_project_changes_ignored(self, two_tabs):
        a, b = two_tabs
        first = a.create_project("First")
        second = a.create_project("Second")
        b.select_project(first.id)
        seen = []
        b.add_listener(seen.append)
        a.store.save_project_data(second.id, a.store.get_project_data(second.id))
        assert project_key(second.id) not in seen

    def test_closed_session_stops_reloading(self, two_tabs):
        a, b = two_tabs
        b.close()
        a.create_project("Shared")
        assert b.app_state.projects == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# File watcher
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def fs_event(event_type, src_path, dest_path="", is_directory=False):
    return SimpleNamespace(event_type=event_type, src_path=str(src_path),
                           dest_path=str(dest_path), is_directory=is_directory)


class TestStorageFileHandler:

    def test_modified_file_publishes_key(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=0)
        handler.on_any_event(fs_event("modified", file_storage.root / "taskManager_projects.json"))
        assert seen == ["taskManager_projects"]

    def test_atomic_replace_reports_destination(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=0)
        handler.on_any_event(fs_event("moved", file_storage.root / ".tmp-abc.json",
                                      file_storage.root / "taskManager_appState.json"))
        assert seen == ["taskManager_appState"]

    def test_ignores_directories_and_reads(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=0)
        handler.on_any_event(fs_event("modified", file_storage.root, is_directory=True))
        handler.on_any_event(fs_event("opened", file_storage.root / "a.json"))
        handler.on_any_event(fs_event("closed", file_storage.root / "a.json"))
        assert seen == []

    def test_burst_publishes_once_after_window(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=10_000)
        path = file_storage.root / "a.json"
        handler.on_any_event(fs_event("modified", path))
        handler.on_any_event(fs_event("modified", path))
        assert seen == []
        handler.flush()
        assert seen == ["a"]
        handler.flush()
        assert seen == ["a"]

    def test_event_after_window_publishes_again(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=20)
        path = file_storage.root / "a.json"
        handler.on_any_event(fs_event("modified", path))
        deadline = time.monotonic() + 5
        while seen != ["a"] and time.monotonic() < deadline:
            time.sleep(0.01)
        handler.on_any_event(fs_event("modified", path))
        while seen != ["a", "a"] and time.monotonic() < deadline:
            time.sleep(0.01)
        assert seen == ["a", "a"]

    def test_cancel_drops_pending(self, file_storage):
        bridge = StorageEventBridge()
        seen = []
        bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))
        handler = StorageFileHandler(file_storage, bridge, debounce_ms=10_000)
        handler.on_any_event(fs_event("modified", file_storage.root / "a.json"))
        handler.cancel()
        handler.flush()
        assert seen == []


def test_watcher_sees_write_from_other_process(file_storage):
    bridge = StorageEventBridge()
    seen = []
    bridge.subscribe(STORAGE_CHANGED, lambda key, origin=None: seen.append(key))

    with StorageWatcher(file_storage, bridge, debounce_ms=0):
        # Another store over the same directory, with no bridge of its own
        ProjectStore(FileStorage(file_storage.root)).create_project("Elsewhere")
        deadline = time.monotonic() + 5
        while "taskManager_projects" not in seen and time.monotonic() < deadline:
            time.sleep(0.05)

    assert "taskManager_projects" in seen


def test_watched_session_converges_on_last_of_rapid_writes(file_storage):
    bridge = StorageEventBridge()
    session = TrackerSession(ProjectStore(file_storage), bridge=bridge)
    project = session.create_project("Shared")

    with StorageWatcher(file_storage, bridge, debounce_ms=50):
        other = ProjectStore(FileStorage(file_storage.root))
        data = other.get_project_data(project.id)
        data.headers = ["First"]
        other.save_project_data(project.id, data)
        time.sleep(0.01)
        data.headers = ["Last"]
        other.save_project_data(project.id, data)

        deadline = time.monotonic() + 5
        while session.project_data.headers != ["Last"] and time.monotonic() < deadline:
            time.sleep(0.05)

    assert session.project_data.headers == ["Last"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Session actions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@pytest.fixture
def session(store):
    s = TrackerSession(store)
    s.create_project("Website Redesign")
    return s


class TestSession:

    def test_create_makes_current(self, session):
        assert session.current_project.name == "Website Redesign"

    def test_import_requires_project(self, store):
        with pytest.raises(ProjectNotFoundError):
            TrackerSession(store).import_text("Plan\nx\n")

    def test_import_file(self, session, sample_csv):
        assert session.import_file(sample_csv.encode("utf-8"), "tasks.csv") == 3
        assert len(session.project_data.tasks) == 3
        assert session.current_project.task_count == 3
        assert session.current_project.completed_count == 1

    def test_failed_import_changes_nothing(self, session, sample_csv):
        session.import_file(sample_csv.encode("utf-8"), "tasks.csv")
        with pytest.raises(UnsupportedFileTypeError):
            session.import_file(b"x", "notes.docx")
        with pytest.raises(EmptyImportError):
            session.import_text("Plan,Status\n,\n")
        assert len(session.project_data.tasks) == 3

    def test_add_and_delete_task(self, session):
        task = session.add_task()
        assert session.project_data.tasks[0].id == task.id
        assert session.delete_task(task.id)
        assert session.project_data.tasks == []

    def test_update_unknown_task(self, session):
        assert session.update_field("nope", "Plan", "x") is False

    def test_filters_reset_page_and_persist(self, session, store, sample_csv):
        session.import_file(sample_csv.encode("utf-8"), "tasks.csv")
        session.project_data.current_page = 3
        session.set_filters(assignee="alice", bogus="ignored")
        assert session.project_data.current_page == 1
        assert [t.assignee for t in session.visible_tasks()] == ["Alice", "alice"]

        stored = store.get_project_data(session.current_project.id)
        assert stored.filters.assignee == "alice"

    def test_clear_filters(self, session, sample_csv):
        session.import_file(sample_csv.encode("utf-8"), "tasks.csv")
        session.set_filters(status="Bugs")
        session.clear_filters()
        assert len(session.visible_tasks()) == 3

    def test_set_view(self, session, store):
        session.set_view("table")
        assert store.get_project_data(session.current_project.id).view == "table"
        with pytest.raises(ValidationError):
            session.set_view("gantt")

    def test_set_page_clamped(self, session):
        session.import_text("Plan\n" + "\n".join(f"row {i}" for i in range(25)) + "\n")
        assert session.set_page(2) == 2
        assert session.set_page(10) == 2
        assert session.set_page(-1) == 1

    def test_select_loads_that_projects_data(self, session):
        session.import_text("Plan\nfirst project task\n")
        first_id = session.current_project.id
        session.create_project("Second")
        assert session.project_data.tasks == []
        session.select_project(first_id)
        assert session.project_data.tasks[0].fields["Plan"] == "first project task"

    def test_edit_and_delete_project(self, session):
        project_id = session.current_project.id
        session.edit_project(project_id, name="Renamed")
        assert session.current_project.name == "Renamed"
        session.delete_project(project_id)
        assert session.current_project is None
        with pytest.raises(ProjectNotFoundError):
            session.delete_project(project_id)

    def test_preferences(self, session):
        assert session.toggle_dark_mode() is True
        assert session.app_state.dark_mode is True
        assert session.set_sidebar_collapsed(True) is True

    def test_board_view(self, session, sample_csv):
        session.import_file(sample_csv.encode("utf-8"), "tasks.csv")
        view = session.board_view()
        assert view["project"]["name"] == "Website Redesign"
        assert view["view"] == "kanban"
        columns = {c["status"]: c["tasks"] for c in view["columns"]}
        assert [c["status"] for c in view["columns"]] == list(KANBAN_COLUMNS)
        assert [t["displayName"] for t in columns["Bugs"]] == ["Fix login"]
        assert view["columns"][0]["color"] == "#F3F4F6"
        assert view["page"]["total"] == 3
        assert view["stats"]["completed"] == 1
        assert view["assignees"] == ["Alice", "Bob", "alice"]

    def test_export_current_uses_visible_tasks(self, session, sample_csv):
        session.import_file(sample_csv.encode("utf-8"), "tasks.csv")
        session.set_filters(status="Bugs")
        filename, content = session.export_current()
        assert filename.startswith("Website_Redesign-")
        ws = load_workbook(io.BytesIO(content)).active
        assert ws.max_row == 2
        assert ws["A2"].value == "Bugs"

    def test_export_without_project(self, store):
        with pytest.raises(ProjectNotFoundError):
            TrackerSession(store).export_current()
