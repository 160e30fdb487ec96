#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API over a TrackerSession: projects, tasks, CSV/Excel import, Excel
export, templates and backups. State lives in a directory of JSON files
(one per storage key), so several server processes pointed at the same
directory converge on each other's writes.

Usage:
    python taskboard_server.py --storage-dir ~/.local/share/taskboard

API:
    GET    /health
    GET    /api/state                     → { currentProjectId, projects, darkMode, ... }
    GET    /api/projects                  → { projects }
    POST   /api/projects                  body: { name, description }
    PATCH  /api/projects/<id>             body: { name?, description?, color? }
    DELETE /api/projects/<id>
    POST   /api/projects/<id>/select
    GET    /api/board                     → columns, current page, stats, assignees
    POST   /api/tasks                     → new blank task
    PATCH  /api/tasks/<id>                body: { field: value, ... }
    PUT    /api/tasks/<id>                body: full task
    POST   /api/tasks/<id>/status         body: { status }
    DELETE /api/tasks/<id>
    POST   /api/filters                   body: { assignee?, search?, status?, priority? }
    DELETE /api/filters
    POST   /api/view                      body: { view: "kanban"|"table" }
    POST   /api/page                      body: { page }
    POST   /api/import                    multipart: file
    POST   /api/import/text               body: { text }
    GET    /api/export                    → .xlsx download
    GET    /api/template                  → template info
    GET    /api/template/csv | /api/template/xlsx
    GET    /api/backup                    → full snapshot
    POST   /api/restore                   body: snapshot
    POST   /api/theme/toggle
    POST   /api/sidebar                   body: { collapsed }
"""

import io
import logging
import os
import sys
import threading

try:
    from flask import Flask, jsonify, request, send_file
except ImportError:
    print("Flask not installed. Run: pip install flask", file=sys.stderr)
    sys.exit(1)

from taskboard.config import STORAGE_DIR_ENV, Config
from taskboard.errors import (
    ImportFailed,
    ProjectLimitError,
    ProjectNotFoundError,
    TaskboardError,
    ValidationError,
)
from taskboard.events import StorageEventBridge, StorageWatcher
from taskboard.schema import Task
from taskboard.session import TrackerSession
from taskboard.storage import FileStorage
from taskboard.store import ProjectStore
from taskboard.template import (
    TEMPLATE_CSV_FILENAME,
    TEMPLATE_XLSX_FILENAME,
    template_csv,
    template_info,
    template_workbook,
)

logger = logging.getLogger("taskboard.server")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
# Keys board_view() adds to each card; never stored
CARD_VIEW_KEYS = ("displayName", "statusColor")

app = Flask(__name__)

_session_lock = threading.Lock()


# ── Session ──────────────────────────────────────────────────────────────────

def build_session(config: Config) -> TrackerSession:
    storage = FileStorage(config.storage_dir)
    bridge = StorageEventBridge()
    session = TrackerSession(
        ProjectStore(storage, max_projects=config.max_projects),
        bridge=bridge,
        items_per_page=config.items_per_page,
    )
    if config.watch_storage:
        watcher = StorageWatcher(storage, bridge, debounce_ms=config.watch_debounce_ms)
        watcher.start()
        app.config["TASKBOARD_WATCHER"] = watcher
    return session


def get_session() -> TrackerSession:
    session = app.config.get("TASKBOARD_SESSION")
    if session is not None:
        return session
    with _session_lock:
        session = app.config.get("TASKBOARD_SESSION")
        if session is None:
            session = build_session(app.config.get("TASKBOARD_CONFIG") or Config.load())
            app.config["TASKBOARD_SESSION"] = session
    return session


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


# ── Errors ───────────────────────────────────────────────────────────────────

@app.errorhandler(ValidationError)
def handle_validation(e):
    return jsonify({"error": str(e), "errors": e.errors}), 400


@app.errorhandler(ProjectNotFoundError)
def handle_not_found(e):
    return jsonify({"error": "Project not found" if e.project_id else "No project selected"}), 404


@app.errorhandler(ProjectLimitError)
def handle_limit(e):
    return jsonify({"error": str(e)}), 409


@app.errorhandler(ImportFailed)
def handle_import(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(TaskboardError)
def handle_taskboard(e):
    return jsonify({"error": str(e)}), 400


def _task_not_found():
    return jsonify({"error": "Task not found"}), 404


# ── Routes: app state / projects ─────────────────────────────────────────────

@app.route("/health")
def health():
    session = get_session()
    return jsonify({
        "status": "ok",
        "projects": len(session.app_state.projects),
        "storage_bytes": session.store.get_total_storage_size(),
    })


@app.route("/api/state")
def api_state():
    return jsonify(get_session().app_state.to_dict())


@app.route("/api/projects", methods=["GET"])
def api_projects():
    return jsonify({"projects": [p.to_dict() for p in get_session().app_state.projects]})


@app.route("/api/projects", methods=["POST"])
def api_create_project():
    data = _body()
    project = get_session().create_project(data.get("name") or "", data.get("description"))
    return jsonify({"project": project.to_dict()}), 201


@app.route("/api/projects/<project_id>", methods=["PATCH"])
def api_edit_project(project_id):
    data = _body()
    updates = {k: data[k] for k in ("name", "description", "color") if k in data}
    project = get_session().edit_project(project_id, **updates)
    return jsonify({"project": project.to_dict()})


@app.route("/api/projects/<project_id>", methods=["DELETE"])
def api_delete_project(project_id):
    session = get_session()
    session.delete_project(project_id)
    return jsonify({"deleted": project_id, "currentProjectId": session.app_state.current_project_id})


@app.route("/api/projects/<project_id>/select", methods=["POST"])
def api_select_project(project_id):
    project = get_session().select_project(project_id)
    return jsonify({"project": project.to_dict()})


# ── Routes: board / tasks ────────────────────────────────────────────────────

@app.route("/api/board")
def api_board():
    return jsonify(get_session().board_view())


@app.route("/api/tasks", methods=["POST"])
def api_add_task():
    task = get_session().add_task()
    return jsonify({"task": task.to_dict()}), 201


@app.route("/api/tasks/<task_id>", methods=["PATCH"])
def api_update_task(task_id):
    if not get_session().update_task(task_id, _body()):
        return _task_not_found()
    return jsonify({"updated": task_id})


@app.route("/api/tasks/<task_id>", methods=["PUT"])
def api_replace_task(task_id):
    data = _body()
    for key in CARD_VIEW_KEYS:
        data.pop(key, None)
    data["id"] = task_id
    if not get_session().replace_task(Task.from_dict(data)):
        return _task_not_found()
    return jsonify({"updated": task_id})


@app.route("/api/tasks/<task_id>/status", methods=["POST"])
def api_task_status(task_id):
    status = str(_body().get("status") or "").strip()
    if not status:
        return jsonify({"error": "status is required"}), 400
    if not get_session().change_status(task_id, status):
        return _task_not_found()
    return jsonify({"updated": task_id, "status": status})


@app.route("/api/tasks/<task_id>", methods=["DELETE"])
def api_delete_task(task_id):
    if not get_session().delete_task(task_id):
        return _task_not_found()
    return jsonify({"deleted": task_id})


# ── Routes: filters / view ───────────────────────────────────────────────────

@app.route("/api/filters", methods=["POST"])
def api_set_filters():
    filters = get_session().set_filters(**{k: str(v or "") for k, v in _body().items()})
    return jsonify({"filters": filters.to_dict()})


@app.route("/api/filters", methods=["DELETE"])
def api_clear_filters():
    return jsonify({"filters": get_session().clear_filters().to_dict()})


@app.route("/api/view", methods=["POST"])
def api_set_view():
    view = str(_body().get("view") or "")
    get_session().set_view(view)
    return jsonify({"view": view})


@app.route("/api/page", methods=["POST"])
def api_set_page():
    try:
        page = int(_body().get("page", 1))
    except (TypeError, ValueError):
        return jsonify({"error": "page must be a number"}), 400
    return jsonify({"page": get_session().set_page(page)})


# ── Routes: import / export ──────────────────────────────────────────────────

@app.route("/api/import", methods=["POST"])
def api_import_file():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "file is required"}), 400
    count = get_session().import_file(upload.read(), upload.filename)
    return jsonify({"imported": count})


@app.route("/api/import/text", methods=["POST"])
def api_import_text():
    count = get_session().import_text(str(_body().get("text") or ""))
    return jsonify({"imported": count})


@app.route("/api/export")
def api_export():
    filename, content = get_session().export_current()
    return send_file(io.BytesIO(content), mimetype=XLSX_MIMETYPE,
                     as_attachment=True, download_name=filename)


@app.route("/api/template")
def api_template_info():
    return jsonify(template_info())


@app.route("/api/template/csv")
def api_template_csv():
    return send_file(io.BytesIO(template_csv().encode("utf-8")), mimetype="text/csv",
                     as_attachment=True, download_name=TEMPLATE_CSV_FILENAME)


@app.route("/api/template/xlsx")
def api_template_xlsx():
    return send_file(io.BytesIO(template_workbook()), mimetype=XLSX_MIMETYPE,
                     as_attachment=True, download_name=TEMPLATE_XLSX_FILENAME)


# ── Routes: backup / preferences ─────────────────────────────────────────────

@app.route("/api/backup")
def api_backup():
    return jsonify(get_session().store.export_snapshot())


@app.route("/api/restore", methods=["POST"])
def api_restore():
    session = get_session()
    if not session.store.import_snapshot(request.get_json(force=True, silent=True)):
        return jsonify({"error": "Invalid backup"}), 400
    session.load()
    return jsonify({"restored": len(session.app_state.projects)})


@app.route("/api/theme/toggle", methods=["POST"])
def api_toggle_theme():
    return jsonify({"darkMode": get_session().toggle_dark_mode()})


@app.route("/api/sidebar", methods=["POST"])
def api_sidebar():
    collapsed = bool(_body().get("collapsed"))
    return jsonify({"sidebarCollapsed": get_session().set_sidebar_collapsed(collapsed)})


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--config", help="Path to taskboard.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--storage-dir",
                        help=f"Directory for stored state (overrides {STORAGE_DIR_ENV} env var)")
    args = parser.parse_args()

    if args.storage_dir:
        os.environ[STORAGE_DIR_ENV] = args.storage_dir
    config = Config.load(args.config)
    host = args.host or config.host
    port = args.port or config.port

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    app.config["TASKBOARD_CONFIG"] = config
    session = get_session()
    logger.info(f"Storage: {config.storage_dir} ({len(session.app_state.projects)} projects)")
    logger.info(f"Serving on http://{host}:{port}")

    try:
        app.run(host=host, port=port, debug=False, threaded=True)
    finally:
        watcher = app.config.get("TASKBOARD_WATCHER")
        if watcher is not None:
            watcher.stop()
