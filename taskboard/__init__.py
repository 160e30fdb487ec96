# Taskboard: tabular task import, project storage, and Kanban/table views
#
# Components:
#   schema.py     - Data model (Task, Project, ProjectData, AppState)
#   errors.py     - Exception hierarchy
#   normalizer.py - Header canonicalisation and alias resolution
#   factory.py    - Raw row -> Task construction
#   ingest.py     - Batch processing and CSV/Excel readers (pandas)
#   storage.py    - Key/value storage port (memory, JSON files)
#   store.py      - Project/task persistence adapter
#   events.py     - Storage change bridge and watchdog watcher
#   session.py    - One open view over the store ("tab")
#   board.py      - Filtering, pagination, Kanban grouping, stats
#   export.py     - Excel export
#   template.py   - Import template generator
#   config.py     - YAML configuration
