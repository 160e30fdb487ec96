"""
Exception hierarchy for the tracker.

Storage faults are recovered inside the store and never surface here;
everything below is meant to reach the caller as a user-visible message.
"""
from typing import Dict, Optional


class TaskboardError(Exception):
    """Base class for all tracker errors."""
    pass


class ValidationError(TaskboardError):
    """Raised when project fields fail validation. Carries per-field messages."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class ProjectLimitError(TaskboardError):
    """Raised when creating a project would exceed the project limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Maximum {limit} projects allowed")


class ProjectNotFoundError(TaskboardError):
    """Raised when an operation names a project that does not exist."""

    def __init__(self, project_id: Optional[str]):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class StorageQuotaExceeded(TaskboardError):
    """Raised by a storage backend when a write would exceed its quota."""
    pass


# ── Import failures ──────────────────────────────────────────────────────────


class ImportFailed(TaskboardError):
    """Base class for import failures. The message is shown to the user as-is."""
    pass


class UnsupportedFileTypeError(ImportFailed):
    """File extension is not one of csv, txt, xlsx, xls."""

    def __init__(self, filename: str = ""):
        self.filename = filename
        super().__init__("Please upload a CSV, TXT, or Excel file.")


class ImportParseError(ImportFailed):
    """The file could not be parsed at all. Nothing is imported."""
    pass


class EmptyImportError(ImportFailed):
    """The file parsed but produced no admissible tasks."""
    pass
