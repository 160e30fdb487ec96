"""Shared test fixtures for the taskboard tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (taskboard package, server module) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskboard.storage import FileStorage, MemoryStorage
from taskboard.store import ProjectStore


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ProjectStore(storage)


@pytest.fixture
def file_storage(tmp_path):
    return FileStorage(tmp_path / "state")


@pytest.fixture
def project(store):
    return store.create_project("Website Redesign", "Q1 relaunch")


SAMPLE_CSV = (
    "Task Name,Status,Assigned To,Priority\n"
    "Write docs,In Progress,Alice,High\n"
    "Fix login,Bugs,Bob,Medium\n"
    "Ship it,Deployed,alice,Low\n"
)


@pytest.fixture
def sample_csv():
    return SAMPLE_CSV
