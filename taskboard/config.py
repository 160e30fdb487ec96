# Taskboard - configuration
# Override storage location and server settings via taskboard.yaml or CLI args.

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from .board import ITEMS_PER_PAGE
from .schema import MAX_PROJECTS

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "taskboard.yaml"
STORAGE_DIR_ENV = "TASKBOARD_STORAGE_DIR"


@dataclass
class Config:
    """Runtime configuration for the tracker server."""

    # Storage
    storage_dir: str = "~/.local/share/taskboard"
    watch_storage: bool = True
    watch_debounce_ms: int = 100

    # Board
    items_per_page: int = ITEMS_PER_PAGE
    max_projects: int = MAX_PROJECTS

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    def resolve_paths(self):
        """Apply the environment override and expand ~."""
        env = os.environ.get(STORAGE_DIR_ENV)
        if env:
            self.storage_dir = env
        self.storage_dir = str(Path(self.storage_dir).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Could not read config {cfg_path}, using defaults: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg
