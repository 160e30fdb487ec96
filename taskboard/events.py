"""
Storage change notifications: keeps several open views of the same stored
state converging.

A view ("tab") subscribes to `storage_changed` and re-reads whatever key
changed. There is no merge: whichever view saved last wins.

Sources of change events:
    SyncedStorage   - writes made through another view in this process
    StorageWatcher  - file changes under a FileStorage directory (watchdog),
                      which covers writes from other processes
"""
import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .storage import FileStorage, StoragePort

logger = logging.getLogger(__name__)

STORAGE_CHANGED = "storage_changed"

_WRITE_EVENTS = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_DELETED}


class StorageEventBridge:
    """Routes storage change notifications to subscribed views."""

    def __init__(self):
        # event_type -> list of (callback, origin)
        self.subscribers: Dict[str, List[Tuple[Callable, Optional[str]]]] = {}

    def subscribe(self, event_type: str, callback: Callable, origin: Optional[str] = None) -> None:
        """
        Register a callback for an event type. A subscriber with an origin
        does not hear about changes published under that same origin.
        """
        self.subscribers.setdefault(event_type, []).append((callback, origin))

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        self.subscribers[event_type] = [
            (cb, o) for cb, o in self.subscribers.get(event_type, []) if cb != callback
        ]

    def _emit(self, event_type: str, origin: Optional[str] = None, **kwargs) -> None:
        """Emit an event to all subscribers except the originating one."""
        for callback, sub_origin in list(self.subscribers.get(event_type, [])):
            if origin is not None and sub_origin == origin:
                continue
            try:
                callback(origin=origin, **kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    def publish_change(self, key: str, origin: Optional[str] = None) -> None:
        """A stored key was written or removed."""
        self._emit(STORAGE_CHANGED, origin=origin, key=key)


class SyncedStorage(StoragePort):
    """
    A view over a shared backend that announces its own writes.

    Each view gets its own origin id so it is not notified of its own
    changes, mirroring how a browser tab never sees its own storage events.
    """

    def __init__(self, backend: StoragePort, bridge: StorageEventBridge,
                 origin: Optional[str] = None):
        self.backend = backend
        self.bridge = bridge
        self.origin = origin or uuid.uuid4().hex[:8]

    def get(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def set(self, key: str, value: str) -> None:
        self.backend.set(key, value)
        self.bridge.publish_change(key, origin=self.origin)

    def remove(self, key: str) -> None:
        self.backend.remove(key)
        self.bridge.publish_change(key, origin=self.origin)

    def keys(self) -> List[str]:
        return self.backend.keys()


# ── Filesystem watcher ───────────────────────────────────────────────────────


class StorageFileHandler(FileSystemEventHandler):
    """Turns file writes under a FileStorage root into storage change events.

    Bursts of events for one key are coalesced: the change is published once
    the debounce window after the first event has closed, so the reload reads
    whatever the last write left on disk.
    """

    def __init__(self, storage: FileStorage, bridge: StorageEventBridge, debounce_ms: int = 100):
        self.storage = storage
        self.bridge = bridge
        self.debounce_ms = debounce_ms
        self._pending: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def _schedule(self, key: str) -> None:
        if self.debounce_ms <= 0:
            self._publish(key)
            return
        with self._lock:
            if key in self._pending:
                return
            timer = threading.Timer(self.debounce_ms / 1000, self._fire, args=(key,))
            timer.daemon = True
            self._pending[key] = timer
        timer.start()

    def _fire(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)
        self._publish(key)

    def _publish(self, key: str) -> None:
        logger.debug(f"External change to {key}")
        self.bridge.publish_change(key)

    def flush(self) -> None:
        """Publish every pending change now."""
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()
        for key, timer in pending:
            timer.cancel()
            self._publish(key)

    def cancel(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for timer in pending:
            timer.cancel()

    def on_any_event(self, fs_event):
        if fs_event.is_directory or fs_event.event_type not in _WRITE_EVENTS:
            return
        paths = [fs_event.src_path, getattr(fs_event, "dest_path", "")]
        for path in paths:
            if not path:
                continue
            key = self.storage.key_for_path(path)
            if key:
                self._schedule(key)


class StorageWatcher:
    """Watches a FileStorage directory with a watchdog observer."""

    def __init__(self, storage: FileStorage, bridge: StorageEventBridge, debounce_ms: int = 100):
        self.storage = storage
        self.handler = StorageFileHandler(storage, bridge, debounce_ms)
        self.observer = None

    def start(self) -> None:
        if self.observer is not None:
            return
        self.observer = Observer()
        self.observer.schedule(self.handler, str(self.storage.root), recursive=False)
        self.observer.start()
        logger.info(f"Watching {self.storage.root} for external changes")

    def stop(self) -> None:
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None
        self.handler.cancel()

    def __enter__(self) -> "StorageWatcher":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
