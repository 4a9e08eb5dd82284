"""Watcher adapter: decodes watchdog events into change events."""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEventHandler,
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
)

from .config import AgentConfig
from .models import ChangeEvent, ChangeKind, RawFSEvent

logger = logging.getLogger(__name__)

_RAW_KINDS = {
    "created": ChangeKind.CREATED,
    "deleted": ChangeKind.DELETED,
    "modified": ChangeKind.MODIFIED,
}


def decode_raw_event(raw_event: RawFSEvent, config: AgentConfig) -> list:
    """
    Turn one raw filesystem event into zero or more change events.

    A move becomes Deleted(src) followed by Created(dest). Directory
    modifications carry no information the scanner needs and are dropped.

    Args:
        raw_event: Event as reported by the observer
        config: Agent configuration (ignore patterns)

    Returns:
        List of ChangeEvent
    """
    if raw_event.event_type == "moved":
        events = []
        if not config.should_ignore(raw_event.src_path):
            events.append(ChangeEvent(str(raw_event.src_path), ChangeKind.DELETED, raw_event.timestamp))
        if raw_event.dest_path is not None and not config.should_ignore(raw_event.dest_path):
            events.append(ChangeEvent(str(raw_event.dest_path), ChangeKind.CREATED, raw_event.timestamp))
        return events

    kind = _RAW_KINDS.get(raw_event.event_type)
    if kind is None:
        return []
    if raw_event.is_directory and kind == ChangeKind.MODIFIED:
        return []
    if config.should_ignore(raw_event.src_path):
        return []
    return [ChangeEvent(str(raw_event.src_path), kind, raw_event.timestamp)]


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events to ChangeEvents."""

    def __init__(
        self,
        callback: Callable[[ChangeEvent], object],
        config: AgentConfig,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        super().__init__()
        self.callback = callback
        self.config = config
        self.on_error = on_error

    def _emit(
        self,
        event_type: str,
        src_path,
        dest_path=None,
        is_directory: bool = False,
    ) -> None:
        """Decode a raw event and forward the results to the callback."""
        try:
            raw_event = RawFSEvent(
                event_type=event_type,
                src_path=Path(os.fsdecode(src_path)),
                dest_path=Path(os.fsdecode(dest_path)) if dest_path else None,
                is_directory=is_directory,
                timestamp=time.time(),
            )
            for event in decode_raw_event(raw_event, self.config):
                self.callback(event)
        except Exception as e:
            logger.error(f"Failed to handle {event_type} event for {src_path}: {e}")
            if self.on_error is None:
                raise
            self.on_error(f"{event_type} {src_path}: {e}")

    def on_created(self, event):
        self._emit("created", event.src_path, is_directory=isinstance(event, DirCreatedEvent))

    def on_deleted(self, event):
        self._emit("deleted", event.src_path, is_directory=isinstance(event, DirDeletedEvent))

    def on_modified(self, event):
        self._emit("modified", event.src_path, is_directory=isinstance(event, DirModifiedEvent))

    def on_moved(self, event):
        self._emit(
            "moved",
            event.src_path,
            event.dest_path,
            is_directory=isinstance(event, DirMovedEvent),
        )


class FSWatcher:
    """
    Owns the watchdog observer for one monitored root.

    Blocking on OS notifications happens on the observer thread, outside
    the tracker's lock.
    """

    def __init__(
        self,
        root: Path,
        event_callback: Callable[[ChangeEvent], object],
        config: Optional[AgentConfig] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the watcher.

        Args:
            root: Directory (or file) to watch
            event_callback: Receives decoded change events
            config: Agent configuration
            on_error: Receives adapter failures that lost events
        """
        self.root = Path(root).resolve()
        self.event_callback = event_callback
        self.config = config or AgentConfig()
        self.on_error = on_error
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    def start(self) -> bool:
        """
        Start watching the root.

        Returns:
            True if watching started, False if already watching
        """
        with self._lock:
            if self._observer is not None:
                return False

            handler = FSEventHandler(self.event_callback, self.config, self.on_error)
            observer = Observer()
            observer.schedule(handler, str(self.root), recursive=self.config.recursive)
            observer.start()

            self._observer = observer
            logger.info(f"Watching {self.root} (recursive={self.config.recursive})")
            return True

    def stop(self) -> bool:
        """
        Stop watching.

        Returns:
            True if watching stopped, False if not watching
        """
        with self._lock:
            if self._observer is None:
                return False

            observer = self._observer
            self._observer = None

        observer.stop()
        observer.join(timeout=5.0)
        logger.info(f"Stopped watching {self.root}")
        return True

    def is_watching(self) -> bool:
        with self._lock:
            return self._observer is not None

    def is_healthy(self) -> bool:
        """
        Check that the observer thread is still alive.

        Returns:
            False if watching was started but the observer died
        """
        with self._lock:
            return self._observer is None or self._observer.is_alive()
