"""Filesystem watching that drives rebuilds in watch mode."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Final

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

CHANGE_EVENT: Final = "change"
_CHANGE_TYPES = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}


class ChangeHandler(FileSystemEventHandler):
    """Forward writes to watched files, one notification per event.

    Bursts are not coalesced. Moves count when they land on a watched path,
    which covers editors that save through a temporary file.
    """

    def __init__(self, paths: Iterable[Path], notify: Callable[[Path], None]) -> None:
        super().__init__()
        self._notify = notify
        self.paths = frozenset(path.resolve() for path in paths)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_TYPES:
            return
        raw = getattr(event, "dest_path", "") or event.src_path
        path = Path(os.fsdecode(raw)).resolve()
        if path in self.paths:
            self._notify(path)


class FileWatcher:
    """Watch the directories holding a file set with a watchdog observer thread."""

    def __init__(self, paths: Iterable[Path], notify: Callable[[Path], None]) -> None:
        self._handler = ChangeHandler(paths, notify)
        self._observer: BaseObserver | None = None
        self._scheduled: set[Path] = set()

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(sorted(self._handler.paths))

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        observer = Observer()
        observer.daemon = True
        self._observer = observer
        self._schedule()
        observer.start()
        logger.info("Watching %d files.", len(self._handler.paths))

    def reset(self, paths: Iterable[Path]) -> None:
        """Replace the watched set, e.g. after a rebuild discovered new files."""
        self._handler.paths = frozenset(path.resolve() for path in paths)
        self._schedule()

    def stop(self) -> None:
        observer = self._observer
        if observer is None:
            return
        observer.stop()
        observer.join()
        self._observer = None
        self._scheduled = set()

    def _schedule(self) -> None:
        observer = self._observer
        if observer is None:
            return
        for directory in sorted({path.parent for path in self._handler.paths}):
            if directory in self._scheduled or not directory.is_dir():
                continue
            observer.schedule(self._handler, str(directory), recursive=False)
            self._scheduled.add(directory)
