"""
File system watcher for the task file and the agent workspace.

Uses a watchdog Observer, or a PollingObserver when WATCH_POLLING is set
(bind mounts from some hosts do not forward inotify events into containers).

1. TODO.md is watched through its parent directory (non-recursive). Every
   created/modified/moved/deleted event that names the file as source or
   destination invalidates the "tasks" cache entry, re-parses the file and
   broadcasts the parsed board on the "tasks" channel. There is no debounce:
   several quick saves produce several broadcasts. The writer's own atomic
   rename shows up here as a move onto TODO.md and is broadcast the same way.
2. The workspace directory is watched recursively. Each event invalidates
   "documents" and broadcasts the changed path, without parsing anything.

Observer callbacks run on watchdog's thread; the async work is handed to the
event loop captured in start().
"""

import asyncio
import logging
import os
from concurrent.futures import Future
from pathlib import Path
from typing import Optional, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from taskboard.parsers.todo_parser import parse_todo_file_async

log = logging.getLogger(__name__)

# Opened/closed events are excluded: our own reads of the file produce them
_CHANGE_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, EVENT_TYPE_DELETED}
)

_DEFAULT_POLL_INTERVAL = 1.0


class _TodoFileHandler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher") -> None:
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if self._watcher.is_todo_event(event):
            self._watcher.dispatch(self._watcher.on_todo_changed)


class _WorkspaceHandler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher") -> None:
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        filename = self._watcher.workspace_filename(event)
        if filename:
            self._watcher.dispatch(self._watcher.on_workspace_changed, filename)


class FileWatcher:
    """
    Watches TODO.md and the workspace directory and pushes invalidations.

    Usage:
        watcher = FileWatcher(cache, broadcaster, todo_path, workspace_dir)
        watcher.start()          # from inside the running event loop
        ...
        watcher.stop()
    """

    def __init__(
        self,
        cache,
        broadcaster,
        todo_path: Union[str, Path],
        workspace_dir: Optional[Union[str, Path]] = None,
        *,
        polling: bool = False,
        poll_interval: float = _DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._cache = cache
        self._broadcaster = broadcaster
        self._todo_path = Path(os.path.abspath(todo_path))
        self._workspace_dir = Path(os.path.abspath(workspace_dir)) if workspace_dir else None
        self._polling = polling
        self._poll_interval = poll_interval
        self._observer = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Schedule both watches and start the observer thread."""
        self._loop = loop or asyncio.get_running_loop()
        observer_cls = PollingObserver if self._polling else Observer
        observer = observer_cls(timeout=self._poll_interval)

        scheduled = 0
        todo_dir = self._todo_path.parent
        if todo_dir.is_dir():
            try:
                observer.schedule(_TodoFileHandler(self), str(todo_dir), recursive=False)
                scheduled += 1
                log.info("Watching %s", self._todo_path)
            except OSError:
                log.warning("Cannot watch %s", self._todo_path, exc_info=True)
        else:
            log.warning("Cannot watch %s: %s does not exist", self._todo_path, todo_dir)

        if self._workspace_dir is not None:
            if self._workspace_dir.is_dir():
                try:
                    observer.schedule(
                        _WorkspaceHandler(self), str(self._workspace_dir), recursive=True
                    )
                    scheduled += 1
                    log.info("Watching %s", self._workspace_dir)
                except OSError:
                    log.warning("Cannot watch workspace %s", self._workspace_dir, exc_info=True)
            else:
                log.warning("Cannot watch workspace: %s does not exist", self._workspace_dir)

        if not scheduled:
            return
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        log.info("Stopping file watchers")
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None

    # ------------------------------------------------------------------
    # Event classification (observer thread)
    # ------------------------------------------------------------------

    def is_todo_event(self, event: FileSystemEvent) -> bool:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return False
        paths = (event.src_path, getattr(event, "dest_path", ""))
        return any(
            p and Path(os.path.abspath(os.fsdecode(p))) == self._todo_path for p in paths
        )

    def workspace_filename(self, event: FileSystemEvent) -> Optional[str]:
        """Path of the changed entry relative to the workspace, or None to ignore."""
        if self._workspace_dir is None or event.event_type not in _CHANGE_EVENTS:
            return None
        if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
            return None
        path = os.fsdecode(event.src_path)
        if not path:
            return None
        return os.path.relpath(path, self._workspace_dir)

    def dispatch(self, callback, *args) -> None:
        """Run ``callback(*args)`` (a coroutine function) on the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(callback(*args), loop)
        future.add_done_callback(self._report_failure)

    @staticmethod
    def _report_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("Watcher callback failed", exc_info=exc)

    # ------------------------------------------------------------------
    # Reactions (event loop)
    # ------------------------------------------------------------------

    async def on_todo_changed(self) -> None:
        log.info("%s changed, invalidating cache", self._todo_path.name)
        self._cache.invalidate("tasks")
        parsed = await parse_todo_file_async(self._todo_path)
        await self._broadcaster.broadcast("tasks", parsed.to_dict())

    async def on_workspace_changed(self, filename: str) -> None:
        log.info("Workspace changed: %s", filename)
        self._cache.invalidate("documents")
        await self._broadcaster.broadcast("documents", {"changed": filename})
