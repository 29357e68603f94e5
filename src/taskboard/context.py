"""Composition root: one cache, writer and broadcaster per process."""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from taskboard.cache import CacheStore
from taskboard.config import Settings
from taskboard.realtime import RealtimeBroadcaster
from taskboard.writers import TodoWriter


@dataclass
class AppContext:
    settings: Settings
    todo_path: Path
    cache: CacheStore
    writer: TodoWriter
    broadcaster: RealtimeBroadcaster
    workspace_dir: Optional[Path] = None
    started_at: float = field(default_factory=time.time)

    def uptime(self) -> float:
        return time.time() - self.started_at


def build_context(settings: Settings) -> AppContext:
    return AppContext(
        settings=settings,
        todo_path=settings.todo_path,
        cache=CacheStore(),
        writer=TodoWriter(
            settings.todo_path,
            backup_dir=settings.backup_dir,
            max_backups=settings.max_backups,
        ),
        broadcaster=RealtimeBroadcaster(),
        workspace_dir=settings.workspace_dir,
    )
