"""
Single writer for TODO.md.

Every mutation follows the same protocol:

    lock → backup → re-read → mutate text → validate → temp file + rename
         → prune backups → unlock

and on any failure after the backup was taken the backup is copied back
before the error propagates. The whole protocol runs as one call in a
worker thread that releases the lock itself, so cancelling the awaiting
coroutine leaves the lock held until the file is settled (the write may
still land). The lock is a non-blocking in-process lock: a
second mutation arriving while one is in flight fails with
ConcurrentWriteError instead of waiting. Nothing here coordinates with
other processes editing the file; those edits are only observed afterwards
by the file watcher.

Mutations work on raw lines, not on the parsed model:

- move_task regroups the task lines of the source and target sections and
  re-renders only those two sections (serialize_sections). Any formatting
  of a task line is kept as-is, but task lines inside a touched section are
  regenerated from the line list.
- create_task and update_task_field splice a single line in place.
"""

import asyncio
import logging
import os
import re
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from taskboard.errors import (
    ConcurrentWriteError,
    ContentValidationError,
    SectionNotFoundError,
    TaskNotFoundError,
    UnknownFieldError,
)
from taskboard.models.task import SECTION_HEADERS, SECTION_MAP
from taskboard.parsers.todo_parser import (
    SECTION_HEADER_RE,
    TOP_LEVEL_TASK_PREFIX,
    read_document,
)
from taskboard.utils.dates import epoch_ms, today_iso
from taskboard.utils.ids import next_task_id

log = logging.getLogger(__name__)

MAX_BACKUPS = 20
UPDATABLE_FIELDS = ("title", "estimate", "priority", "agent")

_TASK_ID = re.compile(r"^- \[[ x\-]\]\s+(t\d+(?:\.\d+)*)\s", re.ASCII)
_TITLE_PREFIX = re.compile(r"^(- \[[ x\-]\]\s+t\d+(?:\.\d+)*\s+)", re.ASCII)
_META_START = re.compile(
    r"\s+(?:~|P[0-3]|@|assignee:|started:|completed:|model:|pr:|ref:|blocked-by:|blocks:|#)"
)
_ESTIMATE_TOKEN = re.compile(r"~\S+")
_PRIORITY_TOKEN = re.compile(r"\bP[0-3]\b", re.ASCII)
_ASSIGNEE_TOKEN = re.compile(r"assignee:\S+")


# ---------------------------------------------------------------------------
# Line-level helpers
# ---------------------------------------------------------------------------

def normalize_section(name: str) -> str:
    """Header text → section key; unknown headers map to their lower-cased text."""
    lower = name.lower()
    return SECTION_MAP.get(lower, lower)


def section_header(key: str) -> str:
    return SECTION_HEADERS.get(key, key)


def extract_task_id(line: str) -> Optional[str]:
    m = _TASK_ID.match(line)
    return m.group(1) if m else None


def parse_sections(content: str) -> Tuple[Dict[str, List[str]], List[str]]:
    """
    Group raw task lines by section.

    Returns:
        (sections, lines) where sections maps every section key that has a
        header in the document (even an empty one) to its task lines in
        document order.
    """
    lines = content.split("\n")
    sections: Dict[str, List[str]] = {}
    current: Optional[str] = None

    for line in lines:
        header = SECTION_HEADER_RE.match(line)
        if header:
            current = normalize_section(header.group(1).strip())
            sections.setdefault(current, [])
            continue
        if current is not None and line.startswith(TOP_LEVEL_TASK_PREFIX):
            sections[current].append(line)

    return sections, lines


def serialize_sections(
    sections: Dict[str, List[str]],
    content: str,
    touched: Iterable[str],
) -> str:
    """
    Re-render ``content`` with the task lines of ``touched`` sections taken
    from ``sections``.

    Untouched sections are copied verbatim. In a touched section the original
    task lines are dropped and the section's list is emitted once: before the
    first non-task, non-blank line, or at the next header / end of document.
    Blank lines before the first task line stay where they were; blank lines
    after it follow the emitted tasks.
    """
    touched = set(touched)
    result: List[str] = []
    flushed = set()
    pending_blanks: List[str] = []
    current: Optional[str] = None
    seen_task = False

    def flush() -> None:
        if current is not None and current not in flushed:
            result.extend(sections.get(current, []))
            flushed.add(current)
        result.extend(pending_blanks)
        pending_blanks.clear()

    for line in content.split("\n"):
        header = SECTION_HEADER_RE.match(line)
        if header:
            flush()
            key = normalize_section(header.group(1).strip())
            current = key if key in touched else None
            seen_task = False
            result.append(line)
            continue

        if current is None:
            result.append(line)
            continue

        if line.startswith(TOP_LEVEL_TASK_PREFIX):
            seen_task = True
            continue

        if line.strip() == "":
            if seen_task and current not in flushed:
                pending_blanks.append(line)
            else:
                result.append(line)
            continue

        flush()
        result.append(line)

    flush()
    return "\n".join(result)


def transition_line(line: str, to_column: str, today: str) -> str:
    """Apply the checkbox/date edits that go with entering ``to_column``."""
    if to_column in ("backlog", "ready"):
        return line.replace("[x]", "[ ]", 1)
    if to_column == "inProgress":
        started = "" if "started:" in line else f" started:{today}"
        return line.replace("[x]", "[ ]", 1) + started
    if to_column == "done":
        completed = "" if "completed:" in line else f" completed:{today}"
        return line.replace("[ ]", "[x]", 1) + completed
    return line


def replace_or_append(line: str, pattern: "re.Pattern[str]", replacement: str) -> str:
    """Replace the first ``pattern`` match with ``replacement`` or append it."""
    if pattern.search(line):
        return pattern.sub(lambda _: replacement, line, count=1)
    return f"{line} {replacement}"


def apply_field_update(line: str, field: str, value: str) -> str:
    if field == "estimate":
        return replace_or_append(line, _ESTIMATE_TOKEN, f"~{value}")
    if field == "priority":
        return replace_or_append(line, _PRIORITY_TOKEN, value)
    if field == "agent":
        return replace_or_append(line, _ASSIGNEE_TOKEN, f"assignee:{value}")
    if field == "title":
        # Splice between the id prefix and the first metadata token
        prefix = _TITLE_PREFIX.match(line)
        if not prefix:
            return line
        rest = line[prefix.end():]
        meta = _META_START.search(rest)
        if meta and meta.start() > 0:
            return prefix.group(1) + value + rest[meta.start():]
        return prefix.group(1) + value
    raise UnknownFieldError(f"Unknown field: {field}")


def build_task_line(
    task_id: str,
    title: str,
    estimate: Optional[str] = None,
    priority: Optional[str] = None,
    project: Optional[str] = None,
    agent: Optional[str] = None,
) -> str:
    line = f"- [ ] {task_id} {title}"
    if estimate:
        line += f" ~{estimate}"
    if priority:
        line += f" {priority}"
    if project:
        line += f" @{project}"
    if agent:
        line += f" assignee:{agent}"
    return line


def validate_content(content: str) -> None:
    """Coarse guard against truncated output, not a schema check."""
    if "#" not in content:
        raise ContentValidationError("Validation failed: no markdown headers found")
    if len(content.strip()) < 10:
        raise ContentValidationError("Validation failed: content too short")


# ---------------------------------------------------------------------------
# TodoWriter
# ---------------------------------------------------------------------------

class TodoWriter:
    """
    The only component allowed to modify the task file.

    Create one instance per file and share it; the lock is per instance.

    Usage:
        writer = TodoWriter(Path("TODO.md"), backup_dir=Path("~/.backups"))
        await writer.move_task("t001", "backlog", "done")
    """

    def __init__(
        self,
        todo_path: Union[str, Path],
        backup_dir: Optional[Union[str, Path]] = None,
        max_backups: int = MAX_BACKUPS,
    ) -> None:
        self._todo_path = Path(todo_path)
        self._backup_dir = Path(backup_dir) if backup_dir else self._todo_path.parent / "backups"
        self._max_backups = max_backups
        self._lock = threading.Lock()
        self._backup_dir.mkdir(parents=True, exist_ok=True)

    @property
    def todo_path(self) -> Path:
        return self._todo_path

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    @property
    def is_locked(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Write protocol
    # ------------------------------------------------------------------

    async def _with_backup(self, operation: Callable[[str], str]) -> None:
        if not self._lock.acquire(blocking=False):
            raise ConcurrentWriteError(
                f"Concurrent write rejected: {self._todo_path.name} is locked"
            )
        try:
            future = asyncio.get_running_loop().run_in_executor(
                None, self._run_protocol, operation
            )
        except BaseException:
            self._lock.release()
            raise
        await future

    def _run_protocol(self, operation: Callable[[str], str]) -> None:
        # Runs in a worker thread and owns the lock until disk I/O is over;
        # cancelling the awaiting coroutine does not stop it.
        backup_path = self._backup_dir / f"{self._todo_path.name}.{epoch_ms()}"
        backup_taken = False
        try:
            backup_taken = self._take_backup(backup_path)
            content = read_document(self._todo_path)
            new_content = operation(content)
            validate_content(new_content)
            self._atomic_write(new_content)
            self._clean_backups()
        except BaseException:
            if backup_taken:
                self._restore_backup(backup_path)
            raise
        finally:
            self._lock.release()

    def _take_backup(self, backup_path: Path) -> bool:
        if not self._todo_path.exists():
            return False
        shutil.copyfile(self._todo_path, backup_path)
        return True

    def _restore_backup(self, backup_path: Path) -> None:
        try:
            shutil.copyfile(backup_path, self._todo_path)
            log.warning("Restored %s from %s", self._todo_path, backup_path.name)
        except OSError:
            log.exception("Failed to restore %s from %s", self._todo_path, backup_path)

    def _atomic_write(self, content: str) -> None:
        fd, tmp = tempfile.mkstemp(
            dir=self._todo_path.parent, prefix=f"{self._todo_path.name}.tmp."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if self._todo_path.exists():
                shutil.copymode(self._todo_path, tmp)
            os.replace(tmp, self._todo_path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _clean_backups(self) -> None:
        prefix = f"{self._todo_path.name}."
        try:
            backups = sorted(
                (p for p in self._backup_dir.iterdir() if p.name.startswith(prefix)),
                key=lambda p: p.name,
                reverse=True,
            )
            for stale in backups[self._max_backups:]:
                stale.unlink()
        except OSError:
            log.warning("Failed to prune backups in %s", self._backup_dir, exc_info=True)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def move_task(self, task_id: str, from_column: str, to_column: str) -> None:
        """
        Move a task line between sections, applying the column transition
        (checkbox glyph, started:/completed: dates).

        Raises:
            SectionNotFoundError: either column has no header in the file
            TaskNotFoundError: task_id is not listed under from_column
            ConcurrentWriteError: another write is in flight
        """

        def operation(content: str) -> str:
            sections, _ = parse_sections(content)

            source = sections.get(from_column)
            if source is None:
                raise SectionNotFoundError(f'Column "{from_column}" not found')
            target = sections.get(to_column)
            if target is None:
                raise SectionNotFoundError(f'Column "{to_column}" not found')

            index = next(
                (i for i, line in enumerate(source) if extract_task_id(line) == task_id),
                None,
            )
            if index is None:
                raise TaskNotFoundError(f'Task "{task_id}" not found in "{from_column}"')

            line = source.pop(index)
            target.append(transition_line(line, to_column, today_iso()))
            return serialize_sections(sections, content, {from_column, to_column})

        await self._with_backup(operation)
        log.info("Moved %s from %s to %s", task_id, from_column, to_column)

    async def create_task(
        self,
        title: str,
        column: str = "backlog",
        project: Optional[str] = None,
        priority: Optional[str] = None,
        agent: Optional[str] = None,
        estimate: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> str:
        """
        Insert a new task line at the end of a section's leading task block.

        Without an explicit ``task_id`` the next ``tNNN`` after the highest
        existing numeric id is used.

        Returns:
            The new task's ID
        """
        new_id = task_id or ""
        target_column = column or "backlog"

        def operation(content: str) -> str:
            nonlocal new_id
            sections, lines = parse_sections(content)

            if not new_id:
                existing = (
                    extract_task_id(line) for tasks in sections.values() for line in tasks
                )
                new_id = next_task_id(tid for tid in existing if tid)

            line = build_task_line(new_id, title, estimate, priority, project, agent)

            header_text = f"## {section_header(target_column)}"
            header_index = next(
                (i for i, l in enumerate(lines) if l.strip() == header_text), None
            )
            if header_index is None:
                raise SectionNotFoundError(
                    f'Column "{target_column}" not found in {self._todo_path.name}'
                )

            insert_at = header_index + 1
            while insert_at < len(lines) and lines[insert_at].strip() == "":
                insert_at += 1
            while insert_at < len(lines) and lines[insert_at].startswith(TOP_LEVEL_TASK_PREFIX):
                insert_at += 1

            lines.insert(insert_at, line)
            return "\n".join(lines)

        await self._with_backup(operation)
        log.info("Created %s in %s", new_id, target_column)
        return new_id

    async def update_task_field(self, task_id: str, field: str, value: str) -> None:
        """
        Replace (or append) one metadata token on a task line.

        ``field`` is one of title, estimate, priority, agent. A title update
        only replaces the text between the id and the first metadata token.
        """
        if field not in UPDATABLE_FIELDS:
            raise UnknownFieldError(
                f"Unknown field: {field}. Allowed: {', '.join(UPDATABLE_FIELDS)}"
            )

        def operation(content: str) -> str:
            lines = content.split("\n")
            index = next(
                (i for i, line in enumerate(lines) if extract_task_id(line) == task_id),
                None,
            )
            if index is None:
                raise TaskNotFoundError(f'Task "{task_id}" not found')
            lines[index] = apply_field_update(lines[index], field, value)
            return "\n".join(lines)

        await self._with_backup(operation)
        log.info("Updated %s field %s", task_id, field)
