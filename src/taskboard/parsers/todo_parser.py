"""
Parser for TODO.md task boards.

Main API:
    parse_todo_md(content)  → ParsedTodo
    parse_todo_file(path)   → ParsedTodo

The document is a list of ``## Section`` headers, each followed by
checklist lines:

    - [ ] t042 Fix login redirect ~2h P1 #web @api started:2026-01-03

Each metadata field is captured by its own regex from the text after the
checkbox and id. The title is computed independently from that same text by
stripping every recognised token, so capture and cleanup never interfere.
The token grammar is a compatibility contract with existing task files:
changing a pattern changes which text ends up in ``title``.
A ``\r`` left by CRLF line endings is matched by ``.``, so headers and task
lines of such files parse, with the ``\r`` kept at the end of the line text.

Only top-level lines (starting with ``- [``) are tasks; indented checklist
items are not attached as subtasks.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from taskboard.models.task import SECTION_MAP, SECTION_STATUS, ParsedTodo, Task
from taskboard.utils.ids import generate_auto_id

log = logging.getLogger(__name__)

SECTION_HEADER_RE = re.compile(r"^##\s+(.+)$")
TOP_LEVEL_TASK_PREFIX = "- ["

_TASK_LINE = re.compile(r"^(\s*)- \[([ x\-])\]\s+(.+)$")
_TASK_ID = re.compile(r"^(t\d+(?:\.\d+)*)\s+", re.ASCII)

_ESTIMATE = re.compile(r"~(\d+(?:\.\d+)?[hm](?:\s*\([^)]+\))?)", re.ASCII)
_ACTUAL = re.compile(r"actual:(\S+)")
_STARTED = re.compile(r"started:(\S+)")
_COMPLETED = re.compile(r"completed:(\S+)")
_LOGGED = re.compile(r"logged:(\S+)")
_AGENT = re.compile(r"@(\w[\w-]*)", re.ASCII)
_ASSIGNEE = re.compile(r"assignee:(\S+)")
_PRIORITY = re.compile(r"\b(P[0-3])\b", re.ASCII)
_MODEL = re.compile(r"model:(\S+)")
_PR = re.compile(r"pr:(#?\S+)")
_REF = re.compile(r"ref:(\S+)")
_TAG = re.compile(r"#(\w[\w-]*)", re.ASCII)
_BLOCKED_BY = re.compile(r"blocked-by:(\S+)")
_BLOCKS = re.compile(r"blocks:(\S+)")

# Removed from the remainder, in this order, to leave the bare title
_TITLE_STRIP = (
    re.compile(r"~\d+(?:\.\d+)?[hm](?:\s*\([^)]+\))?", re.ASCII),
    re.compile(r"actual:\S+"),
    re.compile(r"started:\S+"),
    re.compile(r"completed:\S+"),
    re.compile(r"logged:\S+"),
    re.compile(r"assignee:\S+"),
    re.compile(r"model:\S+"),
    re.compile(r"pr:\S+"),
    re.compile(r"ref:\S+"),
    re.compile(r"blocked-by:\S+"),
    re.compile(r"blocks:\S+"),
    re.compile(r"status:\S+"),
    re.compile(r"\bP[0-3]\b", re.ASCII),
    re.compile(r"#\w[\w-]*", re.ASCII),
    re.compile(r"@\w[\w-]*", re.ASCII),
    re.compile(r"→\s*\[.*?\]"),
)
_WHITESPACE = re.compile(r"\s+")


def _first(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    m = pattern.search(text)
    return m.group(1) if m else None


def _id_list(pattern: "re.Pattern[str]", text: str) -> List[str]:
    value = _first(pattern, text)
    return value.split(",") if value is not None else []


def clean_title(rest: str) -> str:
    """Strip all metadata tokens from a task remainder and collapse whitespace."""
    title = rest
    for pattern in _TITLE_STRIP:
        title = pattern.sub("", title)
    return _WHITESPACE.sub(" ", title).strip()


def parse_task_line(line: str, section: str) -> Optional[Task]:
    """
    Parse one checklist line into a Task.

    Args:
        line: Raw markdown line
        section: Section key the line was found under (e.g. "inProgress")

    Returns:
        Task, or None if the line is not a checklist item
    """
    m = _TASK_LINE.match(line)
    if not m:
        return None

    glyph = m.group(2)
    checked = glyph == "x"
    declined = glyph == "-"
    rest = m.group(3)

    id_match = _TASK_ID.match(rest)
    if id_match:
        task_id = id_match.group(1)
        rest = rest[id_match.end():]
    else:
        task_id = generate_auto_id()

    tags = _TAG.findall(rest)
    agent = _first(_AGENT, rest)

    if declined:
        status = "declined"
    elif checked:
        status = "done"
    else:
        status = SECTION_STATUS[section]

    return Task(
        id=task_id,
        title=clean_title(rest),
        status=status,
        checked=checked,
        estimate=_first(_ESTIMATE, rest),
        actual=_first(_ACTUAL, rest),
        started=_first(_STARTED, rest),
        completed=_first(_COMPLETED, rest),
        logged=_first(_LOGGED, rest),
        project=tags[0] if tags else None,
        agent=f"@{agent}" if agent else None,
        assignee=_first(_ASSIGNEE, rest),
        priority=_first(_PRIORITY, rest),
        model=_first(_MODEL, rest),
        tags=tags,
        pr=_first(_PR, rest),
        ref=_first(_REF, rest),
        blocked_by=_id_list(_BLOCKED_BY, rest),
        blocks=_id_list(_BLOCKS, rest),
        description=rest,
    )


def parse_todo_md(content: str) -> ParsedTodo:
    """
    Parse TODO.md content into tasks grouped by section.

    Never raises: lines that do not fit the grammar are skipped. Everything
    before the first recognised header (typically a ``## Format`` legend) is
    ignored. Lines under an unrecognised header are attributed to the last
    recognised section.
    """
    result = ParsedTodo()
    current_section = "backlog"
    skip_format = True

    for line in content.split("\n"):
        header = SECTION_HEADER_RE.match(line)
        if header:
            name = header.group(1).strip().lower()
            if name == "format":
                skip_format = True
                continue
            if name in SECTION_MAP:
                current_section = SECTION_MAP[name]
            skip_format = False
            continue

        if skip_format:
            continue

        if line.startswith(TOP_LEVEL_TASK_PREFIX):
            task = parse_task_line(line, current_section)
            if task:
                result.section(current_section).append(task)

    return result


def read_document(path: Union[str, Path]) -> str:
    """Read a task file without newline translation so writes round-trip."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def parse_todo_file(path: Union[str, Path]) -> ParsedTodo:
    """Parse a TODO.md file; an unreadable file yields an empty board."""
    try:
        return parse_todo_md(read_document(path))
    except (OSError, UnicodeDecodeError):
        log.exception("Failed to parse %s", path)
        return ParsedTodo()


async def parse_todo_file_async(path: Union[str, Path]) -> ParsedTodo:
    """parse_todo_file off the event loop."""
    return await asyncio.to_thread(parse_todo_file, path)
