"""
Core task data models.

The parsed model is a projection of TODO.md, never the source of truth.
The writer works on raw lines; these dataclasses only carry what the parser
extracted so the API can serve it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

# Wire keys in canonical board order
SECTION_KEYS: Tuple[str, ...] = (
    "ready",
    "backlog",
    "inProgress",
    "inReview",
    "done",
    "declined",
)

# Lower-cased "## Header" text → section key
SECTION_MAP: Dict[str, str] = {
    "ready": "ready",
    "backlog": "backlog",
    "in progress": "inProgress",
    "in review": "inReview",
    "done": "done",
    "declined": "declined",
}

# Section key → exact header text used when locating sections for writes
SECTION_HEADERS: Dict[str, str] = {
    "ready": "Ready",
    "backlog": "Backlog",
    "inProgress": "In Progress",
    "inReview": "In Review",
    "done": "Done",
    "declined": "Declined",
}

# Section key → Task.status
SECTION_STATUS: Dict[str, str] = {
    "ready": "ready",
    "backlog": "backlog",
    "inProgress": "in-progress",
    "inReview": "in-review",
    "done": "done",
    "declined": "declined",
}

TASK_STATUSES = frozenset(SECTION_STATUS.values())

_ATTR_FOR_KEY = {
    "ready": "ready",
    "backlog": "backlog",
    "inProgress": "in_progress",
    "inReview": "in_review",
    "done": "done",
    "declined": "declined",
}


@dataclass
class Task:
    """
    A single checklist line from TODO.md.

    ``checked`` mirrors the ``[x]`` glyph only. A declined task (``[-]``) is
    unchecked but has its own status, so ``checked`` and ``status == "done"``
    are independent.
    """

    id: str
    title: str
    status: str
    checked: bool = False
    estimate: Optional[str] = None
    actual: Optional[str] = None
    started: Optional[str] = None
    completed: Optional[str] = None
    logged: Optional[str] = None
    project: Optional[str] = None
    agent: Optional[str] = None
    assignee: Optional[str] = None
    priority: Optional[str] = None
    model: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    pr: Optional[str] = None
    ref: Optional[str] = None
    blocked_by: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)
    subtasks: List[Task] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> dict:
        """Serialize to the JSON shape the dashboard UI consumes."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "checked": self.checked,
            "estimate": self.estimate,
            "actual": self.actual,
            "started": self.started,
            "completed": self.completed,
            "logged": self.logged,
            "project": self.project,
            "agent": self.agent,
            "assignee": self.assignee,
            "priority": self.priority,
            "model": self.model,
            "tags": list(self.tags),
            "pr": self.pr,
            "ref": self.ref,
            "blockedBy": list(self.blocked_by),
            "blocks": list(self.blocks),
            "subtasks": [t.to_dict() for t in self.subtasks],
            "description": self.description,
        }


@dataclass
class ParsedTodo:
    """Tasks of a TODO.md grouped by section, in document order."""

    ready: List[Task] = field(default_factory=list)
    backlog: List[Task] = field(default_factory=list)
    in_progress: List[Task] = field(default_factory=list)
    in_review: List[Task] = field(default_factory=list)
    done: List[Task] = field(default_factory=list)
    declined: List[Task] = field(default_factory=list)

    def section(self, key: str) -> List[Task]:
        """Return the task list for a wire key such as ``inProgress``."""
        try:
            return getattr(self, _ATTR_FOR_KEY[key])
        except KeyError:
            raise KeyError(f"Unknown section '{key}'") from None

    def items(self) -> Iterator[Tuple[str, List[Task]]]:
        for key in SECTION_KEYS:
            yield key, self.section(key)

    def all_tasks(self) -> List[Task]:
        result: List[Task] = []
        for _, tasks in self.items():
            result.extend(tasks)
        return result

    def filtered(
        self, project: Optional[str] = None, status: Optional[str] = None
    ) -> ParsedTodo:
        """
        Return a copy keeping only tasks tagged ``#project`` and/or with the
        given status. Section placement is kept as parsed.
        """
        result = ParsedTodo()
        for key, tasks in self.items():
            kept = result.section(key)
            for task in tasks:
                if project and project not in task.tags:
                    continue
                if status and task.status != status:
                    continue
                kept.append(task)
        return result

    def to_dict(self) -> Dict[str, list]:
        return {key: [t.to_dict() for t in tasks] for key, tasks in self.items()}
