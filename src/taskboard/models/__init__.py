from .task import (
    SECTION_HEADERS,
    SECTION_KEYS,
    SECTION_MAP,
    SECTION_STATUS,
    TASK_STATUSES,
    ParsedTodo,
    Task,
)

__all__ = [
    "Task",
    "ParsedTodo",
    "SECTION_KEYS",
    "SECTION_MAP",
    "SECTION_HEADERS",
    "SECTION_STATUS",
    "TASK_STATUSES",
]
