from .todo_parser import (
    clean_title,
    parse_task_line,
    parse_todo_file,
    parse_todo_file_async,
    parse_todo_md,
    read_document,
)

__all__ = [
    "clean_title",
    "parse_task_line",
    "parse_todo_file",
    "parse_todo_file_async",
    "parse_todo_md",
    "read_document",
]
