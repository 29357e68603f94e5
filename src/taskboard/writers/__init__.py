from .todo_writer import MAX_BACKUPS, UPDATABLE_FIELDS, TodoWriter

__all__ = ["TodoWriter", "MAX_BACKUPS", "UPDATABLE_FIELDS"]
