"""
taskboard server entry point.

Startup sequence:
1. Load settings from the environment
2. Configure logging (stderr, plus a daily-rotated file when LOG_DIR is set)
3. Build the shared context (cache, writer, broadcaster)
4. Create the FastAPI app; its lifespan starts the file watcher and cache sweep
5. Run uvicorn on DASHBOARD_HOST:DASHBOARD_PORT
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

import uvicorn

from taskboard.api.app import create_app
from taskboard.config import load_settings
from taskboard.context import build_context

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_RETENTION_DAYS = 7

log = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    if log_dir is None:
        return
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = TimedRotatingFileHandler(
            log_dir / "dashboard.log",
            when="midnight",
            backupCount=LOG_RETENTION_DAYS,
            encoding="utf-8",
        )
    except OSError:
        log.warning("File logging disabled: cannot write to %s", log_dir, exc_info=True)
        return
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)


def main() -> None:
    try:
        settings = load_settings()
    except ValueError as e:
        logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
        log.error("Invalid configuration: %s", e)
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_dir)

    if not settings.todo_path.is_file():
        log.warning("Task file not found: %s (board will be empty until it exists)", settings.todo_path)

    log.info("Task file: %s", settings.todo_path)
    log.info("Workspace: %s", settings.workspace_dir)
    log.info("Backups:   %s (keeping %d)", settings.backup_dir, settings.max_backups)

    ctx = build_context(settings)
    app = create_app(ctx)

    log.info("Starting taskboard on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning")


if __name__ == "__main__":
    main()
