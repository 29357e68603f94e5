"""
Settings loaded from environment variables.

Env vars:
- DASHBOARD_PORT / DASHBOARD_HOST: bind address (default 0.0.0.0:3000)
- AIDEVOPS_REPO: repository holding TODO.md (default ~/Git/aidevops)
- TODO_PATH: explicit task file path (default <AIDEVOPS_REPO>/TODO.md)
- WORKSPACE_DIR: agent workspace watched for document changes
- BACKUP_DIR / MAX_BACKUPS: where pre-write backups go and how many are kept
- WATCH_POLLING / POLL_INTERVAL: use the polling observer (bind mounts)
- CACHE_CLEANUP_INTERVAL: seconds between expired-entry sweeps
- LOG_LEVEL / LOG_DIR: logging threshold and rotating log directory
  (an empty LOG_DIR disables file logging)
- MCP_ENABLED: mount the MCP tool server at /mcp
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

_HOME = Path.home()

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_REPO = _HOME / "Git" / "aidevops"
DEFAULT_WORKSPACE = _HOME / ".aidevops" / ".agent-workspace"
DEFAULT_BACKUP_DIR = _HOME / ".aidevops" / "dashboard" / "backups"
DEFAULT_LOG_DIR = _HOME / ".aidevops" / "dashboard" / "logs"


@dataclass(frozen=True)
class Settings:
    port: int
    host: str
    repo_dir: Path
    todo_path: Path
    workspace_dir: Path
    backup_dir: Path
    max_backups: int
    watch_polling: bool
    poll_interval: float
    cache_cleanup_interval: float
    log_level: str
    log_dir: Optional[Path]
    mcp_enabled: bool


def _get(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _path(value: str) -> Path:
    return Path(value).expanduser()


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from ``env`` (os.environ when omitted).

    Raises:
        ValueError: a numeric variable does not parse
    """
    if env is None:
        env = os.environ

    repo_dir = _path(_get(env, "AIDEVOPS_REPO", str(DEFAULT_REPO)))
    todo_raw = _get(env, "TODO_PATH", "")
    todo_path = _path(todo_raw) if todo_raw else repo_dir / "TODO.md"

    log_dir_raw = env.get("LOG_DIR")
    if log_dir_raw is None:
        log_dir: Optional[Path] = DEFAULT_LOG_DIR
    elif log_dir_raw.strip():
        log_dir = _path(log_dir_raw.strip())
    else:
        log_dir = None

    return Settings(
        port=int(_get(env, "DASHBOARD_PORT", str(DEFAULT_PORT))),
        host=_get(env, "DASHBOARD_HOST", DEFAULT_HOST),
        repo_dir=repo_dir,
        todo_path=todo_path,
        workspace_dir=_path(_get(env, "WORKSPACE_DIR", str(DEFAULT_WORKSPACE))),
        backup_dir=_path(_get(env, "BACKUP_DIR", str(DEFAULT_BACKUP_DIR))),
        max_backups=int(_get(env, "MAX_BACKUPS", "20")),
        watch_polling=_parse_bool(_get(env, "WATCH_POLLING", "false")),
        poll_interval=float(_get(env, "POLL_INTERVAL", "1.0")),
        cache_cleanup_interval=float(_get(env, "CACHE_CLEANUP_INTERVAL", "60")),
        log_level=_get(env, "LOG_LEVEL", "INFO").upper(),
        log_dir=log_dir,
        mcp_enabled=_parse_bool(_get(env, "MCP_ENABLED", "true")),
    )
