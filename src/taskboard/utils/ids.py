"""
Task ID generation utilities.
"""

import re
import secrets
import time
from typing import Iterable, Optional

_NUMERIC_ID = re.compile(r"^t(\d+)")


def generate_auto_id() -> str:
    """
    Placeholder ID for a task line that carries no ``tNNN`` token.

    Returns:
        String like "auto-1760662800123-3fa9"
    """
    return f"auto-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


def numeric_part(task_id: str) -> Optional[int]:
    """Leading integer of a ``tNNN[.N...]`` id ("t042.1" → 42), or None."""
    m = _NUMERIC_ID.match(task_id)
    return int(m.group(1)) if m else None


def next_task_id(existing_ids: Iterable[str]) -> str:
    """
    Next sequential ID after the highest numeric suffix, zero-padded to 3.

    Args:
        existing_ids: IDs already present in the document

    Returns:
        e.g. "t008" when the highest existing id is "t007"
    """
    highest = 0
    for task_id in existing_ids:
        num = numeric_part(task_id)
        if num is not None and num > highest:
            highest = num
    return f"t{highest + 1:03d}"
