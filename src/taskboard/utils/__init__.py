from .dates import epoch_ms, now_iso, to_iso, today_iso
from .ids import generate_auto_id, next_task_id, numeric_part

__all__ = [
    "epoch_ms",
    "now_iso",
    "to_iso",
    "today_iso",
    "generate_auto_id",
    "next_task_id",
    "numeric_part",
]
