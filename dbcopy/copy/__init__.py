from .orchestrator import (
    MODEL, TO_TEXT, TO_DB, TO_CSV, DB_TO_DB, DELETE, CopyState, CopyScope, CopyOptions, CopyDriver, CopyOrchestrator,
)

__all__ = [
    "MODEL", "TO_TEXT", "TO_DB", "TO_CSV", "DB_TO_DB", "DELETE",
    "CopyState", "CopyScope", "CopyOptions", "CopyDriver", "CopyOrchestrator",
]
