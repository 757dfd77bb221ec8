from __future__ import annotations

from gamma_relay_service.config import Settings, get_settings
from gamma_relay_service.db.history_store import HistoryStore


def open_history_store(settings: Settings | None = None) -> HistoryStore:
    s = settings or get_settings()
    return HistoryStore(s.history_file, strict=s.strict_save).load()


def check_history_file(settings: Settings | None = None) -> tuple[bool, str | None]:
    s = settings or get_settings()
    path = s.history_file
    if path.exists() and not path.is_file():
        return False, f"{path} is not a file"
    parent = path.parent
    if not parent.exists():
        return False, f"directory {parent} does not exist"
    return True, None
