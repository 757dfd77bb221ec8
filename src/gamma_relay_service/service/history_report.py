"""History inspection and reset (used by the API and scripts)."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any, Callable, Sequence

from gamma_relay_service.config import SymbolConfig
from gamma_relay_service.db.history_store import DatedEntry, HistoryStore
from gamma_relay_service.service.pipeline import ANALYSIS_DAYS


def entry_payload(entry: DatedEntry, *, exists: Callable[[str], bool] = os.path.exists) -> dict[str, Any]:
    images = entry.chart.image_paths if entry.chart else []
    return {
        "date": entry.date,
        "hasGamma": bool(images),
        "hasTvcode": bool(entry.text and entry.text.data),
        "imageCount": len(images),
        "missingImages": [p for p in images if not exists(p)],
        "gammaFile": entry.chart.source_file if entry.chart else None,
        "tvcodeFile": entry.text.source_file if entry.text else None,
        "processedAt": entry.recorded_at,
    }


def summarize_history(
    store: HistoryStore,
    symbols: Sequence[SymbolConfig],
    *,
    exists: Callable[[str], bool] = os.path.exists,
) -> dict[str, Any]:
    """
    Per-symbol overview: every dated entry, missing images, and whether the next run
    would analyse the symbol. Configured symbols without history are listed too.
    """
    names = {s.key: s.name for s in symbols}
    keys = list(dict.fromkeys([s.key for s in symbols] + store.symbols()))
    items: list[dict[str, Any]] = []
    for key in keys:
        recent = store.get_recent_records(key, ANALYSIS_DAYS)
        items.append(
            {
                "symbol": key,
                "name": names.get(key),
                "configured": key in names,
                "migratedFromLegacy": key in store.migrated_symbols,
                "entries": [entry_payload(e, exists=exists) for e in store.entries(key)],
                "recentDates": [e.date for e in recent],
                "analysisReady": len(recent) >= ANALYSIS_DAYS,
            }
        )
    return {"historyFile": str(store.path), "items": items}


def recent_records_payload(store: HistoryStore, symbol_key: str, count: int = ANALYSIS_DAYS) -> list[dict[str, Any]]:
    return [e.to_json() for e in store.get_recent_records(symbol_key, count)]


def reset_history(path: str | Path, *, backup: bool = True) -> dict[str, Any]:
    """Back up the history file (optional) and replace it with an empty object."""
    p = Path(path)
    backup_path: Path | None = None
    if backup and p.exists():
        backup_path = p.with_name(p.name + ".backup")
        shutil.copyfile(p, backup_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text("{}", encoding="utf-8")
    return {"ok": True, "historyFile": str(p), "backup": str(backup_path) if backup_path else None}
