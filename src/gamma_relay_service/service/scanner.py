from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable
from zoneinfo import ZoneInfo

from gamma_relay_service.config import SymbolConfig
from gamma_relay_service.db.history_store import HistoryStore, RecordKind
from gamma_relay_service.service.classifier import Unmatched, classify

logger = logging.getLogger(__name__)

REPORT_EXTENSION = ".html"


@dataclass(frozen=True)
class WorkItem:
    file_path: Path
    date: str
    symbol_key: str
    symbol: SymbolConfig
    kind: RecordKind


def today_iso(tz: str | None = None) -> str:
    now = datetime.now(ZoneInfo(tz)) if tz else datetime.now()
    return now.date().isoformat()


def scan(
    directory: str | Path,
    symbol_configs: Iterable[SymbolConfig],
    store: HistoryStore,
    *,
    today: str | None = None,
    extension: str = REPORT_EXTENSION,
) -> list[WorkItem]:
    """
    Queue today's report files that are not recorded yet, in directory listing order.
    Files from other days are ignored on every run.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.warning("scan: watch directory %s does not exist", root)
        return []

    configs = list(symbol_configs)
    day = today or today_iso()
    logger.info("scan: %s (today=%s)", root, day)
    ext = extension.lower()

    queue: list[WorkItem] = []
    for path in root.iterdir():
        if not path.is_file() or path.suffix.lower() != ext:
            continue
        name = path.name

        found = classify(name, configs)
        if isinstance(found, Unmatched):
            logger.info("scan: %s, skipping %s", found.reason, name)
            continue
        if found.date != day:
            logger.debug("scan: not today's file, skipping %s (%s)", name, found.date)
            continue

        abs_path = path.resolve()
        if store.is_processed(found.symbol_key, abs_path, found.kind):
            logger.info("scan: already processed, skipping %s", name)
            continue

        queue.append(
            WorkItem(file_path=abs_path, date=found.date, symbol_key=found.symbol_key, symbol=found.symbol, kind=found.kind)
        )
    return queue
