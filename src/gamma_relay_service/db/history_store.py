"""Per-symbol, per-date processing history kept in a JSON file (write-through)."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from gamma_relay_service.errors import PersistenceError

logger = logging.getLogger(__name__)

KIND_CHART = "gamma"
KIND_TEXT = "tvcode"
RECORD_KINDS = (KIND_CHART, KIND_TEXT)

RecordKind = Literal["gamma", "tvcode"]

# Notes:
# - On-disk keys stay "gamma" / "tvcode" / "htmlFile" / "processedAt" so history files
#   written by earlier deployments keep loading.
# - Dates are YYYY-MM-DD strings; string order is chronological order.


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_path(path: str | os.PathLike[str]) -> str:
    return str(Path(path).expanduser().resolve())


@dataclass
class ChartResult:
    source_file: str
    image_paths: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {"htmlFile": self.source_file, "imagePaths": list(self.image_paths)}


@dataclass
class TextResult:
    source_file: str
    data: str

    def to_json(self) -> dict[str, Any]:
        return {"htmlFile": self.source_file, "data": self.data}


@dataclass
class DatedEntry:
    date: str
    chart: ChartResult | None = None
    text: TextResult | None = None
    recorded_at: str | None = None

    def has_data(self) -> bool:
        return self.chart is not None or self.text is not None

    def to_json(self) -> dict[str, Any]:
        return {
            "date": self.date,
            KIND_CHART: self.chart.to_json() if self.chart else None,
            KIND_TEXT: self.text.to_json() if self.text else None,
            "processedAt": self.recorded_at,
        }


@dataclass(frozen=True)
class LegacyRecords:
    """Old layout: one flat record per processed file, no date keying."""

    records: list[Any]


@dataclass(frozen=True)
class DatedRecords:
    """Current layout: date -> {date, gamma, tvcode, processedAt}."""

    entries: dict[str, Any]


def classify_raw_symbol(raw: Any) -> LegacyRecords | DatedRecords | None:
    if isinstance(raw, list):
        return LegacyRecords(records=raw)
    if isinstance(raw, dict):
        return DatedRecords(entries=raw)
    return None


def _parse_chart(raw: Any) -> ChartResult | None:
    if not isinstance(raw, dict):
        return None
    paths = raw.get("imagePaths")
    if not isinstance(paths, list):
        paths = []
    return ChartResult(source_file=str(raw.get("htmlFile") or ""), image_paths=[str(p) for p in paths])


def _parse_text(raw: Any) -> TextResult | None:
    if not isinstance(raw, dict):
        return None
    return TextResult(source_file=str(raw.get("htmlFile") or ""), data=str(raw.get("data") or ""))


def _migrate_legacy(symbol_key: str, variant: LegacyRecords) -> dict[str, DatedEntry]:
    out: dict[str, DatedEntry] = {}
    for record in variant.records:
        if not isinstance(record, dict) or not record.get("date"):
            logger.warning("history: dropping legacy record without date for %s: %r", symbol_key, record)
            continue
        d = str(record["date"])
        chart = None
        if record.get("imagePaths") is not None:
            chart = _parse_chart(record)
        # Later records for the same date replace earlier ones.
        out[d] = DatedEntry(date=d, chart=chart, text=None, recorded_at=record.get("processedAt"))
    return out


def _normalize_dated(symbol_key: str, variant: DatedRecords) -> dict[str, DatedEntry]:
    out: dict[str, DatedEntry] = {}
    for d, raw in variant.entries.items():
        if not isinstance(raw, dict):
            logger.warning("history: dropping malformed entry %s/%s", symbol_key, d)
            continue
        out[str(d)] = DatedEntry(
            date=str(raw.get("date") or d),
            chart=_parse_chart(raw.get(KIND_CHART)),
            text=_parse_text(raw.get(KIND_TEXT)),
            recorded_at=raw.get("processedAt"),
        )
    return out


class HistoryStore:
    """
    Processing history for all symbols.

    Every mutation is persisted immediately. Load never raises: an unreadable file
    starts the run with empty history. Save failures are logged unless strict.
    """

    def __init__(self, path: str | os.PathLike[str], *, strict: bool = False) -> None:
        self.path = Path(path).expanduser().resolve()
        self.strict = strict
        self._history: dict[str, dict[str, DatedEntry]] = {}
        self.migrated_symbols: list[str] = []

    def load(self) -> HistoryStore:
        self._history = {}
        self.migrated_symbols = []
        if not self.path.exists():
            return self
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("history: cannot load %s, starting empty: %s", self.path, exc)
            return self
        if not isinstance(raw, dict):
            logger.warning("history: %s is not a JSON object, starting empty", self.path)
            return self

        for symbol_key, value in raw.items():
            variant = classify_raw_symbol(value)
            if isinstance(variant, LegacyRecords):
                self._history[symbol_key] = _migrate_legacy(symbol_key, variant)
                self.migrated_symbols.append(symbol_key)
            elif isinstance(variant, DatedRecords):
                self._history[symbol_key] = _normalize_dated(symbol_key, variant)
            else:
                logger.warning("history: ignoring unrecognized value for %s", symbol_key)
        if self.migrated_symbols:
            logger.info("history: migrated legacy records for %s", ", ".join(self.migrated_symbols))
        return self

    def to_json(self) -> dict[str, Any]:
        return {
            symbol_key: {d: entry.to_json() for d, entry in dated.items()}
            for symbol_key, dated in self._history.items()
        }

    def save(self) -> bool:
        payload = json.dumps(self.to_json(), ensure_ascii=False, indent=2)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            if self.strict:
                raise PersistenceError(f"cannot write history file {self.path}: {exc}") from exc
            logger.error("history: save failed for %s: %s", self.path, exc)
            return False
        return True

    def record_processed(
        self,
        symbol_key: str,
        source_file: str | os.PathLike[str],
        outputs: list[str] | None,
        date: str,
        kind: RecordKind = KIND_CHART,
        text: str | None = None,
    ) -> DatedEntry:
        if kind not in RECORD_KINDS:
            raise ValueError(f"unknown record kind: {kind!r}")
        dated = self._history.setdefault(symbol_key, {})
        entry = dated.get(date)
        if entry is None:
            entry = DatedEntry(date=date)
            dated[date] = entry

        src = _normalize_path(source_file)
        if kind == KIND_CHART:
            entry.chart = ChartResult(source_file=src, image_paths=[str(p) for p in (outputs or [])])
        else:
            entry.text = TextResult(source_file=src, data=text or "")
        entry.recorded_at = _now_iso()

        self.save()
        return entry

    def is_processed(self, symbol_key: str, source_file: str | os.PathLike[str], kind: RecordKind = KIND_CHART) -> bool:
        dated = self._history.get(symbol_key)
        if not dated:
            return False
        target = _normalize_path(source_file)
        for entry in dated.values():
            result = entry.chart if kind == KIND_CHART else entry.text
            if result is None or not result.source_file:
                continue
            if _normalize_path(result.source_file) == target:
                return True
        return False

    def get_recent_records(self, symbol_key: str, count: int = 2) -> list[DatedEntry]:
        """Most recent `count` dates that hold any data, oldest first."""
        if count <= 0:
            return []
        dated = self._history.get(symbol_key) or {}
        dates = sorted(d for d, entry in dated.items() if entry.has_data())
        return [dated[d] for d in dates[-count:]]

    def get_by_date(self, symbol_key: str, date: str) -> DatedEntry | None:
        return (self._history.get(symbol_key) or {}).get(date)

    def symbols(self) -> list[str]:
        return list(self._history.keys())

    def entries(self, symbol_key: str) -> list[DatedEntry]:
        dated = self._history.get(symbol_key) or {}
        return [dated[d] for d in sorted(dated)]
