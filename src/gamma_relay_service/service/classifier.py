"""Filename classification: date prefix, symbol keyword and snapshot kind."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from gamma_relay_service.config import SymbolConfig
from gamma_relay_service.db.history_store import KIND_CHART, KIND_TEXT, RecordKind

# e.g. 2025-12-12_03;34_SPX_gamma.html
_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")

TEXT_MARKER = "tvcode"
CHART_MARKER = "gamma"


@dataclass(frozen=True)
class Classification:
    date: str
    symbol: SymbolConfig
    kind: RecordKind

    @property
    def symbol_key(self) -> str:
        return self.symbol.key


@dataclass(frozen=True)
class Unmatched:
    reason: str


NO_DATE = "no date prefix"
NO_SYMBOL = "no symbol keyword matched"
NO_KIND = "unrecognized snapshot kind"


def extract_date(filename: str) -> str | None:
    match = _DATE_PREFIX.match(filename)
    return match.group(1) if match else None


def match_symbol(filename: str, symbol_configs: Iterable[SymbolConfig]) -> SymbolConfig | None:
    lowered = filename.lower()
    for cfg in symbol_configs:
        if any(kw.lower() in lowered for kw in cfg.keywords if kw):
            return cfg
    return None


def classify_kind(filename: str) -> RecordKind | None:
    lowered = filename.lower()
    if TEXT_MARKER in lowered:
        return KIND_TEXT
    if CHART_MARKER in lowered:
        return KIND_CHART
    return None


def classify(filename: str, symbol_configs: Iterable[SymbolConfig]) -> Classification | Unmatched:
    d = extract_date(filename)
    if d is None:
        return Unmatched(NO_DATE)
    symbol = match_symbol(filename, symbol_configs)
    if symbol is None:
        return Unmatched(NO_SYMBOL)
    kind = classify_kind(filename)
    if kind is None:
        return Unmatched(NO_KIND)
    return Classification(date=d, symbol=symbol, kind=kind)
