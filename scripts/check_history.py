from __future__ import annotations

import argparse
import json
from pathlib import Path

from gamma_relay_service.config import load_settings
from gamma_relay_service.db.history_store import HistoryStore
from gamma_relay_service.service.history_report import summarize_history


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show processing history and analysis readiness per symbol.")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--history", default=None, help="History file (overrides config)")
    parser.add_argument("--no-save", action="store_true", help="Do not rewrite the file in the current format")
    parser.add_argument("--json", action="store_true", help="Print the raw summary as JSON")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    settings = load_settings(Path(args.config) if args.config else None)
    store = HistoryStore(args.history or settings.history_file).load()
    summary = summarize_history(store, settings.symbols)

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
    else:
        print(f"history: {summary['historyFile']}")
        for item in summary["items"]:
            flag = "ready" if item["analysisReady"] else "not ready"
            legacy = " (migrated from legacy format)" if item["migratedFromLegacy"] else ""
            print(f"\n{item['symbol']} [{item['name'] or 'not configured'}]{legacy}: analysis {flag}")
            for e in item["entries"]:
                missing = f", missing images: {len(e['missingImages'])}" if e["missingImages"] else ""
                print(
                    f"  {e['date']}: gamma={'yes' if e['hasGamma'] else 'no'} "
                    f"({e['imageCount']} image(s){missing}), tvcode={'yes' if e['hasTvcode'] else 'no'}"
                )

    if not args.no_save and store.path.exists():
        # Rewrites legacy list-shaped symbols in the dated layout.
        store.save()


if __name__ == "__main__":
    main()
