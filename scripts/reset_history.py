from __future__ import annotations

import argparse
from pathlib import Path

from gamma_relay_service.config import load_settings
from gamma_relay_service.service.history_report import reset_history


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up and empty the processing history.")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--history", default=None, help="History file (overrides config)")
    parser.add_argument("--no-backup", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    path = Path(args.history) if args.history else load_settings(Path(args.config) if args.config else None).history_file
    result = reset_history(path, backup=not args.no_backup)
    if result["backup"]:
        print(f"backup written: {result['backup']}")
    print(f"history reset: {result['historyFile']}")
    print("next: run `gamma-relay --run-now` to reprocess today's files")


if __name__ == "__main__":
    main()
