from __future__ import annotations

import argparse
import sys
from pathlib import Path

from gamma_relay_service.config import load_settings
from gamma_relay_service.service.webhook_check import check_webhooks


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a test message to every configured Discord webhook.")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--image", action="append", default=[], help="Also upload this image to the first symbol channel")
    return parser.parse_args()


def _mask(url: str) -> str:
    return url if len(url) <= 48 else f"{url[:40]}...{url[-4:]}"


def main() -> int:
    args = _parse_args()
    settings = load_settings(Path(args.config) if args.config else None)
    results = check_webhooks(settings, image_paths=args.image)
    if not results:
        print("no webhooks configured")
        return 1
    for r in results:
        status = "ok" if r["ok"] else f"FAILED: {r['error']}"
        print(f"{r['label']:<24} {_mask(r['url'])}  {status}")
    return 0 if all(r["ok"] for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
