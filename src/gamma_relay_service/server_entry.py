"""
Entrypoint for gamma-relay-service.

- Default: serve the API with the daily scheduler (uvicorn programmatic API).
- --run-now: run the report task once and exit.
- --analyze-only: analyze recorded history for every symbol once and exit.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

from gamma_relay_service.config import get_settings, validate_settings
from gamma_relay_service.errors import ConfigError

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

logger = logging.getLogger("gamma_relay_service")


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Relay gamma/tvcode snapshots to Discord with daily AI analysis.")
    ap.add_argument("--config", default=None, help="Path to config.json (default: $RELAY_CONFIG_PATH or ./config.json)")
    ap.add_argument("--run-now", action="store_true", help="Run the report task once and exit")
    ap.add_argument("--analyze-only", action="store_true", help="Analyze recorded history once (no scan) and exit")
    ap.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    ap.add_argument("--port", type=int, default=int(os.getenv("PORT", "4340")))
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    if args.config:
        os.environ["RELAY_CONFIG_PATH"] = args.config
        get_settings.cache_clear()

    try:
        settings = get_settings()
        validate_settings(settings)
    except ConfigError as exc:
        logger.error("configuration error: %s", exc)
        return 1

    if args.run_now:
        from gamma_relay_service.service.pipeline import run_scheduled_task_sync

        logger.info("running report task now")
        result = run_scheduled_task_sync(settings)
        logger.info("run finished: %s", result)
        return 0 if result.get("ok") else 1

    if args.analyze_only:
        from gamma_relay_service.service.pipeline import run_analysis_task_sync

        logger.info("analyzing recorded history now")
        result = run_analysis_task_sync(settings)
        logger.info("analysis finished: %s", result)
        return 0 if not result.get("errors") else 1

    logger.info("daily schedule at %s, serving on %s:%s", settings.schedule_time, args.host, args.port)
    uvicorn.run("gamma_relay_service.main:app", host=args.host, port=args.port, log_level="info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
