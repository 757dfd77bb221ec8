"""Daily report job: scan, notify, record, analyze."""

from __future__ import annotations

import logging
from typing import Any

from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-not-found]

from gamma_relay_service.config import get_settings, parse_schedule_time
from gamma_relay_service.service.pipeline import run_scheduled_task_sync

logger = logging.getLogger(__name__)

JOB_ID = "report_job"


def cron_expression(schedule_time: str) -> str:
    hour, minute = parse_schedule_time(schedule_time)
    return f"{minute} {hour} * * *"


def build_trigger(schedule_time: str | None = None, timezone: str | None = None) -> CronTrigger:
    settings = get_settings() if schedule_time is None else None
    value = schedule_time if schedule_time is not None else settings.schedule_time
    tz = timezone if timezone is not None else (settings.schedule_timezone if settings else None)
    return CronTrigger.from_crontab(cron_expression(value), timezone=tz)


def run() -> dict[str, Any]:
    result = run_scheduled_task_sync()
    if result.get("ok"):
        logger.info(
            "report_job ok: queued=%s processed=%s failed=%s analyzed=%s",
            result.get("queued", 0),
            result.get("processed", 0),
            result.get("failed", 0),
            result.get("analyzed", []),
        )
    else:
        logger.warning("report_job failed: %s", result.get("error", "unknown"))
    return result
