from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler

from gamma_relay_service.config import Settings, get_settings
from gamma_relay_service.scheduler import report_job

_report_status: Dict[str, Any] = {
    "last_run_at": None,
    "last_run_ok": None,
    "last_error": None,
    "last_result": None,
    "trigger": None,
}


def _to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat()


def _handle_job_event(event: JobExecutionEvent) -> None:
    if event.job_id != report_job.JOB_ID:
        return
    _report_status["last_run_at"] = _to_iso(datetime.now(timezone.utc))
    if event.exception:
        _report_status["last_run_ok"] = False
        _report_status["last_error"] = str(event.exception)
        _report_status["last_result"] = None
        return
    result = event.retval if isinstance(event.retval, dict) else None
    ok = bool(result.get("ok")) if result is not None else True
    _report_status["last_run_ok"] = ok
    _report_status["last_error"] = None if ok else str((result or {}).get("error") or "unknown")
    _report_status["last_result"] = result


def create_scheduler(settings: Settings | None = None) -> BackgroundScheduler:
    s = settings or get_settings()
    kwargs: dict[str, Any] = {"job_defaults": {"coalesce": True, "max_instances": 1}}
    if s.schedule_timezone:
        kwargs["timezone"] = s.schedule_timezone
    scheduler = BackgroundScheduler(**kwargs)
    trigger = report_job.build_trigger(s.schedule_time, s.schedule_timezone)
    _report_status["trigger"] = f"{trigger} ({report_job.cron_expression(s.schedule_time)})"
    scheduler.add_listener(_handle_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    scheduler.add_job(
        report_job.run,
        trigger,
        id=report_job.JOB_ID,
        replace_existing=True,
    )
    return scheduler


def get_report_status() -> Dict[str, Any]:
    return dict(_report_status)
