from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query  # type: ignore[import-not-found]
from pydantic import BaseModel  # type: ignore[import-not-found]

from gamma_relay_service.config import get_settings
from gamma_relay_service.db import check_history_file, open_history_store
from gamma_relay_service.errors import RunInProgressError
from gamma_relay_service.scheduler import get_report_status
from gamma_relay_service.service.history_report import recent_records_payload, reset_history, summarize_history
from gamma_relay_service.service.pipeline import run_analysis_task_sync, run_scheduled_task_sync

router = APIRouter()


class ResetHistoryRequest(BaseModel):
    backup: bool = True


@router.get("/healthz")
def healthz() -> dict:
    settings = get_settings()
    ok, error = check_history_file(settings)
    watch_ok = settings.watch_directory.is_dir()
    return {
        "status": "ok" if ok and watch_ok else "degraded",
        "historyFile": ok,
        "historyError": error if not ok else None,
        "watchDirectory": watch_ok,
    }


@router.get("/scheduler/report")
def scheduler_report_status() -> dict:
    """Trigger description and outcome of the last scheduled run."""
    return get_report_status()


@router.post("/run")
def run_now() -> dict:
    """Run the report task immediately (same entry point as the daily trigger)."""
    try:
        return run_scheduled_task_sync(get_settings(), wait=False)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/analyze")
def analyze_now() -> dict:
    """Analyze recorded history for every symbol, without scanning for new files."""
    try:
        return run_analysis_task_sync(get_settings(), wait=False)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get("/history")
def history_summary() -> dict:
    settings = get_settings()
    return summarize_history(open_history_store(settings), settings.symbols)


@router.get("/history/{symbol}/recent")
def history_recent(symbol: str, count: int = Query(2, ge=1, le=30)) -> list[dict[str, Any]]:
    settings = get_settings()
    store = open_history_store(settings)
    known = set(store.symbols()) | {s.key for s in settings.symbols}
    if symbol not in known:
        raise HTTPException(status_code=404, detail="Unknown symbol")
    return recent_records_payload(store, symbol, count)


@router.post("/history/reset")
def history_reset(req: ResetHistoryRequest) -> dict:
    settings = get_settings()
    try:
        return reset_history(settings.history_file, backup=req.backup)
    except OSError as e:
        raise HTTPException(status_code=500, detail=str(e) or e.__class__.__name__) from e
