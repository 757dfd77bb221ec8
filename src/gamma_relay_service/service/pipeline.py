"""Per-run orchestration: render/extract, notify, record, then multi-day analysis."""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from gamma_relay_service.analysis.gemini import analyze_with_gemini
from gamma_relay_service.capture.plotly_capture import render_plotly_images
from gamma_relay_service.capture.tvcode_text import extract_tvcode_text
from gamma_relay_service.config import Settings, SymbolConfig, get_settings
from gamma_relay_service.db.history_store import KIND_CHART, DatedEntry, HistoryStore
from gamma_relay_service.errors import PersistenceError, RunInProgressError
from gamma_relay_service.notify import discord
from gamma_relay_service.service.scanner import WorkItem, scan, today_iso

logger = logging.getLogger(__name__)

# Analysis needs at least this many dated entries for a symbol.
ANALYSIS_DAYS = 2

# Report and analysis runs share one history file; only one runs at a time.
_run_lock = threading.Lock()


@dataclass(frozen=True)
class Collaborators:
    render: Callable[[Path, Path], Awaitable[list[str]]]
    extract_text: Callable[[Path], Awaitable[str]]
    send_images: Callable[[str, list[str], str], Awaitable[Any]]
    send_message: Callable[[str, str], Awaitable[Any]]
    analyze: Callable[[SymbolConfig, list[str], list[str], list[dict[str, str]], str], Awaitable[str]]


def default_collaborators(settings: Settings) -> Collaborators:
    async def render(html_file: Path, output_dir: Path) -> list[str]:
        return await render_plotly_images(html_file, output_dir, executable_path=settings.chrome_executable)

    async def extract_text(html_file: Path) -> str:
        return await asyncio.to_thread(extract_tvcode_text, html_file)

    async def send_images(channel: str, images: list[str], caption: str) -> None:
        await asyncio.to_thread(discord.send_images, channel, images, caption)

    async def send_message(channel: str, message: str) -> int:
        return await asyncio.to_thread(discord.send_message, channel, message)

    async def analyze(
        symbol: SymbolConfig,
        images: list[str],
        time_labels: list[str],
        texts: list[dict[str, str]],
        prompt: str,
    ) -> str:
        call = functools.partial(
            analyze_with_gemini,
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            symbol=symbol,
            image_paths=images,
            time_labels=time_labels,
            text_list=texts,
            custom_prompt=prompt,
        )
        return await asyncio.to_thread(call)

    return Collaborators(
        render=render,
        extract_text=extract_text,
        send_images=send_images,
        send_message=send_message,
        analyze=analyze,
    )


@dataclass
class Bundle:
    images: list[str] = field(default_factory=list)
    time_labels: list[str] = field(default_factory=list)
    texts: list[dict[str, str]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.images and not self.texts


def assemble_bundle(records: Sequence[DatedEntry], *, exists: Callable[[str], bool] = os.path.exists) -> Bundle:
    """
    Concatenate images and texts of the given dated entries (oldest first).
    Missing image files and images already in the bundle are dropped.
    """
    bundle = Bundle()
    seen: set[str] = set()
    for record in records:
        bundle.time_labels.append(record.date)
        if record.chart is not None:
            for img in record.chart.image_paths:
                if img in seen:
                    logger.warning("bundle: duplicate image %s (%s), skipped", img, record.date)
                    continue
                if not exists(img):
                    logger.warning("bundle: image missing on disk %s (%s), skipped", img, record.date)
                    continue
                seen.add(img)
                bundle.images.append(img)
        if record.text is not None and record.text.data:
            bundle.texts.append({"date": record.date, "data": record.text.data})
    return bundle


def format_analysis_message(symbol: SymbolConfig, report: str) -> str:
    return f"## 🤖 {symbol.name} AI analysis report\n\n{report}"


class ReportPipeline:
    def __init__(self, settings: Settings, store: HistoryStore, collaborators: Collaborators) -> None:
        self.settings = settings
        self.store = store
        self.collaborators = collaborators

    async def process_work_item(self, item: WorkItem) -> bool:
        """Returns True when the item was recorded. Collaborator errors propagate to the caller."""
        name = item.file_path.name
        logger.info("process: %s (%s, %s)", name, item.symbol_key, item.kind)

        if item.kind == KIND_CHART:
            images = await self.collaborators.render(item.file_path, self.settings.image_output_directory)
            if not images:
                logger.warning("process: no images rendered from %s, will retry next run", name)
                return False
            caption = f"📊 {item.symbol.name} Gamma Hedging chart - {item.date}"
            await self.collaborators.send_images(item.symbol.channel, images, caption)
            self.store.record_processed(item.symbol_key, item.file_path, images, item.date, KIND_CHART)
            return True

        text = await self.collaborators.extract_text(item.file_path)
        self.store.record_processed(item.symbol_key, item.file_path, [], item.date, item.kind, text)
        logger.info("process: recorded tvcode text for %s (%d chars)", item.symbol_key, len(text))
        return True

    async def analyze_symbol(self, symbol: SymbolConfig) -> str:
        """Run bundle analysis for one symbol. Returns "analyzed" or a skip reason."""
        records = self.store.get_recent_records(symbol.key, ANALYSIS_DAYS)
        if len(records) < ANALYSIS_DAYS:
            logger.info("analysis: %s has %d dated record(s), need %d", symbol.key, len(records), ANALYSIS_DAYS)
            return "insufficient_history"

        bundle = assemble_bundle(records)
        if bundle.is_empty():
            logger.warning("analysis: %s has no usable images or text, skipped", symbol.key)
            return "empty_bundle"

        channel = self.settings.analysis_channel_for(symbol)
        if not channel:
            logger.info("analysis: no analysis channel configured for %s, skipped", symbol.key)
            return "no_channel"

        logger.info(
            "analysis: %s images=%d texts=%d range=%s",
            symbol.key,
            len(bundle.images),
            len(bundle.texts),
            " -> ".join(bundle.time_labels),
        )
        report = await self.collaborators.analyze(
            symbol,
            bundle.images,
            bundle.time_labels,
            bundle.texts,
            self.settings.analysis_prompt,
        )
        await self.collaborators.send_message(channel, format_analysis_message(symbol, report))
        return "analyzed"

    async def run(self, *, today: str | None = None) -> dict[str, Any]:
        day = today or today_iso(self.settings.schedule_timezone)
        queue = scan(self.settings.watch_directory, self.settings.symbols, self.store, today=day)
        result: dict[str, Any] = {
            "ok": True,
            "today": day,
            "queued": len(queue),
            "processed": 0,
            "failed": 0,
            "analyzed": [],
            "skipped": {},
            "errors": {},
        }
        if not queue:
            logger.info("run: nothing to process")
            return result

        logger.info("run: %d file(s) to process", len(queue))
        for item in queue:
            try:
                if await self.process_work_item(item):
                    result["processed"] += 1
                else:
                    result["failed"] += 1
            except PersistenceError:
                raise
            except Exception as exc:  # noqa: BLE001
                result["failed"] += 1
                result["errors"][item.file_path.name] = str(exc) or exc.__class__.__name__
                logger.error("process: failed %s: %s", item.file_path.name, exc)

        await self.analyze_all(result)
        return result

    async def analyze_all(self, result: dict[str, Any] | None = None) -> dict[str, Any]:
        """Bundle analysis for every configured symbol; one symbol's failure does not stop the rest."""
        out = result if result is not None else {"ok": True, "analyzed": [], "skipped": {}, "errors": {}}
        for symbol in self.settings.symbols:
            try:
                status = await self.analyze_symbol(symbol)
            except Exception as exc:  # noqa: BLE001
                out["errors"][symbol.key] = str(exc) or exc.__class__.__name__
                logger.error("analysis: failed for %s: %s", symbol.key, exc)
                continue
            if status == "analyzed":
                out["analyzed"].append(symbol.key)
            else:
                out["skipped"][symbol.key] = status
        return out


async def run_scheduled_task(
    settings: Settings | None = None,
    *,
    store: HistoryStore | None = None,
    collaborators: Collaborators | None = None,
    today: str | None = None,
) -> dict[str, Any]:
    s = settings or get_settings()
    history = store if store is not None else HistoryStore(s.history_file, strict=s.strict_save)
    history.load()
    pipeline = ReportPipeline(s, history, collaborators or default_collaborators(s))
    try:
        return await pipeline.run(today=today)
    except PersistenceError as exc:
        logger.error("run: aborted, history could not be saved: %s", exc)
        return {"ok": False, "error": str(exc)}


async def run_analysis_task(
    settings: Settings | None = None,
    *,
    store: HistoryStore | None = None,
    collaborators: Collaborators | None = None,
) -> dict[str, Any]:
    """Analyze recorded history for every symbol without scanning for new files."""
    s = settings or get_settings()
    history = store if store is not None else HistoryStore(s.history_file, strict=s.strict_save)
    history.load()
    pipeline = ReportPipeline(s, history, collaborators or default_collaborators(s))
    logger.info("analysis: on-demand run for %d symbol(s)", len(s.symbols))
    return await pipeline.analyze_all()


def _run_exclusive(
    coro_fn: Callable[..., Awaitable[dict[str, Any]]], wait: bool, *args: Any, **kwargs: Any
) -> dict[str, Any]:
    if not _run_lock.acquire(blocking=wait):
        raise RunInProgressError("a report or analysis run is already in progress")
    try:
        return asyncio.run(coro_fn(*args, **kwargs))
    finally:
        _run_lock.release()


def run_scheduled_task_sync(settings: Settings | None = None, *, wait: bool = True, **kwargs: Any) -> dict[str, Any]:
    """
    Sync wrapper for the scheduler thread and sync API handlers.
    Runs are serialized; with wait=False a busy lock raises RunInProgressError.
    """
    return _run_exclusive(run_scheduled_task, wait, settings, **kwargs)


def run_analysis_task_sync(settings: Settings | None = None, *, wait: bool = True, **kwargs: Any) -> dict[str, Any]:
    return _run_exclusive(run_analysis_task, wait, settings, **kwargs)
