"""Connectivity check for every configured Discord channel."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from gamma_relay_service.config import Settings
from gamma_relay_service.notify import discord

logger = logging.getLogger(__name__)

SYMBOL_TEST_MESSAGE = "🧪 **Webhook test**\n\nTest message from gamma-relay for {name}."
ANALYSIS_TEST_MESSAGE = "🤖 **AI analysis channel test**\n\nTest message from gamma-relay."


def configured_channels(settings: Settings) -> list[dict[str, str]]:
    """Symbol channels, then analysis channels; each webhook URL listed once."""
    out: list[dict[str, str]] = []
    seen: set[str] = set()

    def add(label: str, url: str | None, message: str) -> None:
        if not url or url in seen:
            return
        seen.add(url)
        out.append({"label": label, "url": url, "message": message})

    for s in settings.symbols:
        add(f"symbol {s.key}", s.channel, SYMBOL_TEST_MESSAGE.format(name=s.name))
    for s in settings.symbols:
        add(f"analysis {s.key}", s.analysis_channel, ANALYSIS_TEST_MESSAGE)
    add("analysis", settings.analysis_channel, ANALYSIS_TEST_MESSAGE)
    return out


def check_webhooks(
    settings: Settings,
    *,
    image_paths: Sequence[str] = (),
    send_message: Callable[[str, str], Any] = discord.send_message,
    send_images: Callable[[str, list[str], str], Any] = discord.send_images,
) -> list[dict[str, Any]]:
    """
    Send a test message to each channel and report per-channel success.
    With image_paths, the first symbol channel also gets a test upload.
    """
    results: list[dict[str, Any]] = []
    for ch in configured_channels(settings):
        entry: dict[str, Any] = {"label": ch["label"], "url": ch["url"], "ok": True, "error": None}
        try:
            send_message(ch["url"], ch["message"])
        except Exception as exc:  # noqa: BLE001
            entry.update(ok=False, error=str(exc) or exc.__class__.__name__)
            logger.error("webhook check: %s failed: %s", ch["label"], exc)
        results.append(entry)

    if image_paths and settings.symbols:
        first = settings.symbols[0]
        entry = {"label": f"image upload {first.key}", "url": first.channel, "ok": True, "error": None}
        try:
            send_images(first.channel, list(image_paths), "🧪 Image upload test")
        except Exception as exc:  # noqa: BLE001
            entry.update(ok=False, error=str(exc) or exc.__class__.__name__)
            logger.error("webhook check: image upload failed: %s", exc)
        results.append(entry)
    return results
