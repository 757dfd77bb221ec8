"""Discord webhook delivery: chart images (multipart) and chunked text messages."""

from __future__ import annotations

import json
import logging
import mimetypes
import urllib.error
import urllib.request
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import requests

from gamma_relay_service.errors import NotifierError

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000
# Room for the "(i/n)\n" chunk header.
CHUNK_HEADER_RESERVE = 16
DEFAULT_TIMEOUT = 60
DEFAULT_IMAGE_CAPTION = "📊 Gamma Hedging chart update"


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    if isinstance(exc, urllib.error.URLError) and not isinstance(exc, urllib.error.HTTPError):
        reason = exc.reason
        if isinstance(reason, TimeoutError):
            return True
        return "timed out" in str(reason).lower()
    return False


def _open(req: urllib.request.Request, timeout: float) -> bytes:
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read()
    except urllib.error.HTTPError as exc:
        try:
            body = exc.read().decode("utf-8", errors="replace")
        except Exception:  # noqa: BLE001
            body = ""
        raise NotifierError(f"discord webhook HTTP {exc.code} {exc.reason}: {body}") from exc


def _post_json(url: str, payload: dict[str, Any], timeout: float = DEFAULT_TIMEOUT) -> bytes:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    return _open(req, timeout)


def send_images(webhook_url: str, image_paths: list[str], caption: str = "", *, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Post all images in a single webhook call. Raises NotifierError on any failure."""
    paths = [Path(p) for p in image_paths]
    try:
        with ExitStack() as stack:
            files = [
                (
                    f"files[{i}]",
                    (p.name, stack.enter_context(p.open("rb")), mimetypes.guess_type(p.name)[0] or "image/png"),
                )
                for i, p in enumerate(paths)
            ]
            resp = requests.post(
                webhook_url,
                data={"content": caption or DEFAULT_IMAGE_CAPTION},
                files=files,
                timeout=timeout,
            )
    except requests.Timeout as exc:
        raise NotifierError(f"discord image upload timed out: {exc}") from exc
    except requests.RequestException as exc:
        raise NotifierError(f"discord image upload failed: {exc}") from exc
    except OSError as exc:
        raise NotifierError(f"cannot read chart image: {exc}") from exc
    if resp.status_code >= 400:
        raise NotifierError(f"discord webhook HTTP {resp.status_code}: {resp.text[:500]}")
    logger.info("discord: sent %d image(s)", len(paths))


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """
    Split text into chunks that fit the message limit once numbered.
    Prefers line boundaries; a single overlong line is cut hard.
    """
    if len(text) <= limit:
        return [text]
    room = max(1, limit - CHUNK_HEADER_RESERVE)
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > room:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:room])
            line = line[room:]
        if len(current) + len(line) > room:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return [c for c in chunks if c.strip()] or [text[:room]]


def send_message(webhook_url: str, message: str, *, limit: int = DISCORD_MESSAGE_LIMIT) -> int:
    """
    Send a text message, chunked and numbered when it exceeds `limit`.
    Each chunk is retried once on timeout. Returns the number of chunks delivered;
    raises NotifierError only when nothing was delivered.
    """
    chunks = split_message(message, limit)
    total = len(chunks)
    delivered = 0
    last_error: BaseException | None = None
    for i, chunk in enumerate(chunks, start=1):
        content = f"({i}/{total})\n{chunk}" if total > 1 else chunk
        for attempt in (1, 2):
            try:
                _post_json(webhook_url, {"content": content})
                delivered += 1
                break
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if attempt == 1 and _is_timeout(exc):
                    logger.warning("discord: chunk %d/%d timed out, retrying once", i, total)
                    continue
                logger.error("discord: giving up on chunk %d/%d: %s", i, total, exc)
                break

    if delivered == 0:
        raise NotifierError(f"discord message not delivered: {last_error}") from last_error
    logger.info("discord: sent message (%d/%d chunk(s))", delivered, total)
    return delivered
