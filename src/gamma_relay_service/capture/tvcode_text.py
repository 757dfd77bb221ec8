"""Best-effort plain-text extraction for tvcode snapshots."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from bs4 import BeautifulSoup  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

NO_TEXT_FOUND = "no tvcode data found"
EXTRACTION_FAILED = "tvcode extraction failed"

# tvcode dumps carry a line like "MU: Implied Movement -σ, 217.64, Implied Movement -2σ, 206.55, ..."
_DATA_LINE = re.compile(r"^[A-Z][A-Z0-9.!]*:\s*\S")
_WS = re.compile(r"\s+")


def _visible_text(node) -> str:
    for tag in node.find_all(["script", "style", "noscript"]):
        tag.decompose()
    return node.get_text("\n")


def extract_text_from_html(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body or soup
    lines = [_WS.sub(" ", ln).strip() for ln in _visible_text(body).splitlines()]
    lines = [ln for ln in lines if ln]

    for ln in lines:
        if _DATA_LINE.match(ln):
            return ln

    body_text = " ".join(lines)
    if len(body_text) > 10:
        return body_text

    all_text = _WS.sub(" ", _visible_text(soup)).strip()
    return all_text or NO_TEXT_FOUND


def extract_tvcode_text(html_file: str | Path) -> str:
    """Never raises; a failed extraction returns EXTRACTION_FAILED so the run can record it."""
    path = Path(html_file)
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
        return extract_text_from_html(html)
    except Exception as exc:  # noqa: BLE001
        logger.error("tvcode: extraction failed for %s: %s", path, exc)
        return EXTRACTION_FAILED
