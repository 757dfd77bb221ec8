from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Sequence

from gamma_relay_service.config import SymbolConfig
from gamma_relay_service.errors import AnalyzerError

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {"temperature": 0.7, "maxOutputTokens": 4000}
REQUEST_TIMEOUT = 180

DEFAULT_PROMPT = """You are a senior quantitative trader and options analyst who reads Gamma Hedging charts as a time series.

Below is {name} ({code}) data for the last {days} dates, in chronological order.

**Time order**: {labels}{tvcode}

Analyse how the data evolved over these dates, then forecast from that trend.

## 📊 1. Historical trend
- Dealer Gamma by strike: where it strengthened or faded; call side vs put side balance.
- Key level migration: Gamma Flip, Gamma Field support/resistance, high-Gamma clusters, spot vs the distribution.
- Sentiment: put/call balance, volume and open interest changes.
- Volatility: range expansion or contraction, stability of the distribution.

## 🔮 2. Forecast
- Next 1-3 sessions: expected range, probabilities and trigger levels.
- Next 1-2 weeks: direction, targets, and the conditions for continuation or reversal.
- Risk levels that would invalidate the view.

## 💼 3. Trade ideas
- Trend-following entries, stops and targets.
- Reversal zones and how to position ahead of them.
- Options structures suggested by the Gamma profile (strikes, expiries, risk/reward).

## 📈 4. What to watch next update

Output rules: Discord Markdown, **bold** key conclusions, `code` for numbers and levels, > quotes for key views, data-driven and unambiguous."""


def _format_tvcode_section(text_list: Sequence[dict[str, str]]) -> str:
    if not text_list:
        return ""
    out = "\n\n**Tvcode data**:\n"
    for item in text_list:
        out += f"\nDate {item.get('date', '')}:\n{item.get('data', '')}\n"
    return out


def build_prompt(
    symbol: SymbolConfig,
    time_labels: Sequence[str],
    text_list: Sequence[dict[str, str]] = (),
    custom_prompt: str = "",
) -> str:
    labels = ", ".join(time_labels)
    tvcode = _format_tvcode_section(text_list)
    if custom_prompt.strip():
        return f"{custom_prompt}\n\n**Symbol**: {symbol.name} ({symbol.code})\n**Time order**: {labels}{tvcode}"
    return DEFAULT_PROMPT.format(name=symbol.name, code=symbol.code, days=len(time_labels), labels=labels, tvcode=tvcode)


def _image_part(path: Path) -> dict[str, Any]:
    mime = "image/png" if path.suffix.lower() == ".png" else "image/jpeg"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return {"inline_data": {"mime_type": mime, "data": data}}


def build_request_body(prompt: str, image_paths: Sequence[str]) -> dict[str, Any]:
    parts: list[dict[str, Any]] = [{"text": prompt}]
    for p in image_paths:
        parts.append(_image_part(Path(p)))
    return {"contents": [{"parts": parts}], "generationConfig": dict(GENERATION_CONFIG)}


def _post_generate(url: str, body: dict[str, Any]) -> dict[str, Any]:
    req = urllib.request.Request(
        url,
        data=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw or "{}")
    except urllib.error.HTTPError as e:
        try:
            err_body = e.read().decode("utf-8", errors="replace")
        except Exception:  # noqa: BLE001
            err_body = ""
        raise AnalyzerError(f"gemini HTTP {getattr(e, 'code', '?')} {getattr(e, 'reason', '')}: {err_body}") from e
    except urllib.error.URLError as e:
        raise AnalyzerError(f"gemini URL error: {e}") from e
    except TimeoutError as e:
        raise AnalyzerError(f"gemini timeout: {e}") from e
    except json.JSONDecodeError as e:
        raise AnalyzerError(f"gemini returned invalid JSON: {e}") from e


def extract_text(response: dict[str, Any]) -> str:
    try:
        return str(response["candidates"][0]["content"]["parts"][0]["text"])
    except (KeyError, IndexError, TypeError) as e:
        raise AnalyzerError(f"gemini response has no text candidate: {str(response)[:500]}") from e


def analyze_with_gemini(
    *,
    api_key: str,
    base_url: str,
    model: str,
    symbol: SymbolConfig,
    image_paths: Sequence[str],
    time_labels: Sequence[str],
    text_list: Sequence[dict[str, str]] = (),
    custom_prompt: str = "",
) -> str:
    """Send the bundle to Gemini generateContent and return the report text. Raises AnalyzerError."""
    prompt = build_prompt(symbol, time_labels, text_list, custom_prompt)
    try:
        body = build_request_body(prompt, image_paths)
    except OSError as e:
        raise AnalyzerError(f"cannot read bundle image: {e}") from e
    url = f"{base_url.rstrip('/')}/{model}:generateContent?key={urllib.parse.quote(api_key)}"
    logger.info("gemini: analysing %s with %d image(s), %d text block(s)", symbol.key, len(image_paths), len(text_list))
    return extract_text(_post_generate(url, body))
