from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from gamma_relay_service.errors import ConfigError

logger = logging.getLogger(__name__)

ROOT_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_SCHEDULE_TIME = "23:00"


def _load_env() -> None:
    if ROOT_ENV_PATH.exists():
        load_dotenv(ROOT_ENV_PATH)


@dataclass(frozen=True)
class SymbolConfig:
    name: str
    code: str
    keywords: tuple[str, ...]
    channel: str
    analysis_channel: str | None = None

    @property
    def key(self) -> str:
        # First keyword is the storage identity of the symbol.
        return self.keywords[0] if self.keywords else ""


@dataclass(frozen=True)
class Settings:
    config_path: Path
    watch_directory: Path
    image_output_directory: Path
    history_file: Path
    schedule_time: str
    schedule_timezone: str | None
    symbols: tuple[SymbolConfig, ...] = field(default_factory=tuple)
    analysis_channel: str | None = None
    gemini_api_key: str = ""
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    analysis_prompt: str = ""
    chrome_executable: str | None = None
    strict_save: bool = False

    def analysis_channel_for(self, symbol: SymbolConfig) -> str | None:
        return symbol.analysis_channel or self.analysis_channel


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _pick(env_name: str, raw: dict[str, Any], key: str, default: Any = None) -> Any:
    value = os.getenv(env_name)
    if value is not None and value.strip():
        return value.strip()
    v = raw.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return default
    return v


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


def _parse_symbol(raw: Any, index: int) -> SymbolConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"stockConfigs[{index}] must be an object")
    keywords = raw.get("keywords") or []
    if isinstance(keywords, str):
        keywords = [keywords]
    kws = tuple(str(k).strip() for k in keywords if str(k).strip())
    name = str(raw.get("stockName") or raw.get("name") or (kws[0] if kws else "")).strip()
    code = str(raw.get("stockCode") or raw.get("code") or name).strip()
    return SymbolConfig(
        name=name,
        code=code,
        keywords=kws,
        channel=str(raw.get("webhookUrl") or raw.get("channel") or "").strip(),
        analysis_channel=(str(raw.get("analysisWebhookUrl") or "").strip() or None),
    )


def load_settings(config_path: Path | None = None) -> Settings:
    """
    Build settings from the JSON config file plus environment overrides.
    Environment variables win over the file for scalar values.
    """
    _load_env()

    path = config_path or Path(os.getenv("RELAY_CONFIG_PATH", "config.json"))
    path = path.expanduser().resolve()
    raw = _read_config_file(path)
    gemini = raw.get("gemini") if isinstance(raw.get("gemini"), dict) else {}

    symbols = tuple(_parse_symbol(item, i) for i, item in enumerate(raw.get("stockConfigs") or []))

    return Settings(
        config_path=path,
        watch_directory=Path(str(_pick("WATCH_DIRECTORY", raw, "watchDirectory", "./"))).expanduser().resolve(),
        image_output_directory=Path(
            str(_pick("IMAGE_OUTPUT_DIRECTORY", raw, "imageOutputDirectory", "./images"))
        ).expanduser().resolve(),
        history_file=Path(str(_pick("HISTORY_FILE", raw, "historyFile", "./history.json"))).expanduser().resolve(),
        schedule_time=str(_pick("SCHEDULE_TIME", raw, "scheduleTime", DEFAULT_SCHEDULE_TIME)),
        schedule_timezone=_pick("SCHEDULE_TIMEZONE", raw, "scheduleTimezone"),
        symbols=symbols,
        analysis_channel=_pick("ANALYSIS_WEBHOOK_URL", raw, "analysisWebhookUrl"),
        gemini_api_key=str(_pick("GEMINI_API_KEY", gemini, "apiKey", "")),
        gemini_base_url=str(_pick("GEMINI_BASE_URL", gemini, "baseUrl", DEFAULT_GEMINI_BASE_URL)).rstrip("/"),
        gemini_model=str(_pick("GEMINI_MODEL", gemini, "model", DEFAULT_GEMINI_MODEL)),
        analysis_prompt=str(_pick("ANALYSIS_PROMPT", raw, "prompt", "")),
        chrome_executable=_pick("CHROME_EXECUTABLE", raw, "chromeExecutable"),
        strict_save=_env_bool("HISTORY_STRICT_SAVE", bool(raw.get("strictSave", False))),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def parse_schedule_time(value: str) -> tuple[int, int]:
    """Parse "HH:MM" (24h) into (hour, minute)."""
    raw = (value or "").strip()
    parts = raw.split(":")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"schedule time must be HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"schedule time out of range: {value!r}")
    return hour, minute


def _is_placeholder(url: str) -> bool:
    return not url or url.startswith("YOUR_")


def validate_settings(settings: Settings) -> None:
    """Raise ConfigError for anything that must be fixed before the first run."""
    if not settings.symbols:
        raise ConfigError("no stockConfigs configured")

    no_keywords = [str(i) for i, s in enumerate(settings.symbols) if not s.keywords]
    if no_keywords:
        raise ConfigError(f"stockConfigs without keywords at index: {', '.join(no_keywords)}")

    missing = [s.key for s in settings.symbols if _is_placeholder(s.channel)]
    if missing:
        raise ConfigError(f"missing Discord webhook URL for: {', '.join(missing)}")

    if not settings.gemini_api_key:
        raise ConfigError("missing Gemini API key (gemini.apiKey or GEMINI_API_KEY)")

    try:
        parse_schedule_time(settings.schedule_time)
    except ValueError as exc:
        raise ConfigError(f"invalid scheduleTime: {exc}") from exc

    if settings.schedule_timezone:
        try:
            ZoneInfo(settings.schedule_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"unknown scheduleTimezone {settings.schedule_timezone!r}") from exc

    # Declaration order decides collisions; surface them to whoever owns the config.
    owners: dict[str, str] = {}
    for s in settings.symbols:
        for kw in s.keywords:
            lowered = kw.lower()
            prev = owners.get(lowered)
            if prev is not None and prev != s.key:
                logger.warning("keyword %r is shared by %s and %s; %s wins", kw, prev, s.key, prev)
            else:
                owners[lowered] = s.key
