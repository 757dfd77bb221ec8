from gamma_relay_service.config import Settings, SymbolConfig
from gamma_relay_service.errors import NotifierError
from gamma_relay_service.notify import discord
from gamma_relay_service.service import webhook_check


def _settings(tmp_path, *symbols: SymbolConfig, analysis_channel: str | None = "https://hooks/analysis") -> Settings:
    return Settings(
        config_path=tmp_path / "config.json",
        watch_directory=tmp_path,
        image_output_directory=tmp_path / "images",
        history_file=tmp_path / "history.json",
        schedule_time="23:00",
        schedule_timezone=None,
        symbols=symbols,
        analysis_channel=analysis_channel,
    )


ABC = SymbolConfig(name="ABC Corp", code="ABC", keywords=("abc",), channel="https://hooks/abc")
TSM = SymbolConfig(
    name="TSM", code="TSM", keywords=("tsm",), channel="https://hooks/tsm", analysis_channel="https://hooks/tsm-ai"
)


def test_every_channel_gets_one_message(tmp_path, monkeypatch) -> None:
    sent: list[tuple[str, str]] = []
    monkeypatch.setattr(discord, "_post_json", lambda url, payload, timeout=60: sent.append((url, payload["content"])))

    results = webhook_check.check_webhooks(_settings(tmp_path, ABC, TSM))

    assert [url for url, _ in sent] == [
        "https://hooks/abc",
        "https://hooks/tsm",
        "https://hooks/tsm-ai",
        "https://hooks/analysis",
    ]
    assert "ABC Corp" in sent[0][1]
    assert all(r["ok"] for r in results)


def test_failure_reported_per_channel(tmp_path) -> None:
    def send(url, message):
        if url == "https://hooks/analysis":
            raise NotifierError("discord webhook HTTP 404 Not Found")
        return 1

    results = webhook_check.check_webhooks(_settings(tmp_path, ABC), send_message=send)

    by_label = {r["label"]: r for r in results}
    assert by_label["symbol abc"]["ok"] is True
    assert by_label["analysis"]["ok"] is False
    assert "404" in by_label["analysis"]["error"]


def test_shared_webhook_checked_once(tmp_path) -> None:
    calls = []
    settings = _settings(tmp_path, ABC, analysis_channel="https://hooks/abc")

    webhook_check.check_webhooks(settings, send_message=lambda url, msg: calls.append(url))

    assert calls == ["https://hooks/abc"]


def test_image_upload_goes_to_first_symbol_channel(tmp_path) -> None:
    uploads = []

    results = webhook_check.check_webhooks(
        _settings(tmp_path, ABC, TSM, analysis_channel=None),
        image_paths=["chart.png"],
        send_message=lambda url, msg: 1,
        send_images=lambda url, images, caption: uploads.append((url, images)),
    )

    assert uploads == [("https://hooks/abc", ["chart.png"])]
    assert results[-1]["label"] == "image upload abc" and results[-1]["ok"] is True
