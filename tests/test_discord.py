import urllib.error

import pytest

from gamma_relay_service.errors import NotifierError
from gamma_relay_service.notify import discord


def test_short_message_is_single_chunk() -> None:
    assert discord.split_message("hello", 2000) == ["hello"]


def test_long_message_split_on_lines_within_limit() -> None:
    text = "\n".join(f"line {i:03d} " + "x" * 40 for i in range(100))
    chunks = discord.split_message(text, 500)
    assert len(chunks) > 1
    assert all(len(c) <= 500 - discord.CHUNK_HEADER_RESERVE for c in chunks)
    assert "".join(chunks) == text


def test_overlong_line_is_cut() -> None:
    chunks = discord.split_message("y" * 250, 100)
    assert all(len(c) <= 84 for c in chunks)
    assert "".join(chunks) == "y" * 250


def test_send_message_numbers_chunks(monkeypatch) -> None:
    sent: list[str] = []
    monkeypatch.setattr(discord, "_post_json", lambda url, payload, timeout=60: sent.append(payload["content"]))

    delivered = discord.send_message("https://hooks/x", "\n".join("z" * 50 for _ in range(10)), limit=120)

    assert delivered == len(sent) > 1
    assert sent[0].startswith(f"(1/{len(sent)})\n")
    assert sent[-1].startswith(f"({len(sent)}/{len(sent)})\n")
    assert all(len(c) <= 120 for c in sent)


def test_send_message_retries_once_on_timeout(monkeypatch) -> None:
    calls: list[str] = []

    def flaky(url, payload, timeout=60):
        calls.append(payload["content"])
        if len(calls) == 1:
            raise urllib.error.URLError(TimeoutError("timed out"))

    monkeypatch.setattr(discord, "_post_json", flaky)

    assert discord.send_message("https://hooks/x", "report") == 1
    assert calls == ["report", "report"]


def test_send_message_partial_delivery_does_not_raise(monkeypatch) -> None:
    sent: list[str] = []

    def fail_second(url, payload, timeout=60):
        if payload["content"].startswith("(2/"):
            raise NotifierError("discord webhook HTTP 400")
        sent.append(payload["content"])

    monkeypatch.setattr(discord, "_post_json", fail_second)

    text = "\n".join("w" * 50 for _ in range(6))
    delivered = discord.send_message("https://hooks/x", text, limit=120)
    assert delivered == len(sent) >= 1
    assert not any(c.startswith("(2/") for c in sent)


def test_send_message_raises_when_nothing_delivered(monkeypatch) -> None:
    def always_fail(url, payload, timeout=60):
        raise NotifierError("discord webhook HTTP 404")

    monkeypatch.setattr(discord, "_post_json", always_fail)

    with pytest.raises(NotifierError):
        discord.send_message("https://hooks/x", "report")


class _FakeResponse:
    def __init__(self, status_code: int = 204, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


def _images(tmp_path, count: int = 3) -> list[str]:
    out = []
    for i in range(count):
        p = tmp_path / f"chart_{i}.png"
        p.write_bytes(b"\x89PNG")
        out.append(str(p))
    return out


def test_send_images_single_multipart_call(tmp_path, monkeypatch) -> None:
    calls = []

    def fake_post(url, data=None, files=None, timeout=None):
        calls.append((url, data, [(field, name, fh.read(), mime) for field, (name, fh, mime) in files], timeout))
        return _FakeResponse(200)

    monkeypatch.setattr(discord.requests, "post", fake_post)

    discord.send_images("https://hooks/x", _images(tmp_path), "📊 caption")

    assert len(calls) == 1
    url, data, files, timeout = calls[0]
    assert url == "https://hooks/x"
    assert data == {"content": "📊 caption"}
    assert [f[0] for f in files] == ["files[0]", "files[1]", "files[2]"]
    assert files[0][1:] == ("chart_0.png", b"\x89PNG", "image/png")
    assert timeout == discord.DEFAULT_TIMEOUT


def test_send_images_http_error_raises(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(discord.requests, "post", lambda *a, **kw: _FakeResponse(413, "Request entity too large"))
    with pytest.raises(NotifierError, match="413"):
        discord.send_images("https://hooks/x", _images(tmp_path, 1), "caption")


def test_send_images_timeout_raises(tmp_path, monkeypatch) -> None:
    def slow(*args, **kwargs):
        raise discord.requests.Timeout("read timed out")

    monkeypatch.setattr(discord.requests, "post", slow)
    with pytest.raises(NotifierError, match="timed out"):
        discord.send_images("https://hooks/x", _images(tmp_path, 1), "caption")


def test_send_images_missing_file_raises(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(discord.requests, "post", lambda *a, **kw: _FakeResponse(200))
    with pytest.raises(NotifierError, match="cannot read"):
        discord.send_images("https://hooks/x", [str(tmp_path / "gone.png")], "caption")
