import asyncio
import base64

from gamma_relay_service.capture import plotly_capture


def test_decode_png_data_url() -> None:
    raw = b"\x89PNG\r\n"
    data_url = "data:image/png;base64," + base64.b64encode(raw).decode("ascii")
    assert plotly_capture._decode_png_data_url(data_url) == raw
    assert plotly_capture._decode_png_data_url(base64.b64encode(raw).decode("ascii")) == raw


def test_render_failure_returns_empty(tmp_path, monkeypatch) -> None:
    def broken_playwright():
        raise RuntimeError("browser not installed")

    monkeypatch.setattr(plotly_capture, "async_playwright", broken_playwright)
    html = tmp_path / "2025-06-01_ABC_gamma.html"
    html.write_text("<html></html>", encoding="utf-8")

    images = asyncio.run(plotly_capture.render_plotly_images(html, tmp_path / "out"))

    assert images == []
    assert (tmp_path / "out").is_dir()


class _FakePage:
    def __init__(self, plot_ids, fail_ids=()) -> None:
        self.plot_ids = plot_ids
        self.fail_ids = set(fail_ids)

    async def eval_on_selector_all(self, selector, script):
        return self.plot_ids

    async def evaluate(self, script, plot_id):
        if plot_id in self.fail_ids:
            raise RuntimeError("toImage failed")
        return "data:image/png;base64," + base64.b64encode(plot_id.encode()).decode("ascii")


def test_export_plots_tolerates_single_failure(tmp_path) -> None:
    html = tmp_path / "snap.html"
    page = _FakePage(["plot1", "plot2"], fail_ids={"plot1"})

    images = asyncio.run(plotly_capture._export_plots(page, html, tmp_path))

    assert images == [str(tmp_path / "snap_plot2.png")]
    assert (tmp_path / "snap_plot2.png").read_bytes() == b"plot2"
