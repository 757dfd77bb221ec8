from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path

from playwright.async_api import async_playwright  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1600, "height": 2200}
SETTLE_MS = 5_000
PLOT_SELECTOR = ".plotly-graph-div"

_PLOT_IDS_JS = "nodes => nodes.map(n => n.id).filter(Boolean)"

_TO_IMAGE_JS = """
async (elementId) => {
  const el = document.getElementById(elementId);
  if (!el) throw new Error(`element not found: ${elementId}`);
  return await Plotly.toImage(el, { format: "png" });
}
"""

_DATA_URL_PREFIX = "data:image/png;base64,"


def _decode_png_data_url(data_url: str) -> bytes:
    s = str(data_url or "")
    if s.startswith(_DATA_URL_PREFIX):
        s = s[len(_DATA_URL_PREFIX) :]
    return base64.b64decode(s)


async def _export_plots(page, html_path: Path, output_dir: Path) -> list[str]:
    plot_ids: list[str] = await page.eval_on_selector_all(PLOT_SELECTOR, _PLOT_IDS_JS)
    if not plot_ids:
        logger.warning("render: no Plotly charts found in %s", html_path)
        return []

    out: list[str] = []
    for plot_id in plot_ids:
        try:
            data_url = await page.evaluate(_TO_IMAGE_JS, plot_id)
            png_path = output_dir / f"{html_path.stem}_{plot_id}.png"
            png_path.write_bytes(_decode_png_data_url(data_url))
            out.append(str(png_path))
            logger.info("render: exported %s", png_path)
        except Exception as exc:  # noqa: BLE001
            # One broken plot should not lose the others.
            logger.error("render: export failed for %s in %s: %s", plot_id, html_path.name, exc)
    return out


async def render_plotly_images(
    html_file: str | Path,
    output_dir: str | Path = "./",
    *,
    executable_path: str | None = None,
    timeout_ms: int = 60_000,
) -> list[str]:
    """
    Open a local HTML report in headless Chromium and export every Plotly chart as PNG.
    Returns the written image paths; an empty list when nothing could be exported.
    """
    html_path = Path(html_file).resolve()
    out_dir = Path(output_dir).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        async with async_playwright() as p:
            launch_kwargs: dict = {"headless": True}
            if executable_path:
                launch_kwargs["executable_path"] = executable_path
            browser = await p.chromium.launch(**launch_kwargs)
            try:
                page = await browser.new_page(viewport=VIEWPORT)
                page.set_default_timeout(timeout_ms)
                await page.goto(html_path.as_uri(), wait_until="domcontentloaded", timeout=timeout_ms)
                try:
                    await page.wait_for_load_state("networkidle", timeout=timeout_ms)
                except Exception:  # noqa: BLE001
                    pass
                await page.wait_for_timeout(SETTLE_MS)
                images = await _export_plots(page, html_path, out_dir)
                await page.close()
                return images
            finally:
                await browser.close()
    except Exception as exc:  # noqa: BLE001
        logger.error("render: failed to render %s: %s", html_path, exc)
        return []


def render_plotly_images_sync(html_file: str | Path, output_dir: str | Path = "./", **kwargs) -> list[str]:
    """Sync wrapper for scripts."""
    return asyncio.run(render_plotly_images(html_file, output_dir, **kwargs))
