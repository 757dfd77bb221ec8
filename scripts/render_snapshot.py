"""Render Plotly charts of one or more gamma HTML snapshots to PNG (manual check of the renderer)."""

from __future__ import annotations

import argparse

from gamma_relay_service.capture.plotly_capture import render_plotly_images_sync


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export Plotly charts from HTML snapshots.")
    parser.add_argument("html", nargs="+", help="HTML snapshot file(s)")
    parser.add_argument("--out", default="./images")
    parser.add_argument("--chrome", default=None, help="Chrome/Chromium executable (default: Playwright Chromium)")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    for html in args.html:
        images = render_plotly_images_sync(html, args.out, executable_path=args.chrome)
        print(f"{html}: {len(images)} image(s)")
        for img in images:
            print(f"  {img}")


if __name__ == "__main__":
    main()
