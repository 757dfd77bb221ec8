from gamma_relay_service.capture.tvcode_text import (
    EXTRACTION_FAILED,
    NO_TEXT_FOUND,
    extract_text_from_html,
    extract_tvcode_text,
)


def test_data_line_is_preferred() -> None:
    html = """
    <html><head><style>body { color: red; }</style></head>
    <body>
      <h1>Levels</h1>
      <script>var x = "MU: not this";</script>
      <pre>MU: Implied Movement -σ, 217.64, Implied Movement -2σ, 206.55</pre>
    </body></html>
    """
    assert extract_text_from_html(html) == "MU: Implied Movement -σ, 217.64, Implied Movement -2σ, 206.55"


def test_falls_back_to_body_text() -> None:
    html = "<html><body><p>some levels</p><p>without a ticker prefix</p></body></html>"
    assert extract_text_from_html(html) == "some levels without a ticker prefix"


def test_empty_document_returns_sentinel() -> None:
    assert extract_text_from_html("<html><body><script>x()</script></body></html>") == NO_TEXT_FOUND


def test_unreadable_file_returns_failure_sentinel(tmp_path) -> None:
    assert extract_tvcode_text(tmp_path / "gone.html") == EXTRACTION_FAILED


def test_reads_file(tmp_path) -> None:
    path = tmp_path / "2025-06-01_SPX_tvcode.html"
    path.write_text("<body><div>SPX: Gamma Flip, 5400</div></body>", encoding="utf-8")
    assert extract_tvcode_text(path) == "SPX: Gamma Flip, 5400"
