"""Tests for the PDF engine pipeline."""
import threading
from typing import List, Optional

import pytest

from researchaid.exceptions import RenderUnavailable
from researchaid.services.pdf_renderer import (
    ChromiumEngine,
    InstalledBrowserEngine,
    PdfRenderPipeline,
    RenderJob,
    TextOnlyEngine,
    html_to_text,
    is_missing_native_dependency,
    render_pdf,
)

NATIVE_ERROR = "browserType.launch: Host system is missing dependencies: libnss3.so"


# ---------------------------------------------------------------------------
# Fake Playwright
# ---------------------------------------------------------------------------

class FakePage:
    def __init__(self, pdf_error: Optional[Exception]) -> None:
        self.pdf_error = pdf_error
        self.pdf_kwargs = None

    async def set_content(self, html, wait_until=None, timeout=None):
        self.html = html

    async def pdf(self, **kwargs):
        self.pdf_kwargs = kwargs
        if self.pdf_error is not None:
            raise self.pdf_error
        return b"%PDF-1.4 browser"


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, log: List[str], name: str, launch_error=None, pdf_error=None) -> None:
        self.log = log
        self.name = name
        self.launch_error = launch_error
        self.pdf_error = pdf_error
        self.launch_kwargs = None
        self.browsers: List[FakeBrowser] = []

    async def launch(self, **kwargs):
        self.log.append(self.name)
        self.launch_kwargs = kwargs
        if self.launch_error is not None:
            raise self.launch_error
        browser = FakeBrowser(FakePage(self.pdf_error))
        self.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, chromium: FakeChromium) -> None:
        self.chromium = chromium

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def _factory(chromium: FakeChromium):
    return lambda: FakePlaywright(chromium)


class LoggingTextOnlyEngine(TextOnlyEngine):
    def __init__(self, log: List[str], error: Optional[Exception] = None) -> None:
        super().__init__()
        self.log = log
        self.error = error

    async def render(self, job: RenderJob) -> bytes:
        self.log.append(self.name)
        if self.error is not None:
            raise self.error
        return await super().render(job)


# ---------------------------------------------------------------------------
# Pipeline ordering
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_native_failure_walks_every_tier_in_order():
    log: List[str] = []
    primary = FakeChromium(log, "primary", launch_error=RuntimeError(NATIVE_ERROR))
    secondary = FakeChromium(log, "secondary", pdf_error=RuntimeError("page crashed"))
    pipeline = PdfRenderPipeline([
        ChromiumEngine(playwright_factory=_factory(primary)),
        InstalledBrowserEngine(channel="chrome", executable_path="",
                               playwright_factory=_factory(secondary)),
        LoggingTextOnlyEngine(log),
    ])

    pdf = await pipeline.render("<p>Body</p>", source="# Heading\nBody text.")

    assert pdf.startswith(b"%PDF")
    assert log == ["primary", "secondary", "text-only"]
    assert secondary.launch_kwargs["channel"] == "chrome"
    assert all(b.closed for b in secondary.browsers)


@pytest.mark.asyncio
async def test_secondary_success_skips_text_fallback():
    log: List[str] = []
    primary = FakeChromium(log, "primary", launch_error=RuntimeError(NATIVE_ERROR))
    secondary = FakeChromium(log, "secondary")
    pipeline = PdfRenderPipeline([
        ChromiumEngine(playwright_factory=_factory(primary)),
        InstalledBrowserEngine(executable_path="/usr/bin/chromium",
                               playwright_factory=_factory(secondary)),
        LoggingTextOnlyEngine(log),
    ])

    pdf = await pipeline.render("<p>Body</p>")

    assert pdf == b"%PDF-1.4 browser"
    assert log == ["primary", "secondary"]
    assert secondary.launch_kwargs["executable_path"] == "/usr/bin/chromium"
    assert "channel" not in secondary.launch_kwargs
    assert secondary.browsers[0].closed


@pytest.mark.asyncio
async def test_non_native_primary_failure_is_not_retried():
    log: List[str] = []
    primary = FakeChromium(log, "primary", pdf_error=RuntimeError("Target closed"))
    secondary = FakeChromium(log, "secondary")
    pipeline = PdfRenderPipeline([
        ChromiumEngine(playwright_factory=_factory(primary)),
        InstalledBrowserEngine(channel="chrome", playwright_factory=_factory(secondary)),
        LoggingTextOnlyEngine(log),
    ])

    with pytest.raises(RenderUnavailable) as excinfo:
        await pipeline.render("<p>Body</p>")

    assert log == ["primary"]
    assert [a.engine for a in excinfo.value.attempts] == ["chromium"]
    assert primary.browsers[0].closed


@pytest.mark.asyncio
async def test_all_engines_failing_raises_with_every_attempt():
    log: List[str] = []
    primary = FakeChromium(log, "primary", launch_error=RuntimeError(NATIVE_ERROR))
    secondary = FakeChromium(log, "secondary", launch_error=RuntimeError("no chrome"))
    pipeline = PdfRenderPipeline([
        ChromiumEngine(playwright_factory=_factory(primary)),
        InstalledBrowserEngine(channel="chrome", playwright_factory=_factory(secondary)),
        LoggingTextOnlyEngine(log, error=RuntimeError("font missing")),
    ])

    with pytest.raises(RenderUnavailable) as excinfo:
        await pipeline.render("<p>Body</p>")

    attempts = excinfo.value.attempts
    assert [a.engine for a in attempts] == ["chromium", "installed-browser", "text-only"]
    assert not any(a.succeeded for a in attempts)


@pytest.mark.asyncio
async def test_browser_pdf_options():
    log: List[str] = []
    chromium = FakeChromium(log, "primary")
    engine = ChromiumEngine(playwright_factory=_factory(chromium))

    attempt = await engine.attempt(RenderJob(html="<p>x</p>"))

    assert attempt.succeeded
    kwargs = chromium.browsers[0].page.pdf_kwargs
    assert kwargs["format"] == "A4"
    assert kwargs["print_background"] is True
    assert kwargs["margin"]["top"] == "25mm"
    assert chromium.launch_kwargs["headless"] is True


@pytest.mark.asyncio
async def test_render_pdf_uses_given_pipeline():
    log: List[str] = []
    pipeline = PdfRenderPipeline([LoggingTextOnlyEngine(log)])

    pdf = await render_pdf("<h1>Title</h1><p>Body</p>", pipeline=pipeline)

    assert pdf.startswith(b"%PDF")
    assert log == ["text-only"]


def test_pipeline_needs_an_engine():
    with pytest.raises(ValueError):
        PdfRenderPipeline([])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "error, expected",
    [
        (RuntimeError(NATIVE_ERROR), True),
        (RuntimeError("error while loading shared libraries: libgbm.so.1"), True),
        (RuntimeError("Executable doesn't exist at /ms-playwright/chromium"), True),
        (ImportError("No module named 'playwright'"), True),
        (RuntimeError("Target closed"), False),
        (None, False),
    ],
)
def test_is_missing_native_dependency(error, expected):
    assert is_missing_native_dependency(error) is expected


def test_text_only_flowables_skip_contents_and_clean_markup():
    source = (
        "# Report Title\n\nTable of Contents\n1. Intro\n---\n"
        "## Background\nSome **bold** text\ncontinues here.\n\n2. Methods\nDone."
    )
    flowables = TextOnlyEngine().flowables(source)
    texts = [f.getPlainText() for f in flowables]

    assert texts == [
        "Report Title",
        "Background",
        "Some bold text continues here.",
        "2. Methods",
        "Done.",
    ]


def test_html_to_text_drops_head_and_tags():
    text = html_to_text(
        "<html><head><style>p { color: red; }</style></head>"
        "<body><h1>Title</h1><p>a &amp; b</p></body></html>"
    )

    assert "color" not in text
    assert "Title" in text
    assert "a & b" in text


@pytest.mark.asyncio
async def test_text_only_layout_runs_off_the_event_loop():
    threads = []

    class RecordingEngine(TextOnlyEngine):
        def build(self, source: str) -> bytes:
            threads.append(threading.get_ident())
            return super().build(source)

    pdf = await RecordingEngine().render(RenderJob(html="<p>Body</p>", source="Body text."))

    assert pdf.startswith(b"%PDF")
    assert threads and threads[0] != threading.get_ident()
