"""
HTML → PDF rendering.

Engines are tried in order through ``PdfRenderPipeline``:

1. ``ChromiumEngine``        – Playwright with its bundled Chromium.
2. ``InstalledBrowserEngine`` – Playwright driving a system Chrome (channel or
                               explicit executable).  Only reached when the
                               bundled browser cannot start for lack of
                               native libraries.
3. ``TextOnlyEngine``        – reportlab, drawing headings and paragraphs
                               straight from the markdown source.

Each engine reports an ``EngineAttempt``; the pipeline decides from the
failed engine's ``falls_through`` whether to go on or give up.

Public API
----------
render_pdf(html, source=None, pipeline=None) -> bytes   (async)
default_pipeline()                           -> PdfRenderPipeline
"""
from __future__ import annotations

import asyncio
import dataclasses
import html as html_lib
import logging
import re
import time
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib.enums import TA_JUSTIFY, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate

from researchaid.config import settings
from researchaid.exceptions import RenderUnavailable

logger = logging.getLogger(__name__)

PAGE_MARGIN = "25mm"

# Substrings of launch errors meaning the browser binary or its shared
# libraries are missing from the host
NATIVE_DEPENDENCY_SIGNATURES = (
    "libnss3",
    "shared libraries",
    "cannot open shared object file",
    "executable doesn't exist",
    "missing dependencies",
)


def is_missing_native_dependency(error: Optional[BaseException]) -> bool:
    if error is None:
        return False
    if isinstance(error, ImportError):
        return True
    message = str(error).lower()
    return any(sig in message for sig in NATIVE_DEPENDENCY_SIGNATURES)


# ---------------------------------------------------------------------------
# Attempt bookkeeping
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class RenderJob:
    html: str
    source: Optional[str] = None


@dataclasses.dataclass
class EngineAttempt:
    engine: str
    pdf: Optional[bytes] = None
    error: Optional[Exception] = None
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.pdf is not None


class PdfEngine(ABC):
    """One way of producing PDF bytes."""

    name: str = "engine"

    async def attempt(self, job: RenderJob) -> EngineAttempt:
        start = time.time()
        try:
            pdf = await self.render(job)
        except Exception as e:
            return EngineAttempt(
                engine=self.name, error=e, elapsed_ms=(time.time() - start) * 1000
            )
        return EngineAttempt(engine=self.name, pdf=pdf, elapsed_ms=(time.time() - start) * 1000)

    @abstractmethod
    async def render(self, job: RenderJob) -> bytes:
        ...

    def falls_through(self, error: Optional[Exception]) -> bool:
        """Whether the next engine should be tried after ``error``."""
        return True


# ---------------------------------------------------------------------------
# Browser engines
# ---------------------------------------------------------------------------

def _async_playwright():
    from playwright.async_api import async_playwright

    return async_playwright()


class BrowserEngine(PdfEngine):
    """Print a page to PDF through a Playwright-driven Chromium."""

    def __init__(
        self,
        launch_options: Optional[Dict[str, Any]] = None,
        playwright_factory: Optional[Callable[[], Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self.launch_options = dict(launch_options or {})
        self.playwright_factory = playwright_factory or _async_playwright
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.PDF_RENDER_TIMEOUT

    async def render(self, job: RenderJob) -> bytes:
        async with self.playwright_factory() as pw:
            browser = None
            try:
                browser = await pw.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
                    **self.launch_options,
                )
                page = await browser.new_page()
                await page.set_content(job.html, wait_until="load", timeout=self.timeout_ms)
                return await page.pdf(
                    format="A4",
                    print_background=True,
                    margin={
                        "top": PAGE_MARGIN,
                        "right": PAGE_MARGIN,
                        "bottom": PAGE_MARGIN,
                        "left": PAGE_MARGIN,
                    },
                )
            finally:
                if browser is not None:
                    await browser.close()


class ChromiumEngine(BrowserEngine):
    name = "chromium"

    def falls_through(self, error: Optional[Exception]) -> bool:
        return is_missing_native_dependency(error)


class InstalledBrowserEngine(BrowserEngine):
    name = "installed-browser"

    def __init__(
        self,
        channel: Optional[str] = None,
        executable_path: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        executable_path = executable_path if executable_path is not None else settings.PDF_BROWSER_EXECUTABLE
        channel = channel if channel is not None else settings.PDF_SECONDARY_CHANNEL
        if executable_path:
            options = {"executable_path": executable_path}
        else:
            options = {"channel": channel}
        super().__init__(launch_options=options, **kwargs)


# ---------------------------------------------------------------------------
# Text-only engine
# ---------------------------------------------------------------------------

_MD_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_NUMBERED_HEADING_RE = re.compile(r"^(\d{1,2}(?:\.\d{1,2})*)\.?\s+(.{1,100})$")
_TOC_RE = re.compile(r"^#*\s*table of contents.*?^-{2,}\s*$", re.I | re.M | re.S)
_RULE_RE = re.compile(r"^-{2,}$")
_BLOCK_TAG_RE = re.compile(r"</?(?:p|div|h[1-6]|li|br|pre|tr)\b[^>]*>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")


def _clean_inline(text: str) -> str:
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    return text


def html_to_text(markup: str) -> str:
    """Drop tags, keeping block boundaries as line breaks."""
    markup = re.sub(r"<(style|script|head)\b.*?</\1>", "", markup, flags=re.I | re.S)
    markup = _BLOCK_TAG_RE.sub("\n", markup)
    return html_lib.unescape(_TAG_RE.sub("", markup))


class TextOnlyEngine(PdfEngine):
    """
    Lowest-fidelity fallback: headings and justified paragraphs only, no
    browser involved.
    """

    name = "text-only"
    heading_sizes = {1: 18, 2: 16, 3: 14}

    def __init__(self) -> None:
        base = getSampleStyleSheet()
        self.body_style = ParagraphStyle(
            name="FallbackBody",
            parent=base["Normal"],
            fontName="Times-Roman",
            fontSize=12,
            leading=16,
            alignment=TA_JUSTIFY,
            spaceAfter=6,
        )
        self.heading_styles = {
            level: ParagraphStyle(
                name=f"FallbackHeading{level}",
                parent=base["Normal"],
                fontName="Times-Bold",
                fontSize=size,
                leading=size + 4,
                alignment=TA_LEFT,
                spaceBefore=6,
                spaceAfter=6,
            )
            for level, size in self.heading_sizes.items()
        }

    def flowables(self, source: str) -> List[Paragraph]:
        source = _TOC_RE.sub("", source)
        story: List[Paragraph] = []
        pending: List[str] = []

        def flush() -> None:
            text = " ".join(pending).strip()
            pending.clear()
            if text:
                story.append(Paragraph(escape(text), self.body_style))

        for raw in source.split("\n"):
            line = raw.strip()
            if not line or _RULE_RE.match(line):
                flush()
                continue
            md = _MD_HEADING_RE.match(line)
            numbered = None if md else _NUMBERED_HEADING_RE.match(line)
            if md or numbered:
                flush()
                if md:
                    level, text = len(md.group(1)), md.group(2)
                else:
                    level, text = 1, line
                style = self.heading_styles[min(level, 3)]
                story.append(Paragraph(escape(_clean_inline(text).strip()), style))
                continue
            pending.append(_clean_inline(line))
        flush()
        return story

    def build(self, source: str) -> bytes:
        """Lay out ``source`` with reportlab and return the PDF bytes."""
        with BytesIO() as buffer:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                leftMargin=25 * mm,
                rightMargin=25 * mm,
                topMargin=25 * mm,
                bottomMargin=25 * mm,
            )
            story = self.flowables(source)
            if not story:
                story = [Paragraph("", self.body_style)]
            doc.build(story)
            return buffer.getvalue()

    async def render(self, job: RenderJob) -> bytes:
        source = job.source if job.source is not None else html_to_text(job.html)
        # reportlab layout is CPU-bound
        return await asyncio.to_thread(self.build, source)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class PdfRenderPipeline:
    """Try each engine in order until one returns bytes."""

    def __init__(self, engines: Sequence[PdfEngine]) -> None:
        if not engines:
            raise ValueError("PdfRenderPipeline needs at least one engine")
        self.engines = list(engines)

    @property
    def engine_names(self) -> List[str]:
        return [engine.name for engine in self.engines]

    async def render(self, html: str, source: Optional[str] = None) -> bytes:
        job = RenderJob(html=html, source=source)
        attempts: List[EngineAttempt] = []

        for engine in self.engines:
            attempt = await engine.attempt(job)
            attempts.append(attempt)
            if attempt.succeeded:
                logger.info(
                    "PDF rendered with %s (%d bytes, %.0fms)",
                    engine.name, len(attempt.pdf), attempt.elapsed_ms,
                )
                return attempt.pdf

            logger.warning("PDF engine %s failed: %s", engine.name, attempt.error)
            if not engine.falls_through(attempt.error):
                raise RenderUnavailable(
                    f"PDF generation failed: {attempt.error}", attempts
                ) from attempt.error

        raise RenderUnavailable(
            "PDF generation failed: every engine failed "
            f"({', '.join(a.engine for a in attempts)})",
            attempts,
        ) from attempts[-1].error


def default_pipeline() -> PdfRenderPipeline:
    return PdfRenderPipeline([
        ChromiumEngine(),
        InstalledBrowserEngine(),
        TextOnlyEngine(),
    ])


async def render_pdf(
    html: str,
    source: Optional[str] = None,
    pipeline: Optional[PdfRenderPipeline] = None,
) -> bytes:
    """Render a standalone HTML page to PDF bytes."""
    return await (pipeline or default_pipeline()).render(html, source=source)
