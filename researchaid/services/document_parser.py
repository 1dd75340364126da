"""
Text extraction for uploaded PDF and DOCX files, with OCR for image-only
PDF pages.

Returns a ParsedDocument carrying the plain text (line structure kept, so
the section classifier can work on it), a simple HTML rendering, and
metadata (title, author, page_count, word_count, reading_time_minutes,
detected_language, sections, file_type).

Public API
----------
DocumentParser.extract_text(file_path, mime_type) -> ParsedDocument
"""
from __future__ import annotations

import html
import io
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import fitz  # PyMuPDF
import pytesseract
from docx import Document as DocxDocument
from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException
from PIL import Image

from researchaid.config import settings
from researchaid.exceptions import ParseFailure
from researchaid.utils.helpers import normalize_text, reading_time_minutes, word_count

logger = logging.getLogger(__name__)

# Deterministic language guesses
DetectorFactory.seed = 0

UNTITLED = "Untitled Document"
TITLE_MAX_CHARS = 200

_PDF_MIME_TYPES = frozenset({"application/pdf"})
_WORD_MIME_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
})


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        text:      Extracted text, one source line per line, headings on
                   their own lines.
        html:      Minimal HTML (<hN> headings, <p> paragraphs).
        metadata:  Dict with title, author, page_count, word_count,
                   reading_time_minutes, detected_language, sections and
                   file_type.
    """

    text: str
    html: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Line:
    text: str
    heading_level: int = 0  # 0 = body text


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses PDF and DOCX documents into ParsedDocument objects."""

    def __init__(self) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    async def extract_text(self, file_path: str, mime_type: Optional[str] = None) -> ParsedDocument:
        """
        Extract text, HTML and metadata from a document on disk.

        Args:
            file_path: Path to the file.
            mime_type: MIME type reported by the upload; the file extension
                       is used when it is missing or generic.

        Raises:
            ParseFailure: Unsupported, encrypted or unreadable file.
        """
        kind = _file_kind(file_path, mime_type)
        if kind == "pdf":
            lines, meta = await self._parse_pdf(file_path)
        elif kind == "docx":
            lines, meta = await self._parse_docx(file_path)
        else:
            raise ParseFailure(f"Unsupported file type: {mime_type or os.path.splitext(file_path)[1]!r}")

        text = normalize_text("\n".join(
            f"\n{'#' * line.heading_level} {line.text}\n" if line.heading_level else line.text
            for line in lines
        ))
        sections = [
            {"level": line.heading_level, "title": line.text}
            for line in lines
            if line.heading_level
        ]

        words = word_count(text)
        metadata: Dict[str, Any] = {
            "title": meta.get("title") or _title_from_lines(lines),
            "author": meta.get("author") or "",
            "page_count": meta.get("page_count"),
            "word_count": words,
            "reading_time_minutes": reading_time_minutes(text),
            "detected_language": _detect_language(text[:3000]),
            "sections": sections,
            "file_type": kind,
        }
        logger.info(
            "extract_text: %s → %d words, %d sections",
            os.path.basename(file_path), words, len(sections),
        )
        return ParsedDocument(text=text, html=_lines_to_html(lines), metadata=metadata)

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def _parse_pdf(self, file_path: str) -> Tuple[List[_Line], Dict[str, Any]]:
        """Read a PDF with PyMuPDF, OCR-ing pages that carry no text layer."""
        try:
            doc = fitz.open(file_path)
        except Exception as exc:
            raise ParseFailure(f"Cannot open PDF file: {exc}") from exc

        if doc.needs_pass:
            doc.close()
            raise ParseFailure("PDF is password-protected. Please provide an unlocked copy.")

        try:
            raw_meta = doc.metadata or {}
            page_count = doc.page_count

            # ---- Pass 1: modal span size is the body font ----
            font_sizes: List[float] = []
            for page in doc:
                for block in page.get_text("dict")["blocks"]:
                    if block.get("type") != 0:
                        continue
                    for line in block.get("lines", []):
                        for span in line.get("spans", []):
                            sz = span.get("size", 0.0)
                            if sz > 0:
                                font_sizes.append(sz)

            body_font_size = _modal_font_size(font_sizes) if font_sizes else 11.0
            heading_size_threshold = body_font_size * 1.15

            # ---- Pass 2: lines in reading order ----
            lines: List[_Line] = []
            for page_num, page in enumerate(doc, start=1):
                page_height = page.rect.height
                # Running header and footer bands
                header_cutoff = page_height * 0.08
                footer_cutoff = page_height * 0.92

                items: List[Tuple[float, float, _Line]] = []
                for block in page.get_text("dict")["blocks"]:
                    if block.get("type") != 0:
                        continue
                    y0, x0 = block["bbox"][1], block["bbox"][0]
                    if y0 < header_cutoff or y0 > footer_cutoff:
                        continue

                    for line in block.get("lines", []):
                        max_sz = 0.0
                        is_bold_line = False
                        parts: List[str] = []
                        for span in line.get("spans", []):
                            raw_txt = span.get("text", "")
                            if not raw_txt.strip():
                                continue
                            max_sz = max(max_sz, span.get("size", 0.0))
                            if span.get("flags", 0) & 16:  # bold
                                is_bold_line = True
                            parts.append(raw_txt)

                        line_text = " ".join(parts).strip()
                        # Isolated page numbers
                        if not line_text or re.match(r"^\d{1,4}$", line_text):
                            continue

                        is_heading = max_sz >= heading_size_threshold or (
                            is_bold_line
                            and max_sz >= body_font_size
                            and len(line_text.split()) <= 15
                        )
                        level = _estimate_heading_level(max_sz, body_font_size) if is_heading else 0
                        items.append((y0, x0, _Line(line_text, level)))

                if not items:
                    ocr = await self._ocr_page(page)
                    if ocr.strip():
                        lines.extend(_Line(t) for t in ocr.splitlines())
                    else:
                        logger.debug("_parse_pdf: page %d has no text", page_num)
                    continue

                items.sort(key=lambda item: (item[0], item[1]))
                lines.extend(item[2] for item in items)
                lines.append(_Line(""))
        except Exception as exc:
            raise ParseFailure(f"Cannot read PDF file: {exc}") from exc
        finally:
            doc.close()

        meta = {
            "title": (raw_meta.get("title") or "").strip(),
            "author": (raw_meta.get("author") or "").strip(),
            "page_count": page_count,
        }
        return lines, meta

    async def _ocr_page(self, page: fitz.Page) -> str:
        """Render an entire page at 2× scale and run Tesseract OCR."""
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            return pytesseract.image_to_string(img)
        except Exception as exc:
            logger.warning("Full-page OCR failed on page %d: %s", page.number + 1, exc)
            return ""

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def _parse_docx(self, file_path: str) -> Tuple[List[_Line], Dict[str, Any]]:
        """Read a DOCX file keeping heading levels and table rows."""
        try:
            doc = DocxDocument(file_path)
        except Exception as exc:
            raise ParseFailure(f"Cannot open DOCX file: {exc}") from exc

        heading_styles: Dict[str, int] = {
            "title": 1,
            "heading 1": 1,
            "subtitle": 2,
            "heading 2": 2,
            "heading 3": 3,
            "heading 4": 4,
        }

        lines: List[_Line] = []
        for para in doc.paragraphs:
            text = para.text.strip()
            if not text:
                lines.append(_Line(""))
                continue
            style_name = para.style.name.lower() if para.style is not None and para.style.name else ""
            level = heading_styles.get(style_name, 0)
            if not level and style_name.startswith("heading"):
                level = 4
            if not level and _is_implicit_heading(para):
                level = 3
            lines.append(_Line(text, level))

        for table in doc.tables:
            lines.append(_Line(""))
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    lines.append(_Line(" | ".join(c for c in cells if c)))

        core = doc.core_properties
        meta = {
            "title": (core.title or "").strip(),
            "author": (core.author or "").strip(),
            # python-docx cannot report a rendered page count
            "page_count": None,
        }
        return lines, meta


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _file_kind(file_path: str, mime_type: Optional[str]) -> Optional[str]:
    mime = (mime_type or "").lower()
    ext = os.path.splitext(file_path)[1].lower()
    if mime in _PDF_MIME_TYPES or ext == ".pdf":
        return "pdf"
    if mime in _WORD_MIME_TYPES or "wordprocessingml" in mime or ext in (".docx", ".doc"):
        return "docx"
    return None


def _modal_font_size(sizes: List[float]) -> float:
    """Return the most frequently occurring font size (proxy for body text)."""
    freq: Dict[float, int] = {}
    for s in sizes:
        key = round(s, 1)
        freq[key] = freq.get(key, 0) + 1
    return max(freq, key=lambda k: freq[k])


def _estimate_heading_level(span_size: float, body_size: float) -> int:
    ratio = span_size / body_size if body_size > 0 else 1.0
    if ratio >= 1.5:
        return 1
    if ratio >= 1.25:
        return 2
    return 3


def _is_implicit_heading(para) -> bool:
    """Short (≤ 15 words) paragraph whose every non-blank run is bold."""
    text = para.text.strip()
    if not text or len(text.split()) > 15:
        return False
    runs_with_text = [r for r in para.runs if r.text.strip()]
    return bool(runs_with_text) and all(r.bold for r in runs_with_text)


def _title_from_lines(lines: List[_Line]) -> str:
    for line in lines:
        text = line.text.strip()
        if text:
            return text if len(text) < TITLE_MAX_CHARS else UNTITLED
    return UNTITLED


def _detect_language(sample: str) -> str:
    """ISO 639-1 code of a text sample, or 'unknown' when too short to tell."""
    if len(sample.split()) < 20:
        return "unknown"
    try:
        return detect(sample)
    except LangDetectException:
        return "unknown"


def _lines_to_html(lines: List[_Line]) -> str:
    parts: List[str] = []
    paragraph: List[str] = []

    def flush() -> None:
        if paragraph:
            parts.append(f"<p>{html.escape(' '.join(paragraph))}</p>")
            paragraph.clear()

    for line in lines:
        if line.heading_level:
            flush()
            level = line.heading_level
            parts.append(f"<h{level}>{html.escape(line.text)}</h{level}>")
        elif not line.text.strip():
            flush()
        else:
            paragraph.append(line.text.strip())
    flush()
    return f"<div>{''.join(parts)}</div>"
