"""
Turn markdown-like content into a downloadable PDF or DOCX file.

Both formats start from the same block sequence, so headings, bold
placement and alignment agree between them.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from researchaid.services.document_builder import classify_and_build
from researchaid.services.docx_renderer import render_document_model, serialize_document_model
from researchaid.services.html_renderer import render_html
from researchaid.services.pdf_renderer import PdfRenderPipeline, render_pdf

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_FORMATS = ("pdf", "docx")


@dataclasses.dataclass(frozen=True)
class DownloadFile:
    content: bytes
    media_type: str
    filename: str


async def build_download(
    content: str,
    fmt: str,
    basename: str = "formatted_document",
    pipeline: Optional[PdfRenderPipeline] = None,
) -> DownloadFile:
    """
    Render ``content`` as ``fmt`` ("pdf" or "docx").

    Raises:
        ValueError:            Unsupported format.
        RenderUnavailable:     No PDF engine could render the page.
        SerializationFailure:  The DOCX writer failed.
    """
    fmt = (fmt or "").lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError('Invalid format. Use "pdf" or "docx"')

    blocks = classify_and_build(content)
    logger.info("build_download: %s, %d blocks", fmt, len(blocks))

    if fmt == "pdf":
        pdf = await render_pdf(render_html(blocks), source=content, pipeline=pipeline)
        return DownloadFile(pdf, PDF_MEDIA_TYPE, f"{basename}.pdf")

    data = serialize_document_model(render_document_model(blocks))
    return DownloadFile(data, DOCX_MEDIA_TYPE, f"{basename}.docx")
