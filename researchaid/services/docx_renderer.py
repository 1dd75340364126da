"""
Word document renderer.

Builds a python-docx ``Document`` from styled blocks.  Like the HTML
renderer it makes no layout decisions of its own: sizes, weights, alignment
and spacing are read from ``block.style`` so a PDF and a DOCX produced from
the same blocks agree.

Public API
----------
render_document_model(blocks) -> docx.Document
serialize_document_model(doc)  -> bytes
"""
from __future__ import annotations

import logging
from io import BytesIO
from typing import Callable, Dict, Optional, Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Mm, Pt, RGBColor

from researchaid.exceptions import SerializationFailure
from researchaid.models.blocks import (
    BODY_FONT,
    AbstractBlock,
    Alignment,
    BlockStyle,
    CodeBlock,
    FlowchartBlock,
    HeadingBlock,
    ListItemBlock,
    ParagraphBlock,
    ReferenceBlock,
    StructuredBlock,
    TitleBlock,
)
from researchaid.services.document_builder import (
    ABSTRACT_LABEL_STYLE,
    BODY_FONT_SIZE,
    style_for,
)

logger = logging.getLogger(__name__)

PAGE_WIDTH = Mm(210)
PAGE_HEIGHT = Mm(297)
PAGE_MARGIN = Mm(25)

_BLACK = RGBColor(0, 0, 0)
_FLOW_ARROW = "↓"

_ALIGNMENTS = {
    Alignment.LEFT: WD_ALIGN_PARAGRAPH.LEFT,
    Alignment.CENTER: WD_ALIGN_PARAGRAPH.CENTER,
    Alignment.JUSTIFY: WD_ALIGN_PARAGRAPH.JUSTIFY,
}

# Children of <w:pPr> that must follow <w:shd> in schema order
_AFTER_SHADING = (
    "w:tabs", "w:suppressAutoHyphens", "w:spacing", "w:ind", "w:jc",
    "w:outlineLvl", "w:rPr", "w:sectPr",
)


# ---------------------------------------------------------------------------
# Paragraph / run helpers
# ---------------------------------------------------------------------------

def _set_font(run, family: str) -> None:
    run.font.name = family
    # East-Asian slot as well, otherwise Word substitutes its own default
    run._element.rPr.rFonts.set(qn("w:eastAsia"), family)


def _format_paragraph(paragraph, style: BlockStyle) -> None:
    pf = paragraph.paragraph_format
    paragraph.alignment = _ALIGNMENTS[style.alignment]
    pf.space_before = Pt(style.space_before)
    pf.space_after = Pt(style.space_after)
    pf.line_spacing = style.line_height
    if style.indent_left:
        pf.left_indent = Pt(style.indent_left)
    if style.hanging_indent:
        pf.first_line_indent = Pt(-style.hanging_indent)
    if style.background:
        _shade(paragraph, style.background)


def _shade(paragraph, fill: str) -> None:
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    paragraph._p.get_or_add_pPr().insert_element_before(shd, *_AFTER_SHADING)


def _add_run(
    paragraph,
    text: str,
    style: BlockStyle,
    bold: Optional[bool] = None,
    italic: bool = False,
):
    run = paragraph.add_run(text)
    run.bold = style.bold if bold is None else bold
    run.italic = italic
    run.font.size = Pt(style.font_size)
    run.font.color.rgb = _BLACK
    _set_font(run, style.font_family)
    return run


def _add_lines(paragraph, lines: Sequence[str], style: BlockStyle) -> None:
    for i, line in enumerate(lines):
        run = _add_run(paragraph, line, style)
        if i < len(lines) - 1:
            run.add_break()


# ---------------------------------------------------------------------------
# Per-block renderers
# ---------------------------------------------------------------------------

def _title(doc, block: TitleBlock, style: BlockStyle) -> None:
    p = doc.add_paragraph()
    _format_paragraph(p, style)
    _add_run(p, block.text, style)


def _heading_paragraph(doc, text: str, style: BlockStyle, level: int) -> None:
    p = doc.add_paragraph(style=f"Heading {max(1, min(level, 4))}")
    _format_paragraph(p, style)
    _add_run(p, text, style)


def _abstract(doc, block: AbstractBlock, style: BlockStyle) -> None:
    label_style = block.label_style or ABSTRACT_LABEL_STYLE
    _heading_paragraph(doc, block.label, label_style, label_style.heading_level or 2)
    if block.text:
        p = doc.add_paragraph()
        _format_paragraph(p, style)
        _add_run(p, block.text, style)


def _heading(doc, block: HeadingBlock, style: BlockStyle) -> None:
    _heading_paragraph(doc, block.display_text, style, style.heading_level or block.level)


def _paragraph(doc, block: ParagraphBlock, style: BlockStyle) -> None:
    p = doc.add_paragraph()
    _format_paragraph(p, style)
    _add_run(p, block.text, style)


def _list_item(doc, block: ListItemBlock, style: BlockStyle) -> None:
    if block.marker == "•":
        p = doc.add_paragraph(style="List Bullet")
    else:
        p = doc.add_paragraph()
        if block.marker:
            _add_run(p, f"{block.marker} ", style)
    _format_paragraph(p, style)
    if block.label:
        _add_run(p, f"{block.label}:", style, bold=True)
        if block.text:
            _add_run(p, " ", style)
    if block.text:
        _add_run(p, block.text, style)


def _reference(doc, block: ReferenceBlock, style: BlockStyle) -> None:
    p = doc.add_paragraph()
    _format_paragraph(p, style)
    before, title, after = block.split_on_title()
    for text, italic in ((before, False), (title, True), (after, False)):
        if text:
            _add_run(p, text, style, bold=False, italic=italic)


def _flowchart(doc, block: FlowchartBlock, style: BlockStyle) -> None:
    lines = []
    for i, node in enumerate(block.nodes):
        if i:
            lines.append(_FLOW_ARROW)
        lines.append(f"[{node}]")
    p = doc.add_paragraph()
    _format_paragraph(p, style)
    _add_lines(p, lines, style)


def _code(doc, block: CodeBlock, style: BlockStyle) -> None:
    p = doc.add_paragraph()
    _format_paragraph(p, style)
    _add_lines(p, block.text.split("\n"), style)


_RENDERERS: Dict[type, Callable] = {
    TitleBlock: _title,
    AbstractBlock: _abstract,
    HeadingBlock: _heading,
    ParagraphBlock: _paragraph,
    ListItemBlock: _list_item,
    ReferenceBlock: _reference,
    FlowchartBlock: _flowchart,
    CodeBlock: _code,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _new_document():
    doc = Document()

    section = doc.sections[0]
    section.page_width = PAGE_WIDTH
    section.page_height = PAGE_HEIGHT
    section.top_margin = section.bottom_margin = PAGE_MARGIN
    section.left_margin = section.right_margin = PAGE_MARGIN

    normal = doc.styles["Normal"]
    normal.font.name = BODY_FONT
    normal.font.size = Pt(BODY_FONT_SIZE)
    normal.element.rPr.rFonts.set(qn("w:eastAsia"), BODY_FONT)
    return doc


def render_document_model(blocks: Sequence[StructuredBlock]):
    """Render blocks into a new A4 ``docx.Document``."""
    doc = _new_document()
    for block in blocks:
        style = block.style or style_for(block)
        _RENDERERS[type(block)](doc, block, style)
    return doc


def serialize_document_model(doc) -> bytes:
    """Write a document to ``.docx`` bytes."""
    buffer = BytesIO()
    try:
        doc.save(buffer)
    except Exception as e:
        logger.error("DOCX serialization failed: %s", e)
        raise SerializationFailure(f"Could not write DOCX: {e}") from e
    return buffer.getvalue()
