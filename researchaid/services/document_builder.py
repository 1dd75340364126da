"""
Structured document builder.

Groups the classifier's line records into typed blocks and attaches the
layout each block is drawn with.  The style table below is the only place
font sizes, weights and spacing are decided; the HTML and DOCX renderers
read ``block.style`` and map it mechanically.

Public API
----------
build(lines, kind=None)            -> List[StructuredBlock]
classify_and_build(text, kind=None) -> List[StructuredBlock]
style_for(block)                   -> BlockStyle
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from researchaid.models.blocks import (
    MONO_FONT,
    AbstractBlock,
    Alignment,
    BlockStyle,
    ClassifiedLine,
    CodeBlock,
    DocumentKind,
    FlowchartBlock,
    HeadingBlock,
    LineRole,
    ListItemBlock,
    ParagraphBlock,
    ReferenceBlock,
    StructuredBlock,
    TitleBlock,
)
from researchaid.services.section_classifier import (
    KIND_TITLES,
    classify,
    detect_kind,
    parse_reference,
)

logger = logging.getLogger(__name__)

_LEADING_MARKER_RE = re.compile(r"^\s*(?:[*\-+•]\s|\d{1,3}[.)]\s|#)")


# ---------------------------------------------------------------------------
# Style table (points)
# ---------------------------------------------------------------------------

HEADING_FONT_SIZES: Dict[int, float] = {1: 26.0, 2: 18.0, 3: 16.0, 4: 14.0}
# level → (space before, space after)
HEADING_SPACING: Dict[int, Tuple[float, float]] = {
    1: (26.0, 15.0),
    2: (21.0, 13.5),
    3: (15.0, 9.0),
    4: (12.0, 7.5),
}
# Introduction, Conclusion and References open with extra room
MAJOR_SECTION_SPACE_BEFORE = 30.0
MAJOR_SECTION_TEXTS = frozenset({"introduction", "conclusion", "references"})

BODY_FONT_SIZE = 12.0

TITLE_STYLE = BlockStyle(
    font_size=28.0, bold=True, alignment=Alignment.CENTER, space_after=22.5,
)
ABSTRACT_LABEL_STYLE = BlockStyle(
    font_size=18.0, bold=True, space_before=22.5, space_after=15.0, heading_level=2,
)
PARAGRAPH_STYLE = BlockStyle(
    font_size=BODY_FONT_SIZE, alignment=Alignment.JUSTIFY, space_after=9.0,
)
LIST_ITEM_STYLE = BlockStyle(
    font_size=BODY_FONT_SIZE, alignment=Alignment.JUSTIFY, space_after=6.0,
    indent_left=27.0, hanging_indent=13.5,
)
REFERENCE_STYLE = BlockStyle(
    font_size=BODY_FONT_SIZE, space_after=7.5, indent_left=20.0, hanging_indent=20.0,
)
FLOWCHART_STYLE = BlockStyle(
    font_size=11.0, alignment=Alignment.CENTER, space_before=6.0, space_after=9.0, font_family=MONO_FONT,
    line_height=1.3,
)
CODE_STYLE = BlockStyle(
    font_size=10.0, space_before=6.0, space_after=9.0, font_family=MONO_FONT,
    line_height=1.3, background="F5F5F5",
)


def heading_style(level: int, text: str = "") -> BlockStyle:
    level = max(1, min(level, 4))
    before, after = HEADING_SPACING[level]
    if level == 1 and text.lower() in MAJOR_SECTION_TEXTS:
        before = MAJOR_SECTION_SPACE_BEFORE
    return BlockStyle(
        font_size=HEADING_FONT_SIZES[level],
        bold=True,
        space_before=before,
        space_after=after,
        heading_level=level,
    )


def style_for(block: StructuredBlock) -> BlockStyle:
    """Look up the style a block is drawn with."""
    if isinstance(block, HeadingBlock):
        return heading_style(block.level, block.text)
    return {
        TitleBlock: TITLE_STYLE,
        AbstractBlock: PARAGRAPH_STYLE,
        ParagraphBlock: PARAGRAPH_STYLE,
        ListItemBlock: LIST_ITEM_STYLE,
        ReferenceBlock: REFERENCE_STYLE,
        FlowchartBlock: FLOWCHART_STYLE,
        CodeBlock: CODE_STYLE,
    }[type(block)]


def _with_style(block: StructuredBlock) -> StructuredBlock:
    if isinstance(block, AbstractBlock):
        return dataclasses.replace(
            block, style=style_for(block), label_style=ABSTRACT_LABEL_STYLE
        )
    return dataclasses.replace(block, style=style_for(block))


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def _has_leading_marker(raw: str) -> bool:
    return bool(_LEADING_MARKER_RE.match(raw))


class _Assembler:
    """Accumulates runs of lines that merge into a single block."""

    def __init__(self) -> None:
        self.blocks: List[StructuredBlock] = []
        self._kind: Optional[LineRole] = None
        self._parts: List[str] = []
        self._nodes: List[str] = []
        self._language = ""

    # -- pending run -----------------------------------------------------

    def _start(self, kind: LineRole, parts: Optional[List[str]] = None) -> None:
        self.flush()
        self._kind = kind
        self._parts = list(parts or [])

    def flush(self) -> None:
        kind, parts = self._kind, self._parts
        self._kind, self._parts = None, []
        if kind is None:
            return

        if kind is LineRole.PARAGRAPH:
            text = " ".join(" ".join(parts).split())
            if text:
                self.blocks.append(ParagraphBlock(text=text))
        elif kind is LineRole.REFERENCE:
            raw = " ".join(p.strip() for p in parts)
            text, span, url = parse_reference(raw)
            self.blocks.append(ReferenceBlock(raw=raw, text=text, title_span=span, url=url))
        elif kind is LineRole.FLOWCHART:
            nodes, self._nodes = tuple(self._nodes), []
            if nodes:
                self.blocks.append(FlowchartBlock(nodes=nodes))
        elif kind is LineRole.CODE:
            self.blocks.append(CodeBlock(text="\n".join(parts).strip("\n"),
                                         language=self._language))
            self._language = ""
        elif kind is LineRole.ABSTRACT:
            self.blocks.append(AbstractBlock(text=" ".join(" ".join(parts).split())))

    # -- feeding -----------------------------------------------------------

    def feed(self, line: ClassifiedLine) -> None:
        role = line.role

        if role is LineRole.PARAGRAPH:
            self._feed_paragraph(line)
        elif role is LineRole.REFERENCE:
            self._start(LineRole.REFERENCE, [line.raw])
        elif role is LineRole.FLOWCHART:
            if self._kind is not LineRole.FLOWCHART:
                self._start(LineRole.FLOWCHART)
            self._nodes.extend(line.nodes)
        elif role is LineRole.CODE:
            if line.marker or self._kind is not LineRole.CODE:
                self._start(LineRole.CODE)
                self._language = line.label or ""
                if not line.marker:
                    self._parts.append(line.text)
            else:
                self._parts.append(line.text)
        elif role is LineRole.ABSTRACT:
            self._start(LineRole.ABSTRACT, [line.text] if line.text else [])
        elif role is LineRole.TITLE:
            self.flush()
            if self.blocks:
                # A title is always first; a late one reads as a top heading
                self.blocks.append(HeadingBlock(number=None, level=1, text=line.text))
            else:
                self.blocks.append(TitleBlock(text=line.text))
        elif role is LineRole.HEADING:
            self.flush()
            self.blocks.append(HeadingBlock(
                number=line.number,
                level=line.level or 1,
                text=line.text,
            ))
        elif role is LineRole.LIST_ITEM:
            self.flush()
            self.blocks.append(ListItemBlock(
                ordered=line.ordered,
                label=line.label,
                text=line.text,
                marker=line.marker,
            ))

    def _feed_paragraph(self, line: ClassifiedLine) -> None:
        kind = self._kind
        if (
            kind is LineRole.REFERENCE
            and not line.after_blank
            and not _has_leading_marker(line.raw)
        ):
            # Soft-wrapped continuation of the previous reference
            self._parts.append(line.raw)
            return
        if kind is LineRole.ABSTRACT and (not self._parts or not line.after_blank):
            self._parts.append(line.text)
            return
        if kind is LineRole.PARAGRAPH and not line.after_blank:
            self._parts.append(line.text)
            return
        self._start(LineRole.PARAGRAPH, [line.text])


def _strip_repeated_prefixes(blocks: List[StructuredBlock]) -> List[StructuredBlock]:
    """Drop a stray chapter number ("6.") from list items under heading "6.x"."""
    result: List[StructuredBlock] = []
    enclosing: Optional[str] = None
    for block in blocks:
        if isinstance(block, HeadingBlock):
            enclosing = block.number
        elif (
            isinstance(block, ListItemBlock)
            and block.marker
            and enclosing
            and "." in enclosing
            and block.marker == f"{enclosing.split('.')[0]}."
        ):
            block = dataclasses.replace(block, marker=None, ordered=False)
        result.append(block)
    return result


def build(
    lines: Iterable[ClassifiedLine],
    kind: Optional[DocumentKind] = None,
) -> List[StructuredBlock]:
    """
    Group classified lines into styled blocks, preserving input order.

    When ``kind`` has a fixed document title (summaries, critiques, question
    lists, outlines) and no title was found in the text, it is prepended.
    """
    assembler = _Assembler()
    for line in lines:
        assembler.feed(line)
    assembler.flush()

    blocks = _strip_repeated_prefixes(assembler.blocks)

    kind_title = KIND_TITLES.get(kind) if kind is not None else None
    if kind_title and not (blocks and isinstance(blocks[0], TitleBlock)):
        blocks.insert(0, TitleBlock(text=kind_title))

    return [_with_style(block) for block in blocks]


def classify_and_build(
    text: str,
    kind: Optional[DocumentKind] = None,
) -> List[StructuredBlock]:
    """Detect the kind (unless given), classify and build in one call."""
    if not text or not text.strip():
        return []
    if kind is None:
        kind = detect_kind(text)
    logger.debug("classify_and_build: kind=%s, %d chars", kind.value, len(text))
    return build(classify(text, kind), kind)


def heading_outline(blocks: Iterable[StructuredBlock]) -> List[Dict[str, object]]:
    """``[{level, number, title}]`` for every heading, in document order."""
    return [
        {"level": b.level, "number": b.number, "title": b.text}
        for b in blocks
        if isinstance(b, HeadingBlock)
    ]
