"""
In-memory document model shared by the classifier, the builder and both
renderers.

Raw model output is classified line by line into ``ClassifiedLine`` records,
grouped by the builder into ``StructuredBlock`` values, and each block carries
the ``BlockStyle`` the renderers map mechanically to CSS or to Word run and
paragraph properties.  Nothing here is persisted.
"""
from __future__ import annotations

import dataclasses
import enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DocumentKind(str, enum.Enum):
    """Shape of a generated document; selects the classifier rule table."""

    SUMMARY = "summary"
    CRITIQUE = "critique"
    RESEARCH_QUESTIONS = "research_questions"
    DISSERTATION_OUTLINE = "dissertation_outline"
    GENERIC_REPORT = "generic_report"


class LineRole(str, enum.Enum):
    """Semantic role assigned to one physical line."""

    TITLE = "title"
    ABSTRACT = "abstract"
    HEADING = "heading"
    REFERENCE = "reference"
    FLOWCHART = "flowchart"
    LIST_ITEM = "list_item"
    PARAGRAPH = "paragraph"
    CODE = "code"


class Alignment(str, enum.Enum):
    LEFT = "left"
    CENTER = "center"
    JUSTIFY = "justify"


# ---------------------------------------------------------------------------
# Classifier output
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` into a display string."""

    start: int
    end: int


@dataclasses.dataclass(frozen=True)
class ClassifiedLine:
    """
    One tagged source line.

    ``text`` is the cleaned display text (emphasis markers consumed); ``raw``
    is the untouched source line, kept so references that wrap onto the
    next line can be re-parsed as a whole.  ``after_blank`` is True when one
    or more blank lines separate this line from the previous non-blank one.
    """

    role: LineRole
    text: str
    raw: str
    line_no: int
    after_blank: bool = False
    number: Optional[str] = None
    level: Optional[int] = None
    label: Optional[str] = None
    ordered: bool = False
    marker: Optional[str] = None
    nodes: Tuple[str, ...] = ()
    degraded: bool = False


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

BODY_FONT = "Times New Roman"
MONO_FONT = "Courier New"


@dataclasses.dataclass(frozen=True)
class BlockStyle:
    """Visual rules for one block.  All lengths are in points."""

    font_size: float
    bold: bool = False
    alignment: Alignment = Alignment.LEFT
    space_before: float = 0.0
    space_after: float = 0.0
    indent_left: float = 0.0
    hanging_indent: float = 0.0
    font_family: str = BODY_FONT
    line_height: float = 1.6
    background: Optional[str] = None      # hex colour without '#'
    heading_level: Optional[int] = None   # outline level for h-tags / Heading N styles


# ---------------------------------------------------------------------------
# Structured blocks
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class TitleBlock:
    block_type: ClassVar[str] = "title"

    text: str
    style: Optional[BlockStyle] = None


@dataclasses.dataclass(frozen=True)
class AbstractBlock:
    """The abstract: an unnumbered "Abstract" label followed by its body."""

    block_type: ClassVar[str] = "abstract"

    text: str
    label: str = "Abstract"
    style: Optional[BlockStyle] = None
    label_style: Optional[BlockStyle] = None


@dataclasses.dataclass(frozen=True)
class HeadingBlock:
    block_type: ClassVar[str] = "heading"

    number: Optional[str]
    level: int
    text: str
    style: Optional[BlockStyle] = None

    @property
    def display_text(self) -> str:
        """Heading as printed: "1. Introduction", "2.1 Scope" or just the text."""
        if not self.number:
            return self.text
        if "." not in self.number:
            return f"{self.number}. {self.text}"
        return f"{self.number} {self.text}"


@dataclasses.dataclass(frozen=True)
class ParagraphBlock:
    block_type: ClassVar[str] = "paragraph"

    text: str
    style: Optional[BlockStyle] = None


@dataclasses.dataclass(frozen=True)
class ListItemBlock:
    """
    A bullet or numbered item.  ``marker`` is what is printed before the
    item ("•", "3." or nothing); ``label`` is the bold lead-in term.
    """

    block_type: ClassVar[str] = "list_item"

    ordered: bool
    label: Optional[str]
    text: str
    marker: Optional[str] = None
    style: Optional[BlockStyle] = None


@dataclasses.dataclass(frozen=True)
class ReferenceBlock:
    """
    A bibliography entry.  ``text`` is the display text with URLs and
    emphasis removed; ``title_span`` indexes into ``text``.
    """

    block_type: ClassVar[str] = "reference"

    raw: str
    text: str
    title_span: Optional[Span] = None
    url: Optional[str] = None
    style: Optional[BlockStyle] = None

    def split_on_title(self) -> Tuple[str, str, str]:
        """Return ``(before, title, after)``; title is empty when no span."""
        if self.title_span is None:
            return self.text, "", ""
        s, e = self.title_span.start, self.title_span.end
        return self.text[:s], self.text[s:e], self.text[e:]


@dataclasses.dataclass(frozen=True)
class FlowchartBlock:
    block_type: ClassVar[str] = "flowchart"

    nodes: Tuple[str, ...]
    style: Optional[BlockStyle] = None


@dataclasses.dataclass(frozen=True)
class CodeBlock:
    block_type: ClassVar[str] = "code"

    text: str
    language: str = ""
    style: Optional[BlockStyle] = None


StructuredBlock = Union[
    TitleBlock,
    AbstractBlock,
    HeadingBlock,
    ParagraphBlock,
    ListItemBlock,
    ReferenceBlock,
    FlowchartBlock,
    CodeBlock,
]


def block_to_dict(block: StructuredBlock) -> Dict[str, Any]:
    """JSON-friendly view of a block (styles omitted)."""
    data: Dict[str, Any] = {"type": block.block_type}
    for f in dataclasses.fields(block):
        if f.name in ("style", "label_style"):
            continue
        value = getattr(block, f.name)
        if isinstance(value, Span):
            value = [value.start, value.end]
        elif isinstance(value, tuple):
            value = list(value)
        data[f.name] = value
    if isinstance(block, HeadingBlock):
        data["display_text"] = block.display_text
    return data
