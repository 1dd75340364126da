"""
Line classifier for model-generated academic text.

Turns freeform, markdown-ish output from the completion API into a stream of
``ClassifiedLine`` records.  The document kind is detected once up front and
selects an ordered rule table; every physical line is offered to the rules in
order and the first one that matches decides its role.  Context that earlier
lines establish (inside a flowchart, inside a "6.1"-style subsection, inside
the references list, inside a code fence) lives in an explicit
``ClassifierState`` value threaded through the fold, never in loose flags.

Rules are pure: ``rule(line, state) -> (records, new_state)`` or ``None`` when
the rule does not apply.  An empty ``records`` tuple consumes the line without
producing output (horizontal rules, dropped flowchart descriptions).

Nothing in here raises.  A line no rule understands becomes a paragraph.

Public API
----------
detect_kind(text)                 -> DocumentKind
classify(text, kind)              -> Iterator[ClassifiedLine]
parse_reference(raw)              -> (display_text, title_span, url)
strip_emphasis(text)              -> str
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import re
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

from researchaid.config import settings
from researchaid.exceptions import ClassificationDegraded
from researchaid.models.blocks import ClassifiedLine, DocumentKind, LineRole, Span

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

# Bare section name → inferred top-level number
MAJOR_SECTION_NUMBERS: Dict[str, str] = {
    "introduction": "1",
    "literature review": "2",
    "requirements analysis": "3",
    "system architecture": "4",
    "system architecture/design": "4",
    "system architecture and design": "4",
    "implementation": "5",
    "testing": "6",
    "deployment": "7",
    "evaluation": "8",
    "conclusion": "9",
    "references": "10",
}

REFERENCE_SECTION_NAMES = frozenset({
    "references", "reference list", "bibliography", "works cited",
})

# Standalone chapter names in a dissertation outline (kept unnumbered)
OUTLINE_SECTION_NAMES = frozenset({
    "abstract", "introduction", "literature review", "methodology",
    "research methodology", "results", "findings", "results/findings",
    "results and findings", "discussion", "conclusion", "conclusions",
    "references", "bibliography", "appendices", "appendix",
    "acknowledgements", "acknowledgments",
})

KIND_TITLES: Dict[DocumentKind, str] = {
    DocumentKind.SUMMARY: "Project Summary",
    DocumentKind.CRITIQUE: "Argument Critique",
    DocumentKind.RESEARCH_QUESTIONS: "Research Questions",
    DocumentKind.DISSERTATION_OUTLINE: "Dissertation Outline",
}


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_RULE_LINE_RE = re.compile(r"^(?:-{2,}|\*{3,}|_{3,}|={3,})$")
_FENCE_RE = re.compile(r"^```\s*([\w+#.-]*)\s*$")
_TOC_RE = re.compile(r"^(?:#+\s*)?(?:\*\*)?table of contents(?:\*\*)?:?$", re.I)

_MD_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*$")
# Top-level components are limited to two digits so "2020 saw..." is prose
_NUMBERED_HEADING_RE = re.compile(r"^(\d{1,2}(?:\.\d{1,2})*)\.?\s+(.+)$")
_ABSTRACT_RE = re.compile(
    r"^(?:#+\s*)?(?:\*\*)?abstract(?:\*\*)?(?::(?:\*\*)?\s*(?P<body>.*))?$", re.I
)
_BARE_SECTION_RE = re.compile(r"^(?:[•*+\-]\s*)?(?P<name>[A-Za-z][A-Za-z /&\-]*?)\s*:?$")

_BULLET_RE = re.compile(r"^([*\-+•▪◦])\s+(.*)$")
_ORDERED_RE = re.compile(r"^(\d{1,3})[.)]\s+(.*)$")
_LEADING_MARKER_RE = re.compile(r"^\s*(?:[*\-+•▪◦]\s|\d{1,3}[.)]\s|#)")

_BOLD_LABEL_RE = re.compile(
    r"^\*\*(?P<label>[^*]{1,80}?):\*\*\s*(?P<body>.*)$"
    r"|^\*\*(?P<label2>[^*]{1,80}?)\*\*:\s*(?P<body2>.*)$"
)
_PLAIN_LABEL_RE = re.compile(r"^(?P<label>[A-Z][^:.!?]{0,58}?):\s+(?P<body>\S.*)$")
_BOLD_LINE_RE = re.compile(r"^\*\*(?P<text>[^*]+?)\*\*$")

# "Smith, J., 2020."  "1. Smith, J. and Doe, A. (2019)"  "World Health Organization, 2021."
_AUTHOR_WORD = r"[A-Z][A-Za-z'’\-]+"
_YEAR = r"(?:1[5-9]|20)\d{2}[a-z]?|n\.d\."
_REFERENCE_RE = re.compile(
    r"^(?:(?P<num>\d{1,3})[.)]\s+)?"
    rf"(?P<authors>{_AUTHOR_WORD}(?:\s+{_AUTHOR_WORD})*,"
    rf"(?:\s*(?:[A-Z]\.|{_AUTHOR_WORD}|and\b|&|et\s+al\.?|,))*?)"
    rf"\s*(?:\((?P<year_paren>{_YEAR})\)[.,]?|(?P<year>{_YEAR})[.,])"
)
_REFERENCES_HEADING_RE = re.compile(r"^\d+\.?\s+references$", re.I)

_URL_RE = re.compile(r"https?://[^\s<>\]]+|www\.[^\s<>\]]+")
_TITLE_SPAN_RE = re.compile(r"(?<!\*)\*(?![\s*])([^*]+?)(?<![\s*])\*(?!\*)")

_ARROWS = "↓→⟶⇒⬇➔➜⇩⟹"
_ARROW_SPLIT_RE = re.compile(rf"\s*(?:[{_ARROWS}]|-{{1,2}}>|=>)\s*")
_BRACKET_NODE_RE = re.compile(r"\[([^\[\]]{1,60})\](?!\()")
_FLOW_FILLER_RE = re.compile(rf"[\s{_ARROWS}|│>\-=v]*")
_DESCRIPTION_RE = re.compile(
    r"^(?:[•*+\-]\s*)?(?P<name>[A-Z][\w /&()\-]{0,50}?):\s*(?P<desc>\S.*)$"
)
_DESCRIPTION_LEADS = re.compile(
    r"^(?:this|the|it|its|acts|serves|handles|provides|manages|responsible|"
    r"contains|stores|receives|processes|validates|formats|represents|is|"
    r"where|each|here|interfaces|ensures|performs|converts)\b",
    re.I,
)

_MD_LINK_RE = re.compile(r"\[([^\]]+)\]\((?:https?://|/|#)[^)]*\)")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def strip_emphasis(text: str) -> str:
    """Remove markdown emphasis, inline code ticks and link syntax."""
    text = _MD_LINK_RE.sub(r"\1", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"(?<!\w)__(.+?)__(?!\w)", r"\1", text)
    text = re.sub(r"(?<![\w*])\*(?![\s*])(.+?)(?<![\s*])\*(?![\w*])", r"\1", text)
    text = re.sub(r"(?<![\w_])_(?![\s_])(.+?)(?<![\s_])_(?![\w_])", r"\1", text)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    # Any asterisk still standing is an unmatched emphasis marker
    text = text.replace("*", "")
    return re.sub(r"\s+", " ", text).strip()


def _split_label(text: str) -> Tuple[Optional[str], str]:
    """Split ``Label: description`` (bold or plain) into its two halves."""
    m = _BOLD_LABEL_RE.match(text)
    if m:
        label = m.group("label") or m.group("label2")
        body = m.group("body") if m.group("label") else m.group("body2")
        return strip_emphasis(label).rstrip(":").strip(), strip_emphasis(body or "")
    cleaned = strip_emphasis(text)
    m = _PLAIN_LABEL_RE.match(cleaned)
    if m and len(m.group("label").split()) <= 8:
        return m.group("label").strip(), m.group("body").strip()
    return None, cleaned


def _is_labelled_description(text: str) -> bool:
    """True for "Unit Testing: Each module is tested alone." style text."""
    m = _PLAIN_LABEL_RE.match(text)
    if not m:
        return False
    body = m.group("body").strip()
    return body.endswith((".", "!", "?")) or len(body) > 60


def parse_reference(raw: str) -> Tuple[str, Optional[Span], Optional[str]]:
    """
    Split a bibliography entry into display text, italic title span and URL.

    The URL (first one found) is removed from the display text together with
    its "URL:" / "Available at:" lead-in and any "[Accessed …]" note.  The
    title span is the first ``*single-asterisk*`` run, or failing that the
    sentence that follows the year.
    """
    text = re.sub(r"\s+", " ", raw).strip()
    text = re.sub(r"^[•+\-]\s+|^\*\s+", "", text)
    text = text.replace("**", "").replace("__", "")

    url_match = _URL_RE.search(text)
    url = url_match.group(0).rstrip(".,;:)>]*") if url_match else None

    text = re.sub(r"\[\s*accessed[^\]]*\]", "", text, flags=re.I)
    text = re.sub(r"\[\s*online\s*\]", "", text, flags=re.I)
    text = re.sub(r"\(\s*(?:https?://|www\.)[^)]*\)", "", text)
    text = re.sub(r"<\s*(?:https?://|www\.)[^>]*>", "", text)
    text = _URL_RE.sub("", text)
    text = re.sub(r"\b(?:available\s+at|url|link|retrieved\s+from)\s*:?\s*(?=$|[.,;\s]*$)",
                  "", text, flags=re.I)
    text = re.sub(r"\b(?:available\s+at|url|retrieved\s+from)\s*:\s*", "", text, flags=re.I)
    text = re.sub(r"\s+([.,;:])", r"\1", text)
    text = re.sub(r"([.,;:])\1+", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text).strip()
    text = text.rstrip(" :;,")

    span: Optional[Span] = None
    m = _TITLE_SPAN_RE.search(text)
    if m:
        before = text[:m.start()].replace("*", "")
        title = m.group(1)
        after = text[m.end():].replace("*", "")
        text = before + title + after
        span = Span(len(before), len(before) + len(title))
    else:
        text = text.replace("*", "")
        ref = _REFERENCE_RE.match(text)
        if ref:
            rest_start = ref.end()
            while rest_start < len(text) and text[rest_start] == " ":
                rest_start += 1
            tail = re.match(r"([^.]{3,}?)(?=\.(?:\s|$)|$)", text[rest_start:])
            if tail:
                span = Span(rest_start, rest_start + len(tail.group(1)))

    return text, span, url


def _flowchart_nodes(text: str) -> Optional[Tuple[str, ...]]:
    """
    Node labels of a flowchart line, or None when the line is not one.

    ``[A]``/``[A] → [B]``/``↓`` lines qualify.  Unbracketed ``A → B → C``
    lines qualify only when every segment is short enough to be a label.
    """
    nodes = [n.strip() for n in _BRACKET_NODE_RE.findall(text)]
    if nodes:
        residual = _BRACKET_NODE_RE.sub("", text)
        if _FLOW_FILLER_RE.fullmatch(residual):
            return tuple(n for n in nodes if n)
        return None
    if not any(ch in _ARROWS for ch in text):
        return None
    if _FLOW_FILLER_RE.fullmatch(text):
        return ()
    segments = [s.strip(" .,;") for s in _ARROW_SPLIT_RE.split(text)]
    segments = [s for s in segments if s]
    if len(segments) >= 2 and all(len(s.split()) <= 6 for s in segments):
        return tuple(segments)
    return None


# ---------------------------------------------------------------------------
# Kind detection
# ---------------------------------------------------------------------------

_CRITIQUE_MARKERS = (
    "**Summary of Main Arguments:**",
    "**Strengths:**",
    "**Weaknesses",
    "**Critical Analysis:**",
    "**Suggestions for Improvement:**",
)
_ASSIGNMENT_KEYWORDS_RE = re.compile(
    r"Requirements Analysis|System Architecture|Implementation|Testing|Deployment|"
    r"Evaluation|Assignment Response|Assignment Brief",
    re.I,
)
_DISSERTATION_KEYWORDS_RE = re.compile(
    r"Chapter\s+\d+:|Dissertation Outline|Dissertation Topic|Research Field", re.I
)


def detect_kind(
    text: str,
    summary_max_chars: Optional[int] = None,
    questions_max_chars: Optional[int] = None,
) -> DocumentKind:
    """Guess the document kind from its overall shape.  Checked in priority order."""
    if summary_max_chars is None:
        summary_max_chars = settings.SUMMARY_MAX_CHARS
    if questions_max_chars is None:
        questions_max_chars = settings.RESEARCH_QUESTIONS_MAX_CHARS

    if any(marker in text for marker in _CRITIQUE_MARKERS):
        return DocumentKind.CRITIQUE

    if (
        not _ASSIGNMENT_KEYWORDS_RE.search(text)
        and _DISSERTATION_KEYWORDS_RE.search(text)
    ):
        return DocumentKind.DISSERTATION_OUTLINE

    has_dotted = re.search(r"^\d+\.\d+\s+", text, re.M)
    if (
        re.search(r"^\d+\.\s+[A-Z][^0-9\n]{20,}", text, re.M)
        and not re.search(r"^\d+\.\s+[A-Z][a-z]+,\s*\d{4}", text, re.M)
        and len(text) < questions_max_chars
        and not has_dotted
    ):
        return DocumentKind.RESEARCH_QUESTIONS

    if len(text) < summary_max_chars and not _has_structure(text):
        return DocumentKind.SUMMARY

    return DocumentKind.GENERIC_REPORT


def _has_structure(text: str) -> bool:
    if re.search(r"^\d+\.\s+[A-Za-z]", text, re.M):
        return True
    if re.search(r"^#+\s+", text, re.M):
        return True
    if re.search(r"^\*\*[A-Z][A-Za-z\s/]+:\*\*", text, re.M):
        return True
    if re.search(r"^\s*[*\-+•]\s+", text, re.M):
        return True
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.lower().rstrip(":") in MAJOR_SECTION_NUMBERS:
            return True
        if stripped and _flowchart_nodes(stripped) is not None:
            return True
    return False


# ---------------------------------------------------------------------------
# Fold state
# ---------------------------------------------------------------------------

class ClassifierMode(str, enum.Enum):
    DEFAULT = "default"
    IN_FLOWCHART = "in_flowchart"
    IN_CODE = "in_code"
    IN_TOC = "in_toc"


@dataclasses.dataclass(frozen=True)
class ClassifierState:
    kind: DocumentKind
    mode: ClassifierMode = ClassifierMode.DEFAULT
    nonblank_seen: int = 0
    title_consumed: bool = False
    abstract_consumed: bool = False
    heading_seen: bool = False
    # Dotted number of the enclosing subsection heading ("6.1"), if any
    subsection: Optional[str] = None
    in_references: bool = False
    flow_nodes: Tuple[str, ...] = ()
    flow_gap: int = 0


class _Line(NamedTuple):
    raw: str
    text: str          # stripped
    line_no: int
    after_blank: bool
    rule_ahead: bool   # a horizontal rule occurs later in the document


RuleResult = Optional[Tuple[Tuple[ClassifiedLine, ...], ClassifierState]]
Rule = Callable[[_Line, ClassifierState], RuleResult]


def _record(line: _Line, role: LineRole, text: str, **kwargs) -> ClassifiedLine:
    return ClassifiedLine(
        role=role,
        text=text,
        raw=line.raw,
        line_no=line.line_no,
        after_blank=line.after_blank,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Rules shared by several kinds
# ---------------------------------------------------------------------------

def _code_fence(line: _Line, state: ClassifierState) -> RuleResult:
    fence = _FENCE_RE.match(line.text)
    if state.mode is ClassifierMode.IN_CODE:
        if fence and not fence.group(1):
            return (), dataclasses.replace(state, mode=ClassifierMode.DEFAULT)
        return (_record(line, LineRole.CODE, line.raw.rstrip("\n")),), state
    if fence:
        start = _record(line, LineRole.CODE, "", marker="```", label=fence.group(1) or None)
        return (start,), dataclasses.replace(state, mode=ClassifierMode.IN_CODE)
    return None


def _horizontal_rule(line: _Line, state: ClassifierState) -> RuleResult:
    if _RULE_LINE_RE.match(line.text):
        return (), state
    return None


def _markdown_heading(line: _Line, state: ClassifierState) -> RuleResult:
    m = _MD_HEADING_RE.match(line.text)
    if not m:
        return None
    hashes, inner = len(m.group(1)), strip_emphasis(m.group(2))
    if not inner:
        return (), state

    numbered = _NUMBERED_HEADING_RE.match(inner)
    if numbered:
        number = numbered.group(1)
        return (
            _record(line, LineRole.HEADING, numbered.group(2).strip(),
                    number=number, level=_level_of(number)),
        ), state

    section_number = MAJOR_SECTION_NUMBERS.get(inner.lower().rstrip(":"))
    if section_number and state.kind is DocumentKind.GENERIC_REPORT:
        return (
            _record(line, LineRole.HEADING, inner.rstrip(":"), number=section_number, level=1),
        ), state

    if (
        hashes == 1
        and state.kind is DocumentKind.GENERIC_REPORT
        and not state.title_consumed
        and state.nonblank_seen == 0
    ):
        return (
            (_record(line, LineRole.TITLE, inner),),
            dataclasses.replace(state, title_consumed=True),
        )
    return (_record(line, LineRole.HEADING, inner, level=min(hashes, 4)),), state


def _numbered_heading(line: _Line, state: ClassifierState) -> RuleResult:
    text = strip_emphasis(line.text)
    m = _NUMBERED_HEADING_RE.match(text)
    if not m:
        return None
    number, rest = m.group(1), m.group(2).strip()
    if not 1 <= len(rest) <= 99 or rest[0].islower():
        return None
    if "." not in number and _is_labelled_description(rest):
        return None
    return (
        _record(line, LineRole.HEADING, rest, number=number, level=_level_of(number)),
    ), state


def _list_item(line: _Line, state: ClassifierState) -> RuleResult:
    bullet = _BULLET_RE.match(line.text)
    if bullet:
        label, body = _split_label(bullet.group(2))
        if not label and not body:
            return (), state
        return (
            _record(line, LineRole.LIST_ITEM, body, label=label, ordered=False, marker="•"),
        ), state
    ordered = _ORDERED_RE.match(line.text)
    if ordered:
        label, body = _split_label(ordered.group(2))
        return (
            _record(line, LineRole.LIST_ITEM, body, label=label, ordered=True,
                    number=ordered.group(1), marker=f"{ordered.group(1)}."),
        ), state
    return None


def _paragraph(line: _Line, state: ClassifierState) -> RuleResult:
    text = strip_emphasis(re.sub(r"^>\s*", "", line.text))
    if not text:
        return (), state
    degraded = bool(_LEADING_MARKER_RE.match(line.text)) or line.text[:1].isdigit()
    if degraded:
        logger.debug("%s", ClassificationDegraded(line.text, line.line_no))
    return (_record(line, LineRole.PARAGRAPH, text, degraded=degraded),), state


# ---------------------------------------------------------------------------
# Generic report rules
# ---------------------------------------------------------------------------

def _table_of_contents(line: _Line, state: ClassifierState) -> RuleResult:
    if state.mode is ClassifierMode.IN_TOC:
        if _RULE_LINE_RE.match(line.text):
            return (), dataclasses.replace(state, mode=ClassifierMode.DEFAULT)
        return (), state
    if _TOC_RE.match(line.text) and line.rule_ahead:
        return (), dataclasses.replace(state, mode=ClassifierMode.IN_TOC)
    return None


def _title(line: _Line, state: ClassifierState) -> RuleResult:
    if state.title_consumed or state.nonblank_seen >= 2:
        return None
    text = strip_emphasis(line.text.lstrip("#").strip())
    if not 30 <= len(text) <= 150 or text[:1].isdigit():
        return None
    if not re.search(settings.TITLE_PATTERN, text, re.I):
        return None
    return (
        (_record(line, LineRole.TITLE, text),),
        dataclasses.replace(state, title_consumed=True),
    )


def _abstract(line: _Line, state: ClassifierState) -> RuleResult:
    if state.abstract_consumed:
        return None
    m = _ABSTRACT_RE.match(line.text)
    if not m:
        return None
    body = strip_emphasis(m.group("body") or "").lstrip(":").strip()
    if state.heading_seen:
        # Past the front matter an "Abstract" line is an ordinary section
        if body:
            return None
        return (_record(line, LineRole.HEADING, "Abstract", level=1),), state
    return (
        (_record(line, LineRole.ABSTRACT, body),),
        dataclasses.replace(state, abstract_consumed=True),
    )


def _reference(line: _Line, state: ClassifierState) -> RuleResult:
    text = line.text
    if _REFERENCES_HEADING_RE.match(strip_emphasis(text)):
        return None
    in_list = state.in_references and (
        _ORDERED_RE.match(text) or _BULLET_RE.match(text)
    )
    if not in_list and not _REFERENCE_RE.match(text.replace("**", "")):
        return None
    display, _span, _url = parse_reference(text)
    return (_record(line, LineRole.REFERENCE, display),), state


def _subsection_list_item(line: _Line, state: ClassifierState) -> RuleResult:
    """Inside "6.1", a line "6. Unit Testing: ..." is a list item, not chapter 6."""
    if not state.subsection:
        return None
    m = _ORDERED_RE.match(line.text) or _ORDERED_RE.match(line.text.replace("**", ""))
    if not m or m.group(1) != state.subsection.split(".")[0]:
        return None
    label, body = _split_label(m.group(2))
    return (
        _record(line, LineRole.LIST_ITEM, body, label=label, ordered=True,
                number=m.group(1), marker=f"{m.group(1)}."),
    ), state


def _flowchart(line: _Line, state: ClassifierState) -> RuleResult:
    nodes = _flowchart_nodes(line.text)
    if nodes is not None:
        return (_record(line, LineRole.FLOWCHART, " ".join(nodes), nodes=nodes),), state

    if state.mode is ClassifierMode.IN_FLOWCHART:
        m = _DESCRIPTION_RE.match(strip_emphasis(re.sub(r"^[•*+\-]\s*", "", line.text)))
        if m:
            name = m.group("name").strip().lower()
            known = {n.lower() for n in state.flow_nodes}
            if name in known or _DESCRIPTION_LEADS.match(m.group("desc")):
                return (), state
    return None


def _bare_section(line: _Line, state: ClassifierState) -> RuleResult:
    m = _BARE_SECTION_RE.match(strip_emphasis(line.text))
    if not m:
        return None
    name = m.group("name").strip()
    number = MAJOR_SECTION_NUMBERS.get(name.lower())
    if not number:
        return None
    return (_record(line, LineRole.HEADING, name, number=number, level=1),), state


def _bold_label_line(line: _Line, state: ClassifierState) -> RuleResult:
    if not _BOLD_LABEL_RE.match(line.text):
        return None
    label, body = _split_label(line.text)
    return (_record(line, LineRole.LIST_ITEM, body, label=label, ordered=False),), state


def _bold_heading_line(line: _Line, state: ClassifierState) -> RuleResult:
    m = _BOLD_LINE_RE.match(line.text)
    if not m:
        return None
    text = strip_emphasis(m.group("text")).rstrip(":")
    if not text or len(text.split()) > 10 or text.endswith("."):
        return None
    return (_record(line, LineRole.HEADING, text, level=2),), state


# ---------------------------------------------------------------------------
# Kind-specific rules
# ---------------------------------------------------------------------------

def _summary_paragraph(line: _Line, state: ClassifierState) -> RuleResult:
    text = re.sub(r"^(?:#+\s*|[*\-+•]\s+|\d{1,3}[.)]\s+)", "", line.text)
    text = strip_emphasis(text)
    if not text:
        return (), state
    return (_record(line, LineRole.PARAGRAPH, text),), state


_CRITIQUE_SECTION_RE = re.compile(
    r"^\*\*(?P<name>[A-Z][A-Za-z\s/&]+?):?\*\*:?\s*(?P<rest>.*)$"
)
_LABELLED_ORDERED_RE = re.compile(r"^(?P<num>\d{1,3})\.\s+(?P<item>\*\*.+)$")


def _critique_section(line: _Line, state: ClassifierState) -> RuleResult:
    m = _CRITIQUE_SECTION_RE.match(line.text)
    if not m:
        return None
    records = [_record(line, LineRole.HEADING, m.group("name").strip(), level=2)]
    rest = strip_emphasis(m.group("rest"))
    if rest:
        records.append(_record(line, LineRole.PARAGRAPH, rest))
    return tuple(records), state


def _labelled_ordered_item(line: _Line, state: ClassifierState) -> RuleResult:
    m = _LABELLED_ORDERED_RE.match(line.text)
    if not m:
        return None
    label, body = _split_label(m.group("item"))
    return (
        _record(line, LineRole.LIST_ITEM, body, label=label, ordered=True,
                number=m.group("num"), marker=f"{m.group('num')}."),
    ), state


def _question_item(line: _Line, state: ClassifierState) -> RuleResult:
    m = _ORDERED_RE.match(line.text)
    if not m:
        return None
    label, body = _split_label(m.group(2))
    return (
        _record(line, LineRole.LIST_ITEM, body, label=label, ordered=True,
                number=m.group(1), marker=f"{m.group(1)}."),
    ), state


def _outline_noise(line: _Line, state: ClassifierState) -> RuleResult:
    text = strip_emphasis(line.text)
    if len(text) < 3 or re.fullmatch(r"\d+\.?", text):
        return (), state
    if re.match(r"^dissertation outline\b", text, re.I):
        return (), state
    return None


def _outline_chapter(line: _Line, state: ClassifierState) -> RuleResult:
    text = strip_emphasis(re.sub(r"^[•*+\-]\s*", "", line.text)).rstrip(":")
    if re.match(r"^chapter\s+\d+\s*:", text, re.I) or text.lower() in OUTLINE_SECTION_NAMES:
        return (_record(line, LineRole.HEADING, text, level=1),), state
    return None


def _outline_numbered_heading(line: _Line, state: ClassifierState) -> RuleResult:
    text = strip_emphasis(line.text)
    m = _NUMBERED_HEADING_RE.match(text)
    if not m or "." in m.group(1):
        return _numbered_heading(line, state)
    rest = m.group(2).strip()
    # "3. Short item." reads as an outline entry rather than a chapter
    if rest.endswith(".") or ":" in rest:
        return None
    return _numbered_heading(line, state)


def _outline_bullets(line: _Line, state: ClassifierState) -> RuleResult:
    m = _BULLET_RE.match(line.text)
    if not m:
        return None
    parts = [p.strip() for p in re.split(r"\s+-\s+", m.group(2)) if p.strip()]
    records = []
    for part in parts:
        label, body = _split_label(part)
        records.append(_record(line, LineRole.LIST_ITEM, body, label=label,
                               ordered=False, marker="•"))
    return tuple(records), state


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

RULE_TABLES: Dict[DocumentKind, Tuple[Rule, ...]] = {
    DocumentKind.SUMMARY: (
        _horizontal_rule,
        _summary_paragraph,
    ),
    DocumentKind.CRITIQUE: (
        _code_fence,
        _horizontal_rule,
        _markdown_heading,
        _critique_section,
        _labelled_ordered_item,
        _list_item,
        _paragraph,
    ),
    DocumentKind.RESEARCH_QUESTIONS: (
        _code_fence,
        _horizontal_rule,
        _markdown_heading,
        _question_item,
        _list_item,
        _paragraph,
    ),
    DocumentKind.DISSERTATION_OUTLINE: (
        _code_fence,
        _horizontal_rule,
        _outline_noise,
        _markdown_heading,
        _outline_chapter,
        _outline_numbered_heading,
        _outline_bullets,
        _list_item,
        _paragraph,
    ),
    DocumentKind.GENERIC_REPORT: (
        _code_fence,
        _table_of_contents,
        _horizontal_rule,
        _title,
        _abstract,
        _markdown_heading,
        _reference,
        _subsection_list_item,
        _numbered_heading,
        _flowchart,
        _bare_section,
        _bold_heading_line,
        _bold_label_line,
        _list_item,
        _paragraph,
    ),
}


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------

def _level_of(number: str) -> int:
    return min(len(number.split(".")), 4)


def _advance(state: ClassifierState, records: Tuple[ClassifiedLine, ...]) -> ClassifierState:
    """Context transitions driven by what a line was classified as."""
    state = dataclasses.replace(state, nonblank_seen=state.nonblank_seen + 1)

    for record in records:
        if record.role is LineRole.HEADING:
            number = record.number
            state = dataclasses.replace(
                state,
                mode=ClassifierMode.DEFAULT,
                heading_seen=True,
                subsection=number if number and "." in number else None,
                in_references=record.text.lower().rstrip(":") in REFERENCE_SECTION_NAMES,
                flow_nodes=(),
                flow_gap=0,
            )
        elif record.role is LineRole.FLOWCHART:
            state = dataclasses.replace(
                state,
                mode=ClassifierMode.IN_FLOWCHART,
                flow_nodes=state.flow_nodes + record.nodes,
                flow_gap=0,
            )

    if (
        state.mode is ClassifierMode.IN_FLOWCHART
        and records
        and not any(r.role in (LineRole.FLOWCHART, LineRole.HEADING) for r in records)
    ):
        gap = state.flow_gap + 1
        if gap > 1:
            state = dataclasses.replace(
                state, mode=ClassifierMode.DEFAULT, flow_nodes=(), flow_gap=0
            )
        else:
            state = dataclasses.replace(state, flow_gap=gap)
    return state


def classify(text: str, kind: DocumentKind) -> Iterator[ClassifiedLine]:
    """
    Classify ``text`` line by line with the rule table for ``kind``.

    Returns a generator; it is consumed once.
    """
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    last_rule = max(
        (i for i, raw in enumerate(lines) if _RULE_LINE_RE.match(raw.strip())),
        default=-1,
    )
    rules = RULE_TABLES[kind]
    state = ClassifierState(kind=kind)
    after_blank = False

    for index, raw in enumerate(lines):
        stripped = raw.strip()
        if not stripped and state.mode is not ClassifierMode.IN_CODE:
            after_blank = True
            continue

        line = _Line(raw, stripped, index + 1, after_blank, index < last_rule)
        after_blank = False

        for rule in rules:
            result = rule(line, state)
            if result is None:
                continue
            records, state = result
            if state.mode is not ClassifierMode.IN_CODE:
                state = _advance(state, records)
            yield from records
            break
