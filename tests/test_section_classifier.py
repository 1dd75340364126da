"""Tests for document kind detection and line classification."""
import pytest

from researchaid.models.blocks import (
    AbstractBlock,
    CodeBlock,
    DocumentKind,
    FlowchartBlock,
    HeadingBlock,
    LineRole,
    ListItemBlock,
    ParagraphBlock,
    ReferenceBlock,
    TitleBlock,
)
from researchaid.services.document_builder import classify_and_build
from researchaid.services.section_classifier import (
    classify,
    detect_kind,
    parse_reference,
    strip_emphasis,
)

REPORT = DocumentKind.GENERIC_REPORT


# ---------------------------------------------------------------------------
# Headings and sections
# ---------------------------------------------------------------------------

def test_numbered_heading_then_paragraph():
    blocks = classify_and_build("1. Introduction\nThis is the intro text.")

    assert len(blocks) == 2
    heading, paragraph = blocks
    assert isinstance(heading, HeadingBlock)
    assert (heading.number, heading.level, heading.text) == ("1", 1, "Introduction")
    assert isinstance(paragraph, ParagraphBlock)
    assert paragraph.text == "This is the intro text."


def test_bare_section_name_gets_inferred_number():
    blocks = classify_and_build("Evaluation\nSome evaluation text.")

    heading = blocks[0]
    assert isinstance(heading, HeadingBlock)
    assert (heading.number, heading.level, heading.text) == ("8", 1, "Evaluation")
    assert isinstance(blocks[1], ParagraphBlock)


def test_heading_level_is_number_of_segments():
    text = "1. Introduction\n1.1 Scope\n1.1.1 Detail\nBody text here."
    headings = [b for b in classify_and_build(text, REPORT) if isinstance(b, HeadingBlock)]

    assert [(h.number, h.level) for h in headings] == [("1", 1), ("1.1", 2), ("1.1.1", 3)]
    assert headings[1].display_text == "1.1 Scope"
    assert headings[0].display_text == "1. Introduction"


def test_four_digit_number_is_not_a_heading():
    blocks = classify_and_build("2020 was a record year for heat.", REPORT)

    assert len(blocks) == 1
    assert isinstance(blocks[0], ParagraphBlock)


def test_subsection_item_keeps_chapter_number_out_of_outline():
    text = "6.1 Testing Strategy\n6. Unit Testing: Each module is tested in isolation."
    blocks = classify_and_build(text, REPORT)

    assert [type(b) for b in blocks] == [HeadingBlock, ListItemBlock]
    item = blocks[1]
    assert item.label == "Unit Testing"
    assert item.text == "Each module is tested in isolation."
    assert item.marker is None


def test_markdown_title_and_headings():
    text = "# Urban Heat\n\n## Background\nCities are warm."
    blocks = classify_and_build(text, REPORT)

    assert isinstance(blocks[0], TitleBlock)
    assert blocks[0].text == "Urban Heat"
    assert isinstance(blocks[1], HeadingBlock)
    assert blocks[1].level == 2
    assert blocks[1].number is None


def test_title_pattern_line_becomes_title():
    text = "ResearchAid AI Report on Urban Heat Island Mitigation\n\n1. Introduction\nText."
    blocks = classify_and_build(text, REPORT)

    assert isinstance(blocks[0], TitleBlock)
    assert blocks[0].text.startswith("ResearchAid AI Report")


def test_abstract_collects_following_lines():
    text = "Abstract\nThis paper studies heat.\nIt uses satellite data.\n\n1. Introduction\nText."
    blocks = classify_and_build(text, REPORT)

    abstract = blocks[0]
    assert isinstance(abstract, AbstractBlock)
    assert abstract.text == "This paper studies heat. It uses satellite data."
    assert isinstance(blocks[1], HeadingBlock)


def test_abstract_after_a_heading_is_a_plain_section():
    text = "1. Introduction\nText.\n\nAbstract\nLate summary."
    blocks = classify_and_build(text, REPORT)

    assert not any(isinstance(b, AbstractBlock) for b in blocks)
    late = blocks[2]
    assert isinstance(late, HeadingBlock)
    assert late.text == "Abstract"
    assert late.level == 1
    assert late.number is None


def test_table_of_contents_is_skipped():
    text = (
        "Table of Contents\n1. Introduction\n2. Methods\n---\n"
        "1. Introduction\nOpening text."
    )
    blocks = classify_and_build(text, REPORT)

    assert [type(b) for b in blocks] == [HeadingBlock, ParagraphBlock]
    assert blocks[0].text == "Introduction"


def test_code_fence_kept_verbatim():
    text = "```python\nprint('x')\n```"
    blocks = classify_and_build(text, REPORT)

    assert len(blocks) == 1
    assert isinstance(blocks[0], CodeBlock)
    assert blocks[0].text == "print('x')"
    assert blocks[0].language == "python"


def test_bold_label_bullet_becomes_labelled_item():
    blocks = classify_and_build("- **Scalability:** The system grows with demand.", REPORT)

    item = blocks[0]
    assert isinstance(item, ListItemBlock)
    assert item.label == "Scalability"
    assert item.text == "The system grows with demand."
    assert "*" not in item.text


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

def test_reference_strips_url_and_finds_title():
    raw = "1. Smith, J., 2020. *Climate Effects*. Journal X, 1(2), pp.1-9. URL: https://doi.org/10.1/x"
    blocks = classify_and_build(raw)

    assert len(blocks) == 1
    ref = blocks[0]
    assert isinstance(ref, ReferenceBlock)
    assert "https" not in ref.text
    assert "URL" not in ref.text
    assert ref.url == "https://doi.org/10.1/x"
    _, title, _ = ref.split_on_title()
    assert title == "Climate Effects"


def test_every_list_line_in_references_section_is_a_reference():
    text = (
        "10. References\n"
        "1. Smith, J., 2020. *Climate Effects*. Journal X.\n"
        "2. World Health Organization, 2021. Air quality guidelines.\n"
        "3. Anonymous web page about urban cooling"
    )
    blocks = classify_and_build(text, REPORT)

    assert isinstance(blocks[0], HeadingBlock)
    assert blocks[0].text == "References"
    assert [type(b) for b in blocks[1:]] == [ReferenceBlock] * 3


def test_bold_wrapped_reference_has_clean_url():
    text = (
        "10. References\n"
        "**1. Smith, J., 2020. Climate Effects. Journal X. https://x.org/a**"
    )
    blocks = classify_and_build(text, REPORT)

    ref = blocks[1]
    assert isinstance(ref, ReferenceBlock)
    assert ref.url == "https://x.org/a"
    assert "*" not in ref.text
    assert "https" not in ref.text


def test_parse_reference_url_drops_trailing_asterisks():
    _, _, url = parse_reference("Doe, A., 2019. Cooling. https://x.org/b*")

    assert url == "https://x.org/b"


def test_parse_reference_without_italics_uses_sentence_after_year():
    text, span, url = parse_reference("Doe, A. and Lee, B. (2019). Cooling cities. Nature, 5.")

    assert url is None
    assert span is not None
    assert text[span.start:span.end] == "Cooling cities"


# ---------------------------------------------------------------------------
# Flowcharts
# ---------------------------------------------------------------------------

def test_flowchart_nodes_and_description_dropped():
    text = "[User Interface]\n↓\n[Database]\n• User Interface: This is the entry point."
    blocks = classify_and_build(text)

    assert len(blocks) == 1
    chart = blocks[0]
    assert isinstance(chart, FlowchartBlock)
    assert chart.nodes == ("User Interface", "Database")


def test_inline_arrow_flowchart():
    blocks = classify_and_build("Client → API Gateway → Database", REPORT)

    assert isinstance(blocks[0], FlowchartBlock)
    assert blocks[0].nodes == ("Client", "API Gateway", "Database")


def test_long_arrow_sentence_stays_prose():
    line = "The request travels from the browser through several layers → and ends up at the database server eventually"
    blocks = classify_and_build(line, REPORT)

    assert isinstance(blocks[0], ParagraphBlock)


# ---------------------------------------------------------------------------
# Kind detection
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("**Strengths:** Clear argument.\n**Weaknesses:** Small sample.", DocumentKind.CRITIQUE),
        (
            "Dissertation Outline\nChapter 1: Introduction\nChapter 2: Literature Review",
            DocumentKind.DISSERTATION_OUTLINE,
        ),
        (
            "1. How does urban greening affect night-time temperatures?\n"
            "2. What policies encourage reflective roofing in dense cities?",
            DocumentKind.RESEARCH_QUESTIONS,
        ),
        ("This paper looks at heat in cities. It finds that trees help.", DocumentKind.SUMMARY),
        ("# Report\n\n## Background\nCities are warm.", DocumentKind.GENERIC_REPORT),
    ],
)
def test_detect_kind(text, expected):
    assert detect_kind(text) is expected


def test_long_unstructured_text_is_not_a_summary():
    text = "Plain sentence about cities. " * 300
    assert len(text) > 5000
    assert detect_kind(text) is DocumentKind.GENERIC_REPORT


def test_summary_threshold_is_a_parameter():
    text = "Plain sentence about cities. " * 10
    assert detect_kind(text, summary_max_chars=50) is DocumentKind.GENERIC_REPORT
    assert detect_kind(text) is DocumentKind.SUMMARY


def test_summary_kind_gets_fixed_title_and_no_headings():
    blocks = classify_and_build("# Overview\nThe paper studies heat.", DocumentKind.SUMMARY)

    assert isinstance(blocks[0], TitleBlock)
    assert blocks[0].text == "Project Summary"
    assert not any(isinstance(b, HeadingBlock) for b in blocks)


def test_critique_sections_become_headings():
    text = "**Strengths:** Clear argument.\n1. **Data:** Good sample."
    blocks = classify_and_build(text, DocumentKind.CRITIQUE)

    assert isinstance(blocks[0], TitleBlock)
    assert isinstance(blocks[1], HeadingBlock)
    assert blocks[1].text == "Strengths"
    assert isinstance(blocks[2], ParagraphBlock)
    assert isinstance(blocks[3], ListItemBlock)
    assert blocks[3].label == "Data"


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

def test_classification_is_deterministic():
    text = "1. Introduction\nBody.\n\n2. Methods\n- **Step:** Measure.\n[A] → [B]"
    assert classify_and_build(text) == classify_and_build(text)


def test_unrecognised_marker_line_is_degraded_paragraph():
    lines = list(classify("#hashtag without space", REPORT))

    assert lines[0].role is LineRole.PARAGRAPH
    assert lines[0].degraded


def test_strip_emphasis():
    assert strip_emphasis("Some **bold** and *italic* `code` [link](https://x.io)") == (
        "Some bold and italic code link"
    )
