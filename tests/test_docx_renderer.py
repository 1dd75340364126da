"""Tests for the Word renderer."""
from io import BytesIO

import pytest
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from researchaid.exceptions import SerializationFailure
from researchaid.models.blocks import DocumentKind
from researchaid.services.document_builder import classify_and_build
from researchaid.services.docx_renderer import render_document_model, serialize_document_model

REPORT_TEXT = """\
ResearchAid AI Report on Urban Heat Island Mitigation

Abstract
This report reviews strategies for reducing urban heat.

1. Introduction
Cities are warmer than their surroundings.

1.1 Scope
- **Green roofs:** Vegetation on rooftops.

[Sensors]
↓
[Dashboard]

10. References
1. Smith, J., 2020. *Climate Effects*. Journal X, 1(2), pp.1-9. URL: https://doi.org/10.1/x
"""


@pytest.fixture
def doc():
    return render_document_model(classify_and_build(REPORT_TEXT, DocumentKind.GENERIC_REPORT))


def _paragraph(doc, startswith):
    for p in doc.paragraphs:
        if p.text.startswith(startswith):
            return p
    raise AssertionError(f"no paragraph starting with {startswith!r}")


def test_page_is_a4_with_25mm_margins(doc):
    section = doc.sections[0]
    assert round(section.page_width.mm) == 210
    assert round(section.page_height.mm) == 297
    assert round(section.left_margin.mm) == 25
    assert round(section.top_margin.mm) == 25


def test_title_is_centred_and_bold(doc):
    title = doc.paragraphs[0]
    assert title.text.startswith("ResearchAid AI Report")
    assert title.alignment == WD_ALIGN_PARAGRAPH.CENTER
    assert all(run.bold for run in title.runs)
    assert all(run.font.size == Pt(28) for run in title.runs)
    heading = _paragraph(doc, "1. Introduction")
    assert title.runs[0].font.size > heading.runs[0].font.size


def test_headings_use_word_heading_styles(doc):
    assert _paragraph(doc, "1. Introduction").style.name == "Heading 1"
    assert _paragraph(doc, "1.1 Scope").style.name == "Heading 2"
    assert _paragraph(doc, "Abstract").style.name == "Heading 2"


def test_heading_sizes_match_style_table(doc):
    run = _paragraph(doc, "1. Introduction").runs[0]
    assert run.font.size == Pt(26)


def test_reference_not_bold_and_title_italic(doc):
    ref = _paragraph(doc, "1. Smith")
    assert not any(run.bold for run in ref.runs)
    italic = [run.text for run in ref.runs if run.italic]
    assert italic == ["Climate Effects"]
    assert "https" not in ref.text


def test_labelled_item_bolds_only_label(doc):
    item = _paragraph(doc, "Green roofs:")
    assert item.runs[0].bold
    assert item.runs[0].text == "Green roofs:"
    assert not item.runs[-1].bold
    assert item.style.name == "List Bullet"


def test_flowchart_is_one_centred_paragraph(doc):
    chart = _paragraph(doc, "[Sensors]")
    assert chart.alignment == WD_ALIGN_PARAGRAPH.CENTER
    assert "[Dashboard]" in chart.text


def test_paragraph_is_justified(doc):
    body = _paragraph(doc, "Cities are warmer")
    assert body.alignment == WD_ALIGN_PARAGRAPH.JUSTIFY
    assert not any(run.bold for run in body.runs)


def test_serialize_round_trips(doc):
    data = serialize_document_model(doc)

    assert data[:2] == b"PK"
    reopened = Document(BytesIO(data))
    assert any(p.text == "1. Introduction" for p in reopened.paragraphs)


def test_serialize_failure_is_wrapped():
    class Broken:
        def save(self, stream):
            raise OSError("disk full")

    with pytest.raises(SerializationFailure):
        serialize_document_model(Broken())


def test_introduction_heading_bold_in_both_renderers(doc):
    from researchaid.services.html_renderer import render_html

    blocks = classify_and_build(REPORT_TEXT, DocumentKind.GENERIC_REPORT)
    markup = render_html(blocks, standalone=False)

    heading = _paragraph(doc, "1. Introduction")
    assert all(run.bold for run in heading.runs)
    assert "font-weight: bold; text-align: left; line-height: 1.6; margin: 30pt" in markup


def test_bold_wrapped_reference_runs_are_not_bold():
    text = (
        "10. References\n"
        "**1. Smith, J., 2020. Climate Effects. Journal X. https://x.org/a**"
    )
    doc = render_document_model(classify_and_build(text, DocumentKind.GENERIC_REPORT))

    ref = _paragraph(doc, "1. Smith")
    assert ref.runs
    assert all(run.bold is False for run in ref.runs)
    assert "*" not in ref.text
    assert "https" not in ref.text
