"""Tests for the research endpoints."""
import io
import json

import pytest
from docx import Document
from httpx import AsyncClient

from researchaid.exceptions import AuthFailure, RateLimited

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

REPORT = """\
# ResearchAid AI Report on Urban Heat Island Mitigation

1. **Introduction**
Cities are warm.

1.1 Scope
Green roofs and reflective paint.

2. Conclusion
Trees help.
"""


def _paper_docx() -> bytes:
    doc = Document()
    doc.add_paragraph("Cooling cities with trees")
    doc.add_paragraph("Street trees lower surface temperatures by shading asphalt.")
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _events(body: str):
    return [line[len("data: "):] for line in body.splitlines() if line.startswith("data: ")]


# ---------------------------------------------------------------------------
# Paper analysis
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_summarize_upload(client: AsyncClient, fake_llm):
    fake_llm.responses = ["Trees cool streets."]
    resp = await client.post(
        "/api/research/summarize",
        files={"file": ("paper.docx", _paper_docx(), DOCX_MEDIA_TYPE)},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["summary"] == "Trees cool streets."
    assert data["metadata"]["original_word_count"] > 0
    assert "Street trees lower surface temperatures" in fake_llm.calls[0][0]


@pytest.mark.asyncio
async def test_summarize_without_key(client: AsyncClient, fake_llm):
    fake_llm.configured = False
    resp = await client.post(
        "/api/research/summarize",
        files={"file": ("paper.docx", _paper_docx(), DOCX_MEDIA_TYPE)},
    )
    assert resp.status_code == 500
    assert resp.json()["detail"] == "OpenAI API key is not configured"
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_questions_need_topic_or_file(client: AsyncClient):
    resp = await client.post("/api/research/questions", data={"topic": "  "})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_questions_from_topic(client: AsyncClient, fake_llm):
    fake_llm.responses = ["1. Why do trees cool streets?\n2. Which species work best?"]
    resp = await client.post("/api/research/questions", data={"topic": "urban trees"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert data["source"] == "topic"


@pytest.mark.asyncio
async def test_critique_upload(client: AsyncClient, fake_llm):
    fake_llm.responses = ["**Strengths:** Clear."]
    resp = await client.post(
        "/api/research/critique",
        files={"file": ("paper.docx", _paper_docx(), DOCX_MEDIA_TYPE)},
    )
    assert resp.status_code == 200
    assert resp.json()["critique"] == "**Strengths:** Clear."


@pytest.mark.asyncio
async def test_citation(client: AsyncClient, fake_llm):
    fake_llm.responses = ["Smith, J. (2020). Heat. Journal X."]
    resp = await client.post(
        "/api/research/citations",
        json={"paper_info": {"title": "Heat", "authors": ["J. Smith"]}, "format": "MLA"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"citation": "Smith, J. (2020). Heat. Journal X.", "format": "MLA"}


@pytest.mark.asyncio
async def test_citation_unknown_style(client: AsyncClient):
    resp = await client.post(
        "/api/research/citations",
        json={"paper_info": {"title": "Heat"}, "format": "Vancouver"},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_outline(client: AsyncClient, fake_llm):
    fake_llm.responses = ["Chapter 1: Introduction"]
    resp = await client.post("/api/research/outline", json={"topic": "Urban heat"})
    assert resp.status_code == 200
    assert resp.json()["field"] == "Computer Science"


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_report(client: AsyncClient, fake_llm):
    fake_llm.responses = [REPORT]
    resp = await client.post("/api/research/report", json={"query": "urban heat", "word_count": 800})
    assert resp.status_code == 200
    data = resp.json()
    assert "**Introduction**" not in data["response"]
    assert [(s["number"], s["title"]) for s in data["sections"]] == [
        ("1", "Introduction"), ("1.1", "Scope"), ("2", "Conclusion"),
    ]
    assert "800" in fake_llm.calls[0][0]


@pytest.mark.asyncio
async def test_report_rate_limited(client: AsyncClient, fake_llm):
    fake_llm.error = RateLimited("HTTP 429")
    resp = await client.post("/api/research/report", json={"query": "urban heat"})
    assert resp.status_code == 429
    assert "Rate limit" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_report_auth_failure(client: AsyncClient, fake_llm):
    fake_llm.error = AuthFailure("HTTP 401")
    resp = await client.post("/api/research/report", json={"query": "urban heat"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "OpenAI API key is not configured"


@pytest.mark.asyncio
async def test_report_stream(client: AsyncClient, fake_llm):
    fake_llm.chunks = ["1. Intro", "duction\n", "Text."]
    resp = await client.post("/api/research/report/stream", json={"query": "urban heat"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    content = "".join(json.loads(e)["content"] for e in events[:-1])
    assert content == "1. Introduction\nText."


@pytest.mark.asyncio
async def test_report_stream_error_event(client: AsyncClient, fake_llm):
    fake_llm.chunks = ["Partial"]
    fake_llm.error = RateLimited("HTTP 429")
    resp = await client.post("/api/research/report/stream", json={"query": "urban heat"})

    assert resp.status_code == 200
    events = [json.loads(e) for e in _events(resp.text)]
    assert events[0] == {"content": "Partial"}
    assert "Rate limit" in events[-1]["error"]


@pytest.mark.asyncio
async def test_report_stream_without_key(client: AsyncClient, fake_llm):
    fake_llm.configured = False
    resp = await client.post("/api/research/report/stream", json={"query": "urban heat"})
    assert resp.status_code == 500


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_assignment_from_text(client: AsyncClient, fake_llm):
    fake_llm.responses = ["1. Introduction\nOne.", "4. System Architecture\nTwo.", "9. Conclusion\nThree."]
    resp = await client.post(
        "/api/research/assignment",
        data={"assignment_text": "Design a weather station."},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert len(fake_llm.calls) == 3
    assert [s["title"] for s in data["sections"]] == ["Introduction", "System Architecture", "Conclusion"]


@pytest.mark.asyncio
async def test_assignment_requires_content(client: AsyncClient):
    resp = await client.post("/api/research/assignment", data={})
    assert resp.status_code == 400

    resp = await client.post("/api/research/assignment", data={"assignment_text": "   "})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_assignment_download_docx(client: AsyncClient):
    resp = await client.post(
        "/api/research/assignment/download",
        json={"content": REPORT, "format": "docx"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == DOCX_MEDIA_TYPE
    assert 'filename="assignment_response.docx"' in resp.headers["content-disposition"]


@pytest.mark.asyncio
async def test_assignment_download_pdf(client: AsyncClient, fake_engine):
    resp = await client.post(
        "/api/research/assignment/download",
        json={"content": REPORT, "format": "pdf"},
    )
    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4 fake"
    assert fake_engine.jobs[0].source == REPORT


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_preview_detects_kind(client: AsyncClient):
    resp = await client.post("/api/research/preview", json={"content": "1. Introduction\nText."})
    assert resp.status_code == 200
    data = resp.json()
    assert data["kind"] == "generic_report"
    assert data["blocks"][0] == {
        "type": "heading",
        "number": "1",
        "level": 1,
        "text": "Introduction",
        "display_text": "1. Introduction",
    }
    assert data["html"].startswith('<div class="document">')


@pytest.mark.asyncio
async def test_preview_with_explicit_kind(client: AsyncClient):
    resp = await client.post(
        "/api/research/preview",
        json={"content": "Trees cool streets.", "kind": "summary"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["blocks"][0] == {"type": "title", "text": "Project Summary"}


@pytest.mark.asyncio
async def test_preview_unknown_kind(client: AsyncClient):
    resp = await client.post(
        "/api/research/preview",
        json={"content": "Text.", "kind": "poem"},
    )
    assert resp.status_code == 400
