"""
Research assistant endpoints.

POST /summarize            — summary of an uploaded paper.
POST /questions            — research questions from a topic or a paper.
POST /critique             — critique of an uploaded paper's arguments.
POST /citations            — one formatted citation.
POST /outline              — dissertation outline for a topic.
POST /report               — long-form academic report.
POST /report/stream        — the same report as server-sent events.
POST /assignment           — three-part assignment response.
POST /assignment/download  — generated content as PDF or DOCX.
POST /preview              — structured view (kind, blocks, html) of any content.
"""
from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from researchaid.dependencies.services import (
    get_document_parser,
    get_pdf_pipeline,
    get_research_service,
)
from researchaid.dependencies.uploads import extract_upload
from researchaid.exceptions import AuthFailure, OracleFailure
from researchaid.models.blocks import DocumentKind, block_to_dict
from researchaid.models.schemas import (
    CitationRequest,
    CitationResponse,
    ContentDownloadRequest,
    CritiqueResponse,
    GeneratedDocumentResponse,
    OutlineRequest,
    OutlineResponse,
    PreviewRequest,
    PreviewResponse,
    QuestionsResponse,
    ReportRequest,
    SummaryResponse,
)
from researchaid.routers.download import file_response
from researchaid.services.document_builder import classify_and_build
from researchaid.services.document_export import build_download
from researchaid.services.document_parser import DocumentParser
from researchaid.services.html_renderer import render_html
from researchaid.services.pdf_renderer import PdfRenderPipeline
from researchaid.services.research_service import ResearchService
from researchaid.services.section_classifier import detect_kind

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_oracle(service: ResearchService) -> None:
    if not service.client.configured:
        raise AuthFailure("OPENAI_API_KEY is not set")


# ---------------------------------------------------------------------------
# Paper analysis
# ---------------------------------------------------------------------------

@router.post("/summarize", response_model=SummaryResponse)
async def summarize(
    file: UploadFile = File(...),
    model: Optional[str] = Form(None),
    parser: DocumentParser = Depends(get_document_parser),
    service: ResearchService = Depends(get_research_service),
):
    _require_oracle(service)
    parsed = await extract_upload(file, parser)
    result = await service.summarize_paper(parsed.text, model=model)
    return SummaryResponse(
        summary=result["summary"],
        metadata={"original_word_count": result["word_count"], "model": result["model"]},
    )


@router.post("/questions", response_model=QuestionsResponse)
async def research_questions(
    topic: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    model: Optional[str] = Form(None),
    parser: DocumentParser = Depends(get_document_parser),
    service: ResearchService = Depends(get_research_service),
):
    """Questions from ``topic`` when given, otherwise from the uploaded paper."""
    topic = (topic or "").strip() or None
    if topic is None and file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide a topic or upload a paper.",
        )
    _require_oracle(service)

    text = ""
    if file is not None:
        text = (await extract_upload(file, parser)).text

    result = await service.generate_research_questions(text, topic=topic, model=model)
    return QuestionsResponse(**result)


@router.post("/critique", response_model=CritiqueResponse)
async def critique(
    file: UploadFile = File(...),
    model: Optional[str] = Form(None),
    parser: DocumentParser = Depends(get_document_parser),
    service: ResearchService = Depends(get_research_service),
):
    _require_oracle(service)
    parsed = await extract_upload(file, parser)
    result = await service.critique_arguments(parsed.text, model=model)
    return CritiqueResponse(
        critique=result["critique"],
        metadata={"original_word_count": result["word_count"]},
    )


@router.post("/citations", response_model=CitationResponse)
async def citations(
    request: CitationRequest,
    service: ResearchService = Depends(get_research_service),
):
    result = await service.generate_citation(request.paper_info, request.format.value)
    return CitationResponse(citation=result["citation"], format=result["format"])


@router.post("/outline", response_model=OutlineResponse)
async def outline(
    request: OutlineRequest,
    service: ResearchService = Depends(get_research_service),
):
    result = await service.generate_dissertation_outline(request.topic, request.field)
    return OutlineResponse(**result)


# ---------------------------------------------------------------------------
# Long-form generation
# ---------------------------------------------------------------------------

@router.post("/report", response_model=GeneratedDocumentResponse)
async def report(
    request: ReportRequest,
    service: ResearchService = Depends(get_research_service),
):
    result = await service.generate_research_report(request.query, request.word_count)
    return GeneratedDocumentResponse(**result)


@router.post("/report/stream")
async def report_stream(
    request: ReportRequest,
    http_request: Request,
    service: ResearchService = Depends(get_research_service),
):
    """
    Stream the report as ``data: {"content": ...}`` events followed by
    ``data: [DONE]``.  Generation stops when the client disconnects.
    """
    # Fail before the 200 is sent when the key is missing
    _require_oracle(service)

    async def events() -> AsyncIterator[str]:
        chunks = service.stream_research_report(request.query, request.word_count)
        try:
            async for chunk in chunks:
                if await http_request.is_disconnected():
                    logger.info("report_stream: client disconnected, stopping generation")
                    return
                yield f"data: {json.dumps({'content': chunk})}\n\n"
        except OracleFailure as e:
            logger.error("report_stream: generation failed: %s", e)
            yield f"data: {json.dumps({'error': e.user_message})}\n\n"
            return
        finally:
            await chunks.aclose()
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/assignment", response_model=GeneratedDocumentResponse)
async def assignment(
    file: Optional[UploadFile] = File(None),
    assignment_text: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    parser: DocumentParser = Depends(get_document_parser),
    service: ResearchService = Depends(get_research_service),
):
    """Answer an assignment brief given as an upload or as ``assignment_text``."""
    _require_oracle(service)

    if file is not None:
        text = (await extract_upload(file, parser)).text
    elif assignment_text is not None:
        text = assignment_text
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignment file or text is required",
        )

    if not text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignment content cannot be empty",
        )

    logger.info("assignment: %d chars of brief", len(text))
    result = await service.generate_assignment_response(text, model=model)
    return GeneratedDocumentResponse(**result)


@router.post("/assignment/download")
async def assignment_download(
    request: ContentDownloadRequest,
    pipeline: PdfRenderPipeline = Depends(get_pdf_pipeline),
):
    download = await build_download(
        request.content,
        request.format.value,
        basename="assignment_response",
        pipeline=pipeline,
    )
    return file_response(download)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

@router.post("/preview", response_model=PreviewResponse)
async def preview(request: PreviewRequest):
    """Classify content and return its blocks and HTML fragment."""
    if request.kind:
        try:
            kind = DocumentKind(request.kind)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Unknown document kind '{request.kind}'. "
                    f"Accepted: {', '.join(k.value for k in DocumentKind)}"
                ),
            )
    else:
        kind = detect_kind(request.content)

    blocks = classify_and_build(request.content, kind)
    return PreviewResponse(
        kind=kind.value,
        blocks=[block_to_dict(b) for b in blocks],
        html=render_html(blocks, standalone=False),
    )
