"""
Format raw text without uploading a file.
"""
from fastapi import APIRouter, Depends
import logging

from researchaid.dependencies.services import get_document_formatter
from researchaid.models.schemas import FormatRequest, FormatResponse
from researchaid.services.document_formatter import DocumentFormatter
from researchaid.services.document_parser import ParsedDocument

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=FormatResponse)
async def format_content(
    request: FormatRequest,
    formatter: DocumentFormatter = Depends(get_document_formatter),
):
    parsed = ParsedDocument(text=request.content, html=request.content)
    formatted = await formatter.format(parsed, format_type=request.format_type)
    return FormatResponse(formatted_content=formatted.html, summary=formatted.summary)
