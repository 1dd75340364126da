"""
Service providers for FastAPI routes.

Each route receives its collaborators through ``Depends`` so tests can swap
them with ``app.dependency_overrides``.
"""
from __future__ import annotations

from fastapi import Depends

from researchaid.services.document_formatter import DocumentFormatter
from researchaid.services.document_parser import DocumentParser
from researchaid.services.llm_client import ChatCompletionClient
from researchaid.services.pdf_renderer import PdfRenderPipeline, default_pipeline
from researchaid.services.research_service import ResearchService


def get_completion_client() -> ChatCompletionClient:
    return ChatCompletionClient()


def get_research_service(
    client: ChatCompletionClient = Depends(get_completion_client),
) -> ResearchService:
    return ResearchService(client)


def get_document_formatter(
    client: ChatCompletionClient = Depends(get_completion_client),
) -> DocumentFormatter:
    return DocumentFormatter(client)


def get_document_parser() -> DocumentParser:
    return DocumentParser()


def get_pdf_pipeline() -> PdfRenderPipeline:
    """Fresh engine list per request; browsers are never shared."""
    return default_pipeline()
