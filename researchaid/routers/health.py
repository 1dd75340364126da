"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from researchaid.dependencies.services import get_completion_client, get_pdf_pipeline
from researchaid.models.schemas import HealthCheckResponse
from researchaid.services.llm_client import ChatCompletionClient
from researchaid.services.pdf_renderer import PdfRenderPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    client: ChatCompletionClient = Depends(get_completion_client),
    pipeline: PdfRenderPipeline = Depends(get_pdf_pipeline),
):
    """
    Report whether the completion API is configured and which PDF engines
    are listed.  No external calls are made.
    """
    oracle_status = "configured" if client.configured else "not_configured"
    if oracle_status != "configured":
        logger.warning("Health check: OPENAI_API_KEY is not set")

    return HealthCheckResponse(
        status="healthy" if client.configured else "degraded",
        oracle=oracle_status,
        pdf_engines=pipeline.engine_names,
        timestamp=datetime.utcnow(),
    )
