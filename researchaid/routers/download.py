"""
Download a stored, formatted document as PDF or DOCX.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
import logging

from researchaid.dependencies.services import get_pdf_pipeline
from researchaid.models.schemas import DownloadRequest
from researchaid.services.document_export import DownloadFile, build_download
from researchaid.services.document_store import DocumentStore, get_document_store
from researchaid.services.pdf_renderer import PdfRenderPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


def file_response(download: DownloadFile) -> Response:
    return Response(
        content=download.content,
        media_type=download.media_type,
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )


@router.post("/")
async def download_document(
    request: DownloadRequest,
    store: DocumentStore = Depends(get_document_store),
    pipeline: PdfRenderPipeline = Depends(get_pdf_pipeline),
):
    document = store.get(request.document_id)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )

    download = await build_download(
        document["formatted_text"],
        request.format.value,
        basename="formatted_document",
        pipeline=pipeline,
    )
    logger.info("Download %s as %s (%d bytes)", request.document_id, download.filename, len(download.content))
    return file_response(download)
