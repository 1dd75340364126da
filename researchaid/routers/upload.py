"""
Document upload endpoints.

POST /            — parse, format and store a PDF or DOCX upload.
GET  /{id}        — stored document by id.
"""
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from researchaid.dependencies.services import get_document_formatter, get_document_parser
from researchaid.dependencies.uploads import extract_upload
from researchaid.models.schemas import DocumentUploadResponse, StoredDocumentResponse
from researchaid.services.document_formatter import DocumentFormatter
from researchaid.services.document_parser import DocumentParser
from researchaid.services.document_store import DocumentStore, get_document_store
from researchaid.utils.helpers import new_document_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=DocumentUploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    parser: DocumentParser = Depends(get_document_parser),
    formatter: DocumentFormatter = Depends(get_document_formatter),
    store: DocumentStore = Depends(get_document_store),
):
    """
    Upload a PDF or Word document, extract its text and format it.

    The formatted result is kept in memory under the returned
    ``document_id`` for later download.
    """
    parsed = await extract_upload(file, parser)
    formatted = await formatter.format(parsed)

    document_id = new_document_id()
    record = {
        "document_id": document_id,
        "file_name": file.filename,
        "original_content": parsed.html,
        "formatted_content": formatted.html,
        "formatted_text": formatted.text,
        "formatting_summary": formatted.summary,
        "metadata": parsed.metadata,
        "created_at": datetime.utcnow(),
    }
    store.save(document_id, record)
    logger.info("Stored %r as %s", file.filename, document_id)

    return DocumentUploadResponse(**record)


@router.get("/{document_id}", response_model=StoredDocumentResponse)
async def get_document(
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
):
    document = store.get(document_id)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )
    return StoredDocumentResponse(**document)
