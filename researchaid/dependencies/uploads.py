"""
Multipart upload handling shared by the upload and research routes.

Files are streamed to ``UPLOAD_DIR`` in 1 MB slices with the size limit
enforced while streaming, parsed, and removed again.
"""
from __future__ import annotations

import logging
import os

import aiofiles
from fastapi import HTTPException, UploadFile, status

from researchaid.config import settings
from researchaid.services.document_parser import DocumentParser, ParsedDocument
from researchaid.utils.helpers import file_extension, new_document_id, safe_remove

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB slices


async def save_upload(file: UploadFile) -> str:
    """
    Validate the upload and write it to disk under a random name.

    Returns:
        Path of the stored file.  The caller removes it.

    Raises:
        HTTPException 400: missing filename or unsupported extension.
        HTTPException 413: file larger than MAX_FILE_SIZE.
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    file_ext = file_extension(file.filename)
    if file_ext not in settings.SUPPORTED_FILE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Unsupported file type '{file_ext}'. "
                f"Accepted: {', '.join(settings.SUPPORTED_FILE_TYPES)}"
            ),
        )

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    file_path = os.path.join(settings.UPLOAD_DIR, f"{new_document_id()}{file_ext}")
    file_size = 0

    async with aiofiles.open(file_path, "wb") as out:
        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break
            file_size += len(chunk)
            if file_size > settings.MAX_FILE_SIZE:
                await out.close()
                safe_remove(file_path)
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=(
                        f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB "
                        "size limit."
                    ),
                )
            await out.write(chunk)

    logger.info("Saved %r → %s (%s bytes)", file.filename, file_path, f"{file_size:,}")
    return file_path


async def extract_upload(file: UploadFile, parser: DocumentParser) -> ParsedDocument:
    """
    Save, parse and delete an upload.

    Raises:
        HTTPException 422: the document has no extractable text.
        ParseFailure:      the parser could not read the file.
    """
    file_path = await save_upload(file)
    try:
        parsed = await parser.extract_text(file_path, file.content_type)
    finally:
        safe_remove(file_path)

    if not parsed.text.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Document contains no extractable text.",
        )
    return parsed
