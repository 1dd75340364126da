"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class DownloadFormat(str, Enum):
    """File formats a document can be exported as."""

    PDF = "pdf"
    DOCX = "docx"


class CitationStyle(str, Enum):
    APA = "APA"
    MLA = "MLA"
    HARVARD = "Harvard"
    CHICAGO = "Chicago"


# Upload / format / download Schemas
class DocumentMetadata(BaseModel):
    """Metadata extracted from an uploaded file."""

    title: str = "Untitled Document"
    author: str = ""
    page_count: Optional[int] = None
    word_count: int = 0
    reading_time_minutes: int = 0
    detected_language: str = "unknown"
    sections: List[Dict[str, Any]] = Field(default_factory=list)
    file_type: Optional[str] = None


class FormattingSummary(BaseModel):
    sections_formatted: int = 0
    grammar_corrections: int = 0
    style_improvements: int = 0
    word_count: int = 0


class DocumentUploadResponse(BaseModel):
    """Schema for the upload endpoint."""

    document_id: str
    original_content: str
    formatted_content: str
    formatting_summary: FormattingSummary
    metadata: DocumentMetadata


class StoredDocumentResponse(DocumentUploadResponse):
    file_name: str
    created_at: datetime


class FormatRequest(BaseModel):
    content: str = Field(..., min_length=1)
    format_type: str = "academic"


class FormatResponse(BaseModel):
    formatted_content: str
    summary: FormattingSummary


class DownloadRequest(BaseModel):
    """Export a stored document."""

    document_id: str = Field(..., min_length=1)
    format: DownloadFormat


class ContentDownloadRequest(BaseModel):
    """Export raw generated content (assignments, reports)."""

    content: str = Field(..., min_length=1)
    format: DownloadFormat


# Research Schemas
class SummaryResponse(BaseModel):
    summary: str
    metadata: Dict[str, Any]


class QuestionsResponse(BaseModel):
    questions: str
    count: int
    source: str


class CritiqueResponse(BaseModel):
    critique: str
    metadata: Dict[str, Any]


class CitationRequest(BaseModel):
    paper_info: Dict[str, Any] = Field(..., min_length=1)
    format: CitationStyle = CitationStyle.APA


class CitationResponse(BaseModel):
    citation: str
    format: str


class OutlineRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    field: Optional[str] = None


class OutlineResponse(BaseModel):
    outline: str
    topic: str
    field: str


class SectionEntry(BaseModel):
    level: int
    number: Optional[str] = None
    title: str


class ReportRequest(BaseModel):
    query: str = Field(..., min_length=1)
    word_count: Optional[int] = Field(None, description="Target length; clamped to 500-5000")


class GeneratedDocumentResponse(BaseModel):
    """Long-form generation result (reports and assignments)."""

    response: str
    word_count: int
    model: str
    sections: List[SectionEntry]


class PreviewRequest(BaseModel):
    content: str
    kind: Optional[str] = Field(
        None, description="Document kind; detected from the content when omitted"
    )


class PreviewResponse(BaseModel):
    kind: str
    blocks: List[Dict[str, Any]]
    html: str


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    oracle: str
    pdf_engines: List[str]
    timestamp: datetime
