"""
Formatting of uploaded documents.

The basic pass runs the extracted text through the section classifier and
the HTML renderer.  When an API key is configured a second pass asks the
model to correct grammar and wording; its plain-text answer replaces the
source text before rendering.  A failed model pass keeps the basic result.

Public API
----------
DocumentFormatter.format(parsed, format_type="academic") -> FormattedDocument
"""
from __future__ import annotations

import dataclasses
import difflib
import logging
from typing import Any, Dict, Optional

from researchaid.config import settings
from researchaid.exceptions import OracleFailure
from researchaid.models.blocks import HeadingBlock, TitleBlock
from researchaid.services.document_builder import classify_and_build
from researchaid.services.document_parser import ParsedDocument
from researchaid.services.html_renderer import render_html
from researchaid.services.llm_client import ChatCompletionClient, CompletionOptions
from researchaid.utils.helpers import word_count

logger = logging.getLogger(__name__)

FORMAT_SOURCE_CHARS = 8000

_FORMAT_SYSTEM = (
    "You are a professional document formatter. Return only the corrected document "
    "as plain text, keeping every heading and list on its own line."
)

_FORMAT_PROMPT = """\
Format the following document content according to {format_type} standards.

Requirements:
1. Fix grammar and spelling errors
2. Improve sentence structure and clarity
3. Maintain the original meaning, headings and section order
4. Keep numbered headings (1., 1.1) and list markers as they are
5. Return plain text only: no HTML, no markdown bold

Original content:
{text}"""


@dataclasses.dataclass
class FormattedDocument:
    text: str                      # source text the html was rendered from
    html: str
    summary: Dict[str, Any]
    ai_applied: bool = False


class DocumentFormatter:
    """Basic formatting plus an optional model clean-up pass."""

    def __init__(self, client: Optional[ChatCompletionClient] = None) -> None:
        self.client = client or ChatCompletionClient()

    async def format(
        self,
        parsed: ParsedDocument,
        format_type: str = "academic",
    ) -> FormattedDocument:
        text = parsed.text
        ai_applied = False

        if self.client.configured:
            try:
                corrected = await self._ai_pass(text, format_type)
            except OracleFailure as e:
                logger.warning("AI formatting failed, keeping basic formatting: %s", e)
            else:
                if corrected.strip():
                    text, ai_applied = corrected.strip(), True

        blocks = classify_and_build(text)
        html = render_html(blocks, standalone=False)
        summary = _summary(parsed.text, text, blocks, parsed.metadata)
        logger.info(
            "format: %d blocks, %d sections, ai_applied=%s",
            len(blocks), summary["sections_formatted"], ai_applied,
        )
        return FormattedDocument(text=text, html=html, summary=summary, ai_applied=ai_applied)

    async def _ai_pass(self, text: str, format_type: str) -> str:
        return await self.client.complete(
            _FORMAT_PROMPT.format(format_type=format_type, text=text[:FORMAT_SOURCE_CHARS]),
            CompletionOptions(
                model=settings.OPENAI_DEFAULT_MODEL,
                temperature=0.3,
                max_tokens=4000,
                system=_FORMAT_SYSTEM,
            ),
        )


def _summary(original: str, formatted: str, blocks, metadata: Dict[str, Any]) -> Dict[str, Any]:
    sections = sum(1 for b in blocks if isinstance(b, (HeadingBlock, TitleBlock)))
    # Word-level edits between the extracted and the corrected text
    matcher = difflib.SequenceMatcher(a=original.split(), b=formatted.split(), autojunk=False)
    corrections = sum(1 for op in matcher.get_opcodes() if op[0] != "equal")
    return {
        "sections_formatted": sections,
        "grammar_corrections": corrections,
        "style_improvements": sections,
        "word_count": metadata.get("word_count") or word_count(formatted),
    }
