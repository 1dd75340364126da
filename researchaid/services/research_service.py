"""
Research assistant operations built on the chat-completion client.

Every prompt is a module-level constant so wording can be tuned without
touching the calling code.  Each operation sends one (or, for assignments,
three sequential) completion requests and returns a plain dict the routers
pass straight through.

Public API
----------
ResearchService.summarize_paper(text)                        -> Dict
ResearchService.generate_research_questions(text, topic)     -> Dict
ResearchService.critique_arguments(text)                     -> Dict
ResearchService.generate_citation(paper_info, style)         -> Dict
ResearchService.generate_dissertation_outline(topic, field)  -> Dict
ResearchService.generate_research_report(query, word_count)  -> Dict
ResearchService.stream_research_report(query, word_count)    -> AsyncIterator[str]
ResearchService.generate_assignment_response(text)           -> Dict
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from researchaid.config import settings
from researchaid.services.document_builder import classify_and_build, heading_outline
from researchaid.services.llm_client import ChatCompletionClient, CompletionOptions
from researchaid.utils.helpers import clamp, word_count

logger = logging.getLogger(__name__)

# Input limits (characters)
PAPER_CHARS = 12000
QUESTION_SOURCE_CHARS = 8000
REPORT_QUERY_CHARS = 8000
ASSIGNMENT_BRIEF_CHARS = 15000

REPORT_MIN_WORDS = 500
REPORT_MAX_WORDS = 5000
REPORT_DEFAULT_WORDS = 1000

CITATION_STYLES = {
    "APA": "American Psychological Association (APA) 7th edition format",
    "MLA": "Modern Language Association (MLA) 9th edition format",
    "Harvard": "Harvard referencing style",
    "Chicago": "Chicago Manual of Style format",
}

_BOLD_NUMBERED_HEADING_RE = re.compile(r"^(\d+(?:\.\d+)*\.?)\s+\*\*(.+?)\*\*", re.M)
_QUESTION_MARKER_RE = re.compile(r"\d+\.")


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_SUMMARY_SYSTEM = (
    "You are an expert academic research assistant. Write concise, paragraph-based "
    "overview summaries. Never use headings, bullets, or structured sections - only "
    "flowing paragraphs."
)

_SUMMARY_PROMPT = """\
You are an academic research assistant. Provide a concise overview summary of the following academic paper.

CRITICAL REQUIREMENTS:
1. Write ONLY in complete paragraphs - NO headings, NO subheadings, NO bullets, NO numbered lists
2. Provide a short, comprehensive overview (300-500 words) in 3-5 flowing paragraphs
3. Cover: main topic, key findings, methodology (briefly), and conclusions - all in paragraph form
4. Use academic language and maintain objectivity
5. DO NOT use any markdown formatting, labels, or structured sections

Paper content:
{text}

Write a concise overview summary in paragraph form only."""

_QUESTIONS_SYSTEM = (
    "You are an expert academic researcher who formulates high-quality research "
    "questions for scholarly work."
)

_QUESTIONS_PROMPT = """\
You are an academic research assistant. Generate 5-8 high-quality research questions.

Requirements:
1. Questions should be specific, answerable, and researchable
2. Cover different aspects: theoretical, methodological, practical applications
3. Questions should be suitable for academic research
4. Format as a numbered list
5. Include brief context for each question (1-2 sentences)

{context}

Generate research questions that are:
- Clear and specific
- Theoretically grounded
- Methodologically feasible
- Significant to the field"""

_QUESTIONS_TOPIC_CONTEXT = "Topic: {topic}\n\nGenerate research questions based on this topic."
_QUESTIONS_PAPER_CONTEXT = (
    "Based on the following academic paper, generate relevant research questions that "
    "could extend or explore related areas.\n\nPaper content:\n{text}"
)

_CRITIQUE_SYSTEM = (
    "You are an expert academic critic who provides thorough, constructive, and "
    "objective analysis of scholarly arguments."
)

_CRITIQUE_PROMPT = """\
You are a critical academic reviewer. Analyze and critique the arguments presented in the following academic paper.

Requirements:
1. Identify the main arguments and claims
2. Evaluate the strength of evidence and reasoning
3. Point out potential weaknesses, limitations, or gaps
4. Suggest improvements or alternative perspectives
5. Structure your critique with clear sections

Paper content:
{text}

Format your critique with:
- Summary of Main Arguments
- Strengths
- Weaknesses and Limitations
- Critical Analysis
- Suggestions for Improvement"""

_CITATION_SYSTEM = (
    "You are an expert in academic citation formats. You generate accurate, properly "
    "formatted citations according to {style} style guidelines."
)

_CITATION_PROMPT = """\
You are a citation expert. Generate a properly formatted citation in {style} style ({guideline}).

Paper information:
{paper_info}

Requirements:
1. Follow {style} style guidelines exactly
2. Include all necessary elements (author, title, year, journal, etc.)
3. If information is missing, indicate with [n.d.] or appropriate placeholder
4. Provide both in-text citation and full reference"""

_OUTLINE_SYSTEM = (
    "You are an experienced academic advisor who creates well-structured, comprehensive "
    "dissertation outlines."
)

_OUTLINE_PROMPT = """\
You are an academic advisor. Create a comprehensive dissertation outline for a student in {field}.

Topic: {topic}

Requirements:
1. Create a detailed outline with chapters and sections
2. Include standard dissertation structure: Abstract, Introduction, Literature Review, Methodology, Results/Findings, Discussion, Conclusion, References
3. For each chapter provide main sections, subsections where relevant, and a brief description (1-2 sentences)
4. Format as a structured outline with clear hierarchy, chapters written as "Chapter N: Title\""""

_REPORT_SYSTEM = """\
You are an expert academic research assistant that automates the research and literature review process.

Guidelines:
- Write in a formal, academic style suitable for reports and literature reviews.
- Use clear numbered sections (1., 1.1, 2., etc.) and flowing prose.
- Support every major claim with in-text citations in the form (Author, Year).
- Include 10-15 references at the end, each as: Author, Year. Title. Journal/Publisher, Volume(Issue), pp.pages. URL: https://... (real, verifiable links only).
- Structure: Title, Introduction, logical sections, Conclusion, References.
- No code, no figures; text only. No markdown bold in headings - use plain numbered headings like "1. Introduction"."""

_REPORT_PROMPT = """\
Produce a comprehensive academic report based on the following request, grounded in high-quality academic sources. Aim for approximately {word_count} words.

User request:
{query}

Requirements:
1. A clear title and numbered sections.
2. Include: Introduction, main body sections adapted to the topic, Conclusion, and References.
3. All major points supported by in-text citations (Author, Year).
4. End with a "References" section of 10-15 sources, each followed by " URL: " and a valid link.
5. Numbered headings only (1., 1.1, 2., 2.1). No markdown bold in headings."""

_ASSIGNMENT_SYSTEM = (
    "You are an expert academic writer. Write in a natural academic voice with varied "
    "sentence structure. Never include code or figures. Headings always carry their "
    'number ("1. Introduction", never "1. **Introduction**"). Do not use markdown bold '
    "in paragraphs or list items. Under a subheading such as 6.1, list items never "
    'repeat the section number ("Unit Testing:", not "6. Unit Testing:").'
)

_ASSIGNMENT_PART1 = """\
Generate the FIRST PART of a comprehensive academic assignment response (approximately 1400-1600 words).

- NO code and NO figures. Numbered headings (1., 1.1, 1.1.1), never bullets for section headings.
- Title on the first line, standalone, no numbering.
- Abstract (200-300 words): labelled "Abstract", no numbering.
- 1. Introduction
- 2. Literature Review with 2.1 State-of-the-Art Research, 2.2 Gaps and Opportunities, 2.3 Critical Analysis
- 3. Requirements Analysis with 3.1 Functional Requirements, 3.2 Non-Functional Requirements

Assignment Brief/Requirements:
{brief}"""

_ASSIGNMENT_PART2 = """\
Generate the SECOND PART of the assignment response (approximately 1000-1200 words). Continue numbering from the first part.

- 4. System Architecture/Design with 4.1 Architecture Overview and 4.2 System Flowchart.
  Present the flowchart ONLY as component names in boxes joined by arrows, one per line:
    [User Interface]
         ↓
    [Request Handler]
         ↓
    [Database]
  Do not describe the components after the flowchart.
- 5. Implementation with 5.1 Implementation Approach, 5.2 Technical Methodologies, 5.3 Algorithm Descriptions (conceptual, no code)
- 6. Testing with 6.1 Testing Strategies, 6.2 Testing Methodologies, 6.3 Validation.
  List items read "Unit Testing: ..." with no "6." prefix and no bold.

Assignment Brief/Requirements:
{brief}"""

_ASSIGNMENT_PART3 = """\
Generate the FINAL PART of the assignment response (approximately 1000-1200 words). Continue numbering from the previous parts.

- 7. Deployment with 7.1 Deployment Process, 7.2 Configuration and Setup, 7.3 Environment Configuration
- 8. Evaluation with 8.1 Performance Analysis, 8.2 Critical Assessment, 8.3 Limitations, 8.4 Future Improvements
- 9. Conclusion
- 10. References: at least 10 Harvard-style sources, numbered, in the exact form
  1. Smith, J., 2020. *Climate Effects on Agriculture*. Journal of Agriculture, 12(3), pp.45-59.
  No bold and no URLs in references.

Assignment Brief/Requirements:
{brief}"""

# (prompt template, temperature) per assignment part
ASSIGNMENT_PARTS: Tuple[Tuple[str, float], ...] = (
    (_ASSIGNMENT_PART1, 0.8),
    (_ASSIGNMENT_PART2, 0.8),
    (_ASSIGNMENT_PART3, 0.7),
)
ASSIGNMENT_PART_TOKENS = 4000


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------

def strip_heading_bold(text: str) -> str:
    """``2.1 **Scope**`` → ``2.1 Scope``."""
    return _BOLD_NUMBERED_HEADING_RE.sub(r"\1 \2", text)


def extract_sections(text: str) -> List[Dict[str, Any]]:
    """Heading outline of generated text, found by the document classifier."""
    return heading_outline(classify_and_build(text))


def count_question_markers(text: str) -> int:
    return len(_QUESTION_MARKER_RE.findall(text or ""))


def clamp_word_count(word_count_hint: Optional[int]) -> int:
    try:
        value = int(word_count_hint) if word_count_hint is not None else REPORT_DEFAULT_WORDS
    except (TypeError, ValueError):
        value = REPORT_DEFAULT_WORDS
    return clamp(value or REPORT_DEFAULT_WORDS, REPORT_MIN_WORDS, REPORT_MAX_WORDS)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ResearchService:
    """Generation operations; one instance can be shared across requests."""

    def __init__(self, client: Optional[ChatCompletionClient] = None) -> None:
        self.client = client or ChatCompletionClient()
        self.default_model = settings.OPENAI_DEFAULT_MODEL
        self.report_model = settings.OPENAI_REPORT_MODEL

    async def summarize_paper(self, text: str, model: Optional[str] = None) -> Dict[str, Any]:
        model = model or self.default_model
        summary = await self.client.complete(
            _SUMMARY_PROMPT.format(text=text[:PAPER_CHARS]),
            CompletionOptions(model=model, temperature=0.3, max_tokens=1000, system=_SUMMARY_SYSTEM),
        )
        logger.info("summarize_paper: %d words in, %d chars out", word_count(text), len(summary))
        return {"summary": summary, "word_count": word_count(text), "model": model}

    async def generate_research_questions(
        self,
        text: Optional[str] = None,
        topic: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        if topic:
            context = _QUESTIONS_TOPIC_CONTEXT.format(topic=topic)
        else:
            context = _QUESTIONS_PAPER_CONTEXT.format(text=(text or "")[:QUESTION_SOURCE_CHARS])

        questions = await self.client.complete(
            _QUESTIONS_PROMPT.format(context=context),
            CompletionOptions(
                model=model or self.default_model,
                temperature=0.7,
                max_tokens=1000,
                system=_QUESTIONS_SYSTEM,
            ),
        )
        return {
            "questions": questions,
            "count": count_question_markers(questions),
            "source": "topic" if topic else "paper",
        }

    async def critique_arguments(self, text: str, model: Optional[str] = None) -> Dict[str, Any]:
        critique = await self.client.complete(
            _CRITIQUE_PROMPT.format(text=text[:PAPER_CHARS]),
            CompletionOptions(
                model=model or self.default_model,
                temperature=0.4,
                max_tokens=2000,
                system=_CRITIQUE_SYSTEM,
            ),
        )
        return {"critique": critique, "word_count": word_count(text)}

    async def generate_citation(
        self,
        paper_info: Dict[str, Any],
        style: str = "APA",
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        if style not in CITATION_STYLES:
            raise ValueError(
                f"Unsupported citation format '{style}'. "
                f"Choose one of: {', '.join(CITATION_STYLES)}"
            )
        citation = await self.client.complete(
            _CITATION_PROMPT.format(
                style=style,
                guideline=CITATION_STYLES[style],
                paper_info=json.dumps(paper_info, indent=2, ensure_ascii=False),
            ),
            CompletionOptions(
                model=model or self.default_model,
                temperature=0.2,
                max_tokens=500,
                system=_CITATION_SYSTEM.format(style=style),
            ),
        )
        return {"citation": citation, "format": style, "paper_info": paper_info}

    async def generate_dissertation_outline(
        self,
        topic: str,
        field: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        field = field or "Computer Science"
        outline = await self.client.complete(
            _OUTLINE_PROMPT.format(topic=topic, field=field),
            CompletionOptions(
                model=model or self.default_model,
                temperature=0.5,
                max_tokens=2000,
                system=_OUTLINE_SYSTEM,
            ),
        )
        return {"outline": outline, "topic": topic, "field": field}

    # ------------------------------------------------------------------
    # Long-form generation
    # ------------------------------------------------------------------

    def _report_request(
        self, query: str, word_count_hint: Optional[int], model: Optional[str]
    ) -> Tuple[str, CompletionOptions]:
        prompt = _REPORT_PROMPT.format(
            word_count=clamp_word_count(word_count_hint),
            query=query[:REPORT_QUERY_CHARS],
        )
        options = CompletionOptions(
            model=model or self.report_model,
            temperature=0.5,
            max_tokens=4096,
            system=_REPORT_SYSTEM,
        )
        return prompt, options

    async def generate_research_report(
        self,
        query: str,
        word_count_hint: Optional[int] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        prompt, options = self._report_request(query, word_count_hint, model)
        response = strip_heading_bold(await self.client.complete(prompt, options))
        sections = extract_sections(response)
        logger.info(
            "generate_research_report: %d words, %d sections", word_count(response), len(sections)
        )
        return {
            "response": response,
            "word_count": word_count(response),
            "model": options.model,
            "sections": sections,
        }

    async def stream_research_report(
        self,
        query: str,
        word_count_hint: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        prompt, options = self._report_request(query, word_count_hint, model)
        async for chunk in self.client.complete_stream(prompt, options):
            yield chunk

    async def generate_assignment_response(
        self,
        assignment_text: str,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Generate the response in three sequential parts and join them."""
        model = model or self.report_model
        brief = assignment_text[:ASSIGNMENT_BRIEF_CHARS]

        parts: List[str] = []
        for i, (template, temperature) in enumerate(ASSIGNMENT_PARTS, start=1):
            part = await self.client.complete(
                template.format(brief=brief),
                CompletionOptions(
                    model=model,
                    temperature=temperature,
                    max_tokens=ASSIGNMENT_PART_TOKENS,
                    system=_ASSIGNMENT_SYSTEM,
                ),
            )
            logger.info("generate_assignment_response: part %d/%d, %d chars",
                        i, len(ASSIGNMENT_PARTS), len(part))
            parts.append(part.strip())

        response = strip_heading_bold("\n\n".join(parts))
        return {
            "response": response,
            "word_count": word_count(response),
            "model": model,
            "sections": extract_sections(response),
        }
