"""Document model and API schemas for ResearchAid."""
from researchaid.models.blocks import (
    AbstractBlock,
    Alignment,
    BlockStyle,
    ClassifiedLine,
    CodeBlock,
    DocumentKind,
    FlowchartBlock,
    HeadingBlock,
    LineRole,
    ListItemBlock,
    ParagraphBlock,
    ReferenceBlock,
    Span,
    StructuredBlock,
    TitleBlock,
)

__all__ = [
    # Classifier output
    "ClassifiedLine",
    "DocumentKind",
    "LineRole",
    # Blocks
    "AbstractBlock",
    "CodeBlock",
    "FlowchartBlock",
    "HeadingBlock",
    "ListItemBlock",
    "ParagraphBlock",
    "ReferenceBlock",
    "StructuredBlock",
    "TitleBlock",
    # Layout
    "Alignment",
    "BlockStyle",
    "Span",
]
