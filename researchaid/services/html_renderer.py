"""
HTML renderer for structured blocks.

Pure function of its input: every visual decision comes from the
``BlockStyle`` attached by the builder and is written out as inline CSS, so
the page prints the same in any headless browser.
"""
from __future__ import annotations

import html
from typing import Callable, Dict, List, Sequence

from researchaid.models.blocks import (
    MONO_FONT,
    AbstractBlock,
    BlockStyle,
    CodeBlock,
    FlowchartBlock,
    HeadingBlock,
    ListItemBlock,
    ParagraphBlock,
    ReferenceBlock,
    StructuredBlock,
    TitleBlock,
)
from researchaid.services.document_builder import ABSTRACT_LABEL_STYLE, style_for

PAGE_CSS = """\
@page { size: A4; margin: 25mm; }
body {
  font-family: 'Times New Roman', Times, serif;
  font-size: 12pt;
  line-height: 1.6;
  color: #000;
  margin: 0;
}
h1, h2, h3, h4 { page-break-after: avoid; }
.flowchart { page-break-inside: avoid; }
a.reference-link { color: inherit; text-decoration: none; }
"""

_FLOW_ARROW = "↓"


def _e(text: str) -> str:
    return html.escape(text, quote=False)


def _css(style: BlockStyle) -> str:
    """Inline CSS for one block style."""
    generic = "monospace" if style.font_family == MONO_FONT else "serif"
    family = f"'{style.font_family}', {generic}"
    rules = [
        f"font-family: {family}",
        f"font-size: {style.font_size:g}pt",
        f"font-weight: {'bold' if style.bold else 'normal'}",
        f"text-align: {style.alignment.value}",
        f"line-height: {style.line_height:g}",
        f"margin: {style.space_before:g}pt 0 {style.space_after:g}pt {style.indent_left:g}pt",
    ]
    if style.hanging_indent:
        rules.append(f"text-indent: -{style.hanging_indent:g}pt")
    if style.background:
        rules.append(f"background-color: #{style.background.lower()}")
        rules.append("padding: 6pt 8pt")
    return "; ".join(rules)


# ---------------------------------------------------------------------------
# Per-block renderers
# ---------------------------------------------------------------------------

def _title(block: TitleBlock, style: BlockStyle) -> str:
    return f'<h1 class="document-title" style="{_css(style)}">{_e(block.text)}</h1>'


def _abstract(block: AbstractBlock, style: BlockStyle) -> str:
    label_style = block.label_style or ABSTRACT_LABEL_STYLE
    tag = f"h{label_style.heading_level or 2}"
    parts = [f'<{tag} class="abstract-heading" style="{_css(label_style)}">'
             f"{_e(block.label)}</{tag}>"]
    if block.text:
        parts.append(f'<p class="abstract" style="{_css(style)}">{_e(block.text)}</p>')
    return "\n".join(parts)


def _heading(block: HeadingBlock, style: BlockStyle) -> str:
    tag = f"h{style.heading_level or block.level}"
    return (
        f'<{tag} class="section-heading" style="{_css(style)}">'
        f"{_e(block.display_text)}</{tag}>"
    )


def _paragraph(block: ParagraphBlock, style: BlockStyle) -> str:
    return f'<p style="{_css(style)}">{_e(block.text)}</p>'


def _list_item(block: ListItemBlock, style: BlockStyle) -> str:
    parts: List[str] = []
    if block.marker:
        parts.append(f'<span class="list-marker">{_e(block.marker)}</span> ')
    if block.label:
        parts.append(f"<strong>{_e(block.label)}:</strong>")
        if block.text:
            parts.append(" ")
    parts.append(_e(block.text))
    return f'<p class="list-item" style="{_css(style)}">{"".join(parts)}</p>'


def _reference(block: ReferenceBlock, style: BlockStyle) -> str:
    before, title, after = block.split_on_title()
    body = _e(before)
    if title:
        body += f"<em>{_e(title)}</em>"
    body += _e(after)
    if block.url:
        body = (
            f'<a class="reference-link" href="{html.escape(block.url, quote=True)}">'
            f"{body}</a>"
        )
    return f'<p class="reference-entry" style="{_css(style)}">{body}</p>'


def _flowchart(block: FlowchartBlock, style: BlockStyle) -> str:
    rows: List[str] = []
    for i, node in enumerate(block.nodes):
        if i:
            rows.append(f'<div class="flowchart-arrow">{_FLOW_ARROW}</div>')
        rows.append(f'<div class="flowchart-node">[{_e(node)}]</div>')
    return (
        f'<div class="flowchart" style="{_css(style)}">'
        + "".join(rows)
        + "</div>"
    )


def _code(block: CodeBlock, style: BlockStyle) -> str:
    return (
        f'<pre class="code-block" style="{_css(style)}; white-space: pre-wrap">'
        f"<code>{_e(block.text)}</code></pre>"
    )


_RENDERERS: Dict[type, Callable] = {
    TitleBlock: _title,
    AbstractBlock: _abstract,
    HeadingBlock: _heading,
    ParagraphBlock: _paragraph,
    ListItemBlock: _list_item,
    ReferenceBlock: _reference,
    FlowchartBlock: _flowchart,
    CodeBlock: _code,
}


def render_block(block: StructuredBlock) -> str:
    style = block.style or style_for(block)
    return _RENDERERS[type(block)](block, style)


def render_html(
    blocks: Sequence[StructuredBlock],
    title: str = "Document",
    standalone: bool = True,
) -> str:
    """
    Render blocks to HTML.

    With ``standalone`` a full page (doctype, print CSS) is returned, ready
    for the PDF pipeline; otherwise just the body fragment for previews.
    """
    body = "\n".join(render_block(block) for block in blocks)
    if not standalone:
        return f'<div class="document">\n{body}\n</div>'

    for block in blocks:
        if isinstance(block, TitleBlock):
            title = block.text
            break
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="utf-8">\n'
        f"<title>{_e(title)}</title>\n"
        f"<style>\n{PAGE_CSS}</style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )
