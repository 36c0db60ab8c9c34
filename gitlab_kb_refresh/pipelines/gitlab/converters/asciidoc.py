"""AsciiDoc -> retrieval-friendly Markdown.

The conversion is an ordered list of pure text passes over one buffer:

1. Headings (``=`` ... ``=====``)
2. Admonitions (block and inline NOTE/IMPORTANT/TIP/WARNING/CAUTION)
3. Listing blocks -> fenced code
4. Inline code (double -> single backticks)
5. Tables (see tables.py)
6. Cross references, links and images
7. Whitespace and entity cleanup
8. Provenance (product context and source URL), also used for Markdown sources

Passes 4-7 leave the contents of fenced code blocks untouched.
"""

import re
from typing import Callable, List, Optional

from .tables import convert_tables

CODE_LANGUAGES = {
    "yaml",
    "json",
    "bash",
    "shell",
    "python",
    "java",
    "xml",
    "sql",
    "javascript",
    "typescript",
    "go",
    "rust",
}

ADMONITIONS = ("NOTE", "IMPORTANT", "TIP", "WARNING", "CAUTION")

CONTEXT_MARKER = "This document is part of"
SOURCE_MARKER = "**Source:**"

HEADING_RE = re.compile(r"^(={1,5}) (.+)$", re.MULTILINE)
ADMONITION_BLOCK_RE = re.compile(r"\[(%s)\]\s*\n====\n" % "|".join(ADMONITIONS))
ADMONITION_CLOSE_RE = re.compile(r"\n====\n")
ADMONITION_INLINE_RE = re.compile(r"^(%s):[ \t]*" % "|".join(ADMONITIONS), re.MULTILINE)
TAGGED_LISTING_RE = re.compile(
    r"^\[(?:source)?,?\s*([\w+#.-]*)\s*(?:,[^\]\n]*)?\]\s*\n----\n([\s\S]*?)^----[ \t]*$",
    re.MULTILINE,
)
LISTING_RE = re.compile(r"^----\n([\s\S]*?)^----[ \t]*$", re.MULTILINE)
FENCE_RE = re.compile(r"^```[^\n]*\n[\s\S]*?^```[ \t]*$", re.MULTILINE)
INLINE_CODE_RE = re.compile(r"``([^`]+)``")
XREF_RE = re.compile(r"xref::?([^\[\s]+)\[([^\]]*)\]")
IMAGE_RE = re.compile(r"image::?([^\[\s]+)\[([^\]]*)\]")
LINK_RE = re.compile(r"(https?://[^\s\[\]()]+)\[([^\]]+)\]")
TRAILING_BACKSLASH_RE = re.compile(r"\\[ \t]*$", re.MULTILINE)
BLANK_LINES_RE = re.compile(r"\n{3,}")


def convert_headings(text: str) -> str:
    return HEADING_RE.sub(lambda m: "#" * len(m.group(1)) + " " + m.group(2), text)


def convert_admonitions(text: str) -> str:
    text = ADMONITION_BLOCK_RE.sub(lambda m: f"> **{m.group(1).capitalize()}:** ", text)
    text = ADMONITION_CLOSE_RE.sub("\n\n", text)
    return ADMONITION_INLINE_RE.sub(lambda m: f"> **{m.group(1).capitalize()}:** ", text)


def convert_code_blocks(text: str) -> str:
    def _tagged(match: re.Match) -> str:
        lang = match.group(1).strip().lower()
        if lang not in CODE_LANGUAGES:
            lang = ""
        return f"```{lang}\n{match.group(2)}```"

    text = TAGGED_LISTING_RE.sub(_tagged, text)
    return LISTING_RE.sub(lambda m: f"```\n{m.group(1)}```", text)


def convert_inline_code(text: str) -> str:
    return INLINE_CODE_RE.sub(r"`\1`", text)


def convert_references(text: str) -> str:
    text = XREF_RE.sub(r"\2", text)
    # Images first so image URLs are not rewritten as links
    text = IMAGE_RE.sub(r"![\2](\1)", text)
    return LINK_RE.sub(r"[\2](\1)", text)


def cleanup(text: str) -> str:
    text = text.replace("&#x20;", " ")
    text = TRAILING_BACKSLASH_RE.sub("", text)
    return BLANK_LINES_RE.sub("\n\n", text)


def outside_fences(text: str, transform: Callable[[str], str]) -> str:
    """Apply a transform to everything except fenced code blocks."""
    parts = []
    position = 0
    for match in FENCE_RE.finditer(text):
        parts.append(transform(text[position : match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(transform(text[position:]))
    return "".join(parts)


def _heading_index(lines: List[str]) -> Optional[int]:
    """Index of the first level-1 heading outside fenced code."""
    in_fence = False
    for i, line in enumerate(lines):
        if line.startswith("```"):
            in_fence = not in_fence
        elif not in_fence and line.startswith("# "):
            return i
    return None


def _insert_line(lines: List[str], index: int, new_line: str) -> List[str]:
    head, tail = lines[:index], lines[index:]
    while tail and not tail[0].strip():
        tail.pop(0)
    block = [new_line]
    if head:
        block = [""] + block
    if tail:
        block = block + [""]
    return head + block + tail


def add_product_context(text: str, product_context: str) -> str:
    """Add the "part of" sentence after the first heading (idempotent)."""
    if CONTEXT_MARKER in text:
        return text
    lines = text.split("\n")
    index = _heading_index(lines)
    if index is None:
        return text
    sentence = f"{CONTEXT_MARKER} the {product_context} documentation."
    return "\n".join(_insert_line(lines, index + 1, sentence))


def add_source_url(text: str, source_url: str) -> str:
    """Add the source line after the heading and context, or at the top (idempotent)."""
    if SOURCE_MARKER in text:
        return text
    lines = text.split("\n")
    index = _heading_index(lines)
    if index is None:
        insert_at = 0
    else:
        insert_at = index + 1
        following = insert_at
        while following < len(lines) and not lines[following].strip():
            following += 1
        if following < len(lines) and CONTEXT_MARKER in lines[following]:
            insert_at = following + 1
    source_line = f"> {SOURCE_MARKER} [{source_url}]({source_url})"
    return "\n".join(_insert_line(lines, insert_at, source_line))


def add_provenance(
    text: str, source_url: Optional[str] = None, product_context: Optional[str] = None
) -> str:
    if product_context:
        text = add_product_context(text, product_context)
    if source_url:
        text = add_source_url(text, source_url)
    return text


def _convert_prose(text: str) -> str:
    text = convert_inline_code(text)
    text = convert_tables(text)
    text = convert_references(text)
    return cleanup(text)


def convert_asciidoc_to_markdown(
    content: str, source_url: Optional[str] = None, product_context: Optional[str] = None
) -> str:
    """Convert AsciiDoc content to Markdown and inject provenance.

    Args:
        content: AsciiDoc source text
        source_url: Public documentation URL for the "Source:" line
        product_context: Prose for the "This document is part of" sentence

    Returns:
        Markdown text
    """
    text = content.replace("\r\n", "\n")
    text = convert_headings(text)
    text = convert_admonitions(text)
    text = convert_code_blocks(text)
    text = outside_fences(text, _convert_prose)
    text = text.strip()
    return add_provenance(text, source_url=source_url, product_context=product_context)
