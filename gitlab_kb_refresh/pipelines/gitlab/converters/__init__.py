"""File converters for the knowledge-base refresh.

process_file() is the single entry point used by the refresh pipeline: it
converts AsciiDoc to Markdown when enabled, derives the public source URL and
adds provenance to Markdown output.
"""

import mimetypes
import os
from typing import Optional

from pydantic import BaseModel

from ..urls import (
    UrlDerivationConfig,
    derive_documentation_url,
    extract_product_key,
    get_output_filename,
    get_product_context,
)
from .asciidoc import add_provenance, convert_asciidoc_to_markdown
from .tables import TableConversion, TableKind, convert_table

ASCIIDOC_EXTENSIONS = (".adoc", ".asciidoc")
MARKDOWN_EXTENSIONS = (".md", ".markdown")

MIME_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".adoc": "text/asciidoc",
    ".asciidoc": "text/asciidoc",
    ".txt": "text/plain",
    ".rst": "text/x-rst",
    ".html": "text/html",
    ".htm": "text/html",
    ".json": "application/json",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
}

__all__ = [
    "ProcessedFile",
    "TableConversion",
    "TableKind",
    "convert_asciidoc_to_markdown",
    "convert_table",
    "guess_mime_type",
    "is_asciidoc",
    "is_markdown",
    "process_file",
]


class ProcessedFile(BaseModel):
    original_path: str
    output_filename: str
    content: str
    was_converted: bool = False
    source_url: Optional[str] = None
    product: str
    mime_type: str = "text/markdown"


def is_asciidoc(path: str) -> bool:
    return path.lower().endswith(ASCIIDOC_EXTENSIONS)


def is_markdown(path: str) -> bool:
    return path.lower().endswith(MARKDOWN_EXTENSIONS)


def guess_mime_type(path: str) -> str:
    extension = os.path.splitext(path)[1].lower()
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "text/plain"


def process_file(
    path: str,
    content: str,
    url_config: Optional[UrlDerivationConfig],
    product_context: Optional[str] = None,
    convert_asciidoc: bool = True,
) -> ProcessedFile:
    """Convert one repository file for ingestion.

    Args:
        path: Repository path of the file
        content: Raw file text
        url_config: Base URL and product mappings, or None when no docs site is configured
        product_context: Tenant-wide context; falls back to the product's own context
        convert_asciidoc: Whether AsciiDoc files are converted to Markdown

    Returns:
        ProcessedFile ready for archiving and upload
    """
    product = extract_product_key(path)
    source_url = derive_documentation_url(path, url_config).full_url if url_config else None
    context = product_context or get_product_context(product)

    if is_asciidoc(path) and convert_asciidoc:
        return ProcessedFile(
            original_path=path,
            output_filename=get_output_filename(path),
            content=convert_asciidoc_to_markdown(
                content, source_url=source_url, product_context=context
            ),
            was_converted=True,
            source_url=source_url,
            product=product,
            mime_type="text/markdown",
        )

    if is_markdown(path):
        content = add_provenance(content, source_url=source_url, product_context=context)

    return ProcessedFile(
        original_path=path,
        output_filename=os.path.basename(path.replace("\\", "/")) or "unknown",
        content=content,
        was_converted=False,
        source_url=source_url,
        product=product,
        mime_type=guess_mime_type(path),
    )
