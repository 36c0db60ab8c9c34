"""Smart Index: a generated overview document for the whole knowledge base.

Groups documents by product and lists each one with its title and a short
description, which gives retrieval a single entry point into the corpus.
"""

import re
from typing import Dict, List, Optional

from .converters import ProcessedFile
from .converters.asciidoc import CONTEXT_MARKER, SOURCE_MARKER

SMART_INDEX_FILENAME = "SMART-INDEX.md"
SMART_INDEX_PATH = "_generated/SMART-INDEX.md"
DESCRIPTION_LIMIT = 150

PRODUCT_DISPLAY_NAMES: Dict[str, str] = {
    "canton": "Canton Network",
    "cpm": "Catalyst Package Manager (CPM)",
    "catalyst-package-manager": "Catalyst Package Manager (CPM)",
    "catbm": "Catalyst Blockchain Manager",
    "general": "General Documentation",
}

TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
LEADING_HEADING_RE = re.compile(r"^#.+\n+")
MARKUP_RE = re.compile(r"[#*>`\[\]]")
WHITESPACE_RE = re.compile(r"\s+")


def get_product_display_name(key: str) -> str:
    return PRODUCT_DISPLAY_NAMES.get(key, key[:1].upper() + key[1:])


def _product_key(original_path: str) -> str:
    parts = original_path.replace("\\", "/").split("/")
    if "modules" in parts and parts.index("modules") > 0:
        product = parts[parts.index("modules") - 1]
    elif len(parts) > 1:
        product = parts[0]
    else:
        product = ""
    return (product or "general").lower()


def _title(file: ProcessedFile) -> str:
    match = TITLE_RE.search(file.content)
    if match:
        return match.group(1).strip()
    return re.sub(r"\.md$", "", file.output_filename).replace("-", " ")


def _description(content: str) -> str:
    body = LEADING_HEADING_RE.sub("", content, count=1)
    for paragraph in body.split("\n\n"):
        # Provenance lines are identical across documents
        if not paragraph.strip() or CONTEXT_MARKER in paragraph or SOURCE_MARKER in paragraph:
            continue
        clean = WHITESPACE_RE.sub(" ", MARKUP_RE.sub("", paragraph)).strip()
        if len(clean) > DESCRIPTION_LIMIT:
            return clean[:DESCRIPTION_LIMIT] + "..."
        return clean
    return ""


def generate_smart_index(files: List[ProcessedFile], product_context: Optional[str] = None) -> str:
    """Render the Smart Index Markdown for a set of processed files."""
    groups: Dict[str, List[dict]] = {}
    for file in files:
        product = get_product_display_name(_product_key(file.original_path))
        groups.setdefault(product, []).append(
            {
                "title": _title(file),
                "description": _description(file.content),
                "filename": file.output_filename,
            }
        )

    lines = ["# Knowledge Base Overview", ""]
    if product_context:
        lines += [f"> This knowledge base contains documentation for {product_context}.", ""]
    lines += [
        f"This index provides an overview of all {len(files)} documents in the knowledge base, "
        "organized by product/section. Use this to understand what documentation is available "
        "and find relevant information.",
        "",
    ]

    for product in sorted(groups):
        lines += [f"## {product}", ""]
        for doc in sorted(groups[product], key=lambda d: d["title"].lower()):
            lines.append(f"### {doc['title']}")
            if doc["description"]:
                lines.append(doc["description"])
            lines += [f"- **File:** {doc['filename']}", ""]

    lines += ["---", "", "*This index was automatically generated during the knowledge base refresh.*", ""]
    return "\n".join(lines)
