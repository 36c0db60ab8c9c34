"""Documentation URL derivation for Antora-style repository layouts.

Repository path: canton/modules/ROOT/pages/validator-mgmt/create-validator.adoc
Public URL:      https://docs.example.com/canton/validator-mgmt/create-validator.html
"""

import re
from typing import Dict, Optional

from pydantic import BaseModel, Field

# Repository folder name -> URL path segment
DEFAULT_PRODUCT_MAPPINGS: Dict[str, str] = {
    "catbm": "general",
    "catalyst-package-manager": "cpm",
}

# Product key -> prose used in "This document is part of the ... documentation."
PRODUCT_CONTEXTS: Dict[str, str] = {
    "canton": "Canton documentation for Catalyst Blockchain Manager",
    "cpm": "Catalyst Package Manager (CPM)",
    "catalyst-package-manager": "Catalyst Package Manager (CPM)",
    "catbm": "Catalyst Blockchain Manager",
    "general": "Catalyst Blockchain Manager",
}

SOURCE_EXTENSION_RE = re.compile(r"\.(adoc|asciidoc|md|markdown|txt)$", re.IGNORECASE)
ASCIIDOC_EXTENSION_RE = re.compile(r"\.(adoc|asciidoc)$", re.IGNORECASE)


class UrlDerivationConfig(BaseModel):
    docs_base_url: str = Field(..., description="e.g. https://docs.example.com")
    product_mappings: Optional[Dict[str, str]] = Field(
        default=None, description="Tenant overrides merged over DEFAULT_PRODUCT_MAPPINGS"
    )


class DerivedUrl(BaseModel):
    product: str
    subpath: str
    filename: str
    full_url: str


def _segments(path: str) -> list:
    return path.replace("\\", "/").split("/")


def extract_product_key(path: str) -> str:
    """Return the segment before a literal ``modules`` segment, else the first segment."""
    parts = _segments(path)
    if "modules" in parts:
        modules_index = parts.index("modules")
        if modules_index > 0 and parts[modules_index - 1]:
            return parts[modules_index - 1]
    return parts[0] or "unknown"


def derive_documentation_url(path: str, config: UrlDerivationConfig) -> DerivedUrl:
    """Derive the public documentation URL for a repository file.

    Args:
        path: Repository path of the file
        config: Base URL and tenant product mappings

    Returns:
        DerivedUrl with the mapped product, subpath, bare filename and full URL
    """
    mappings = {**DEFAULT_PRODUCT_MAPPINGS, **(config.product_mappings or {})}
    parts = _segments(path)

    product = extract_product_key(path)
    mapped_product = mappings.get(product) or product

    subpath = ""
    if "pages" in parts and parts.index("pages") < len(parts) - 1:
        after_pages = parts[parts.index("pages") + 1 :]
        subpath = "/".join(after_pages[:-1])
        filename = after_pages[-1]
    else:
        filename = parts[-1]

    filename = SOURCE_EXTENSION_RE.sub("", filename)
    base_url = config.docs_base_url.rstrip("/")

    if subpath:
        full_url = f"{base_url}/{mapped_product}/{subpath}/{filename}.html"
    else:
        full_url = f"{base_url}/{mapped_product}/{filename}.html"

    return DerivedUrl(product=mapped_product, subpath=subpath, filename=filename, full_url=full_url)


def get_product_context(product_key: str, base_context: Optional[str] = None) -> str:
    """Human-readable product context, optionally prefixed with a tenant context."""
    context = PRODUCT_CONTEXTS.get(product_key.lower(), product_key)
    if base_context:
        return f"{base_context} - {context}"
    return context


def get_output_filename(path: str) -> str:
    """Bare filename for the converted file (AsciiDoc extensions become ``.md``)."""
    filename = _segments(path)[-1] or "unknown.md"
    return ASCIIDOC_EXTENSION_RE.sub(".md", filename)
