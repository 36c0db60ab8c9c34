"""Tests for the generated knowledge base overview."""

from gitlab_kb_refresh.pipelines.gitlab.converters import ProcessedFile
from gitlab_kb_refresh.pipelines.gitlab.smart_index import (
    generate_smart_index,
    get_product_display_name,
)


def _file(path, filename, content):
    return ProcessedFile(original_path=path, output_filename=filename, content=content, product="x")


def test_groups_documents_by_product():
    files = [
        _file("catbm/modules/ROOT/pages/install.adoc", "install.md", "# Install\n\nInstall it."),
        _file("canton/modules/ROOT/pages/setup.adoc", "setup.md", "# Setup\n\nSet it up."),
        _file("README.md", "README.md", "# Readme\n\nTop level."),
    ]

    index = generate_smart_index(files)

    assert index.startswith("# Knowledge Base Overview\n")
    assert "overview of all 3 documents" in index
    canton = index.index("## Canton Network")
    catbm = index.index("## Catalyst Blockchain Manager")
    general = index.index("## General Documentation")
    assert canton < catbm < general
    assert "### Setup\nSet it up.\n- **File:** setup.md" in index


def test_description_skips_provenance():
    content = (
        "# Create\n\n"
        "This document is part of the Canton documentation.\n\n"
        "> **Source:** [https://d.example/c.html](https://d.example/c.html)\n\n"
        "Creates a *validator* node."
    )

    index = generate_smart_index([_file("canton/modules/ROOT/pages/c.adoc", "c.md", content)])

    assert "### Create\nCreates a validator node.\n" in index
    assert "This document is part of" not in index


def test_long_descriptions_are_truncated():
    content = "# Long\n\n" + "word " * 100

    index = generate_smart_index([_file("docs/long.md", "long.md", content)])

    description = index.split("### Long\n", 1)[1].split("\n", 1)[0]
    assert description.endswith("...")
    assert len(description) == 153


def test_title_falls_back_to_filename():
    index = generate_smart_index([_file("docs/getting-started.md", "getting-started.md", "no heading")])

    assert "### getting started\n" in index


def test_product_context_line():
    index = generate_smart_index([], product_context="Acme Ledger")

    assert "> This knowledge base contains documentation for Acme Ledger." in index
    assert "overview of all 0 documents" in index


def test_display_names():
    assert get_product_display_name("cpm") == "Catalyst Package Manager (CPM)"
    assert get_product_display_name("docs") == "Docs"
