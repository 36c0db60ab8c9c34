"""AsciiDoc table conversion.

Each ``|===`` block (optionally preceded by a ``[cols=...]`` attribute line)
is converted with a three-tier fallback, reported as a TableConversion:

- PARSED: rows recovered exactly; rendered as a Markdown table
- BEST_EFFORT: rows could not be recovered; cells are paired two per row
- UNCHANGED: nothing usable was found; the original block is kept verbatim
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

COLS_TABLE_RE = re.compile(r"\[cols=[^\]]+\]\s*\n\|===[\s\S]*?\|===")
SIMPLE_TABLE_RE = re.compile(r"^\|===[\s\S]*?\|===", re.MULTILINE)
COLS_ATTR_RE = re.compile(r"""cols\s*=\s*(?:"([^"]*)"|'([^']*)'|([^,\]]+))""")
COLS_MULTIPLIER_RE = re.compile(r"^\s*(\d+)\s*\*")


class TableKind(str, Enum):
    PARSED = "parsed"
    BEST_EFFORT = "best_effort"
    UNCHANGED = "unchanged"


@dataclass
class TableConversion:
    kind: TableKind
    text: str
    rows: List[List[str]] = field(default_factory=list)


def parse_column_count(block: str) -> Optional[int]:
    """Column count declared by a ``[cols=...]`` attribute, if any.

    Supports ``cols="1,2,3"`` (one entry per column) and ``cols="3*"``.
    """
    for line in block.split("\n"):
        stripped = line.strip()
        if not stripped.startswith("[cols="):
            continue
        match = COLS_ATTR_RE.search(stripped)
        if not match:
            return None
        cols_value = next(g for g in match.groups() if g is not None).strip()
        multiplier = COLS_MULTIPLIER_RE.match(cols_value)
        if multiplier:
            count = int(multiplier.group(1))
        else:
            count = len([c for c in cols_value.split(",") if c.strip()])
        return count or None
    return None


def _split_cells(line: str) -> List[str]:
    # Drop the text before the first "|" and any empty cells
    return [c.strip() for c in line.strip().split("|")[1:] if c.strip()]


def _data_lines(block: str) -> List[str]:
    return [
        line
        for line in block.split("\n")
        if line.strip()
        and not line.strip().startswith("|===")
        and not line.strip().startswith("[cols=")
    ]


def _render(rows: List[List[str]]) -> str:
    lines = []
    for i, row in enumerate(rows):
        lines.append("| " + " | ".join(row) + " |")
        if i == 0:
            lines.append("|" + "|".join("---" for _ in row) + "|")
    return "\n".join(lines)


def _parse_rows(lines: List[str], column_count: Optional[int]) -> List[List[str]]:
    rows: List[List[str]] = []
    for line in lines:
        stripped = line.strip()
        if stripped.startswith("|"):
            cells = _split_cells(stripped)
            if cells:
                rows.append(cells)
        elif rows:
            # Continuation of the previous cell
            rows[-1][-1] += " " + stripped

    if column_count and rows:
        flat = [cell for row in rows for cell in row]
        rows = [flat[i : i + column_count] for i in range(0, len(flat), column_count)]
    return rows


def convert_table(block: str) -> TableConversion:
    """Convert a single AsciiDoc table block."""
    lines = _data_lines(block)
    if not lines:
        return TableConversion(kind=TableKind.UNCHANGED, text=block)

    rows = _parse_rows(lines, parse_column_count(block))
    if rows and len({len(row) for row in rows}) == 1:
        return TableConversion(kind=TableKind.PARSED, text=_render(rows), rows=rows)

    cells = [cell for line in lines if line.strip().startswith("|") for cell in _split_cells(line)]
    if len(cells) >= 2:
        paired = [[cells[i], cells[i + 1] if i + 1 < len(cells) else ""] for i in range(0, len(cells), 2)]
        return TableConversion(kind=TableKind.BEST_EFFORT, text=_render(paired), rows=paired)

    return TableConversion(kind=TableKind.UNCHANGED, text=block)


def convert_tables(content: str) -> str:
    """Replace every table block in the text with its converted form."""
    result = COLS_TABLE_RE.sub(lambda m: convert_table(m.group(0)).text, content)
    return SIMPLE_TABLE_RE.sub(lambda m: convert_table(m.group(0)).text, result)
