"""Terminal output helpers."""

from __future__ import annotations

import json
import sys
from typing import Any


def print_success(message: str) -> None:
    """Print a success line to stdout."""
    print(f"✅ {message}")  # noqa: T201


def print_error(message: str) -> None:
    """Print an error line to stderr."""
    print(f"❌ {message}", file=sys.stderr)  # noqa: T201


def print_json(data: Any) -> None:  # noqa: ANN401
    """Print data as indented JSON."""
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))  # noqa: T201


def print_status(message: str) -> None:
    """Print a progress line to stderr so stdout stays machine-readable."""
    print(message, file=sys.stderr)  # noqa: T201


def format_table(headers: list[str], rows: list[list[str]]) -> str:
    """Render rows as left-aligned columns under a header rule."""
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def render(cells: list[str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    lines = [render(headers), "  ".join("-" * w for w in widths)]
    lines.extend(render(row) for row in rows)
    return "\n".join(lines)


def print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print rows as a plain-text table."""
    print(format_table(headers, rows))  # noqa: T201
