"""Line and cell splitting for the comma-delimited statement exports."""

from __future__ import annotations

import re

BOM = "\ufeff"
_LINE_BREAK_RE = re.compile(r"\r?\n")


def strip_bom(value: str) -> str:
    return value.lstrip(BOM)


def parse_csv_row(line: str) -> list[str]:
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False

    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < length and line[index + 1] == '"':
                current.append('"')
                index += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            cells.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1

    cells.append("".join(current))
    return [strip_bom(cell.strip()) for cell in cells]


def split_lines(text: str) -> list[str]:
    """Split raw export text into trimmed, non-blank lines."""
    lines = (strip_bom(line.strip()) for line in _LINE_BREAK_RE.split(text))
    return [line for line in lines if line]
