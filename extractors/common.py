from __future__ import annotations

import re


def normalize_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def split_lines(text: str | None) -> list[str]:
    if not text:
        return []
    lines: list[str] = []
    for raw in str(text).splitlines():
        line = normalize_spaces(raw)
        if line:
            lines.append(line)
    return lines


def first_lines(text: str | None, limit: int) -> list[str]:
    return split_lines(text)[: max(0, int(limit))]
