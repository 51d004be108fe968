from __future__ import annotations

import re
from typing import Optional

from extractors.common import first_lines
from extractors.rules import NamedRule, first_match

DEFAULT_WINDOW_LINES = 12
NAME_MIN_LENGTH = 4
NAME_MAX_LENGTH = 49

PROVIDER_KEYWORDS = (
    "enel",
    "servizio elettrico nazionale",
    "eni plenitude",
    "plenitude",
    "a2a",
    "hera",
    "iren",
    "acea",
    "edison",
    "sorgenia",
    "engie",
    "italgas",
    "illumia",
    "estra",
    "acquedotto",
    "tim",
    "vodafone",
    "fastweb",
    "windtre",
    "iliad",
    "sky italia",
)

RE_LABEL_PREFIX = re.compile(
    r"^(?:bolletta|fattura|bill|invoice)\b(?:\s+(?:n|nr|no)\.?\s*\d\S*)?\s*[:\-–]?\s*",
    re.IGNORECASE,
)


def strip_label_prefix(line: str) -> str:
    return RE_LABEL_PREFIX.sub("", line, count=1).strip()


def _has_provider_keyword(line: str) -> bool:
    lowered = line.lower()
    for keyword in PROVIDER_KEYWORDS:
        if re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", lowered):
            return True
    return False


def _is_plausible_name(line: str) -> bool:
    return NAME_MIN_LENGTH <= len(line.strip()) <= NAME_MAX_LENGTH


class PayeeExtractor:
    def __init__(self, window_lines: int = DEFAULT_WINDOW_LINES) -> None:
        self.window_lines = max(1, int(window_lines))
        self.rules = (
            NamedRule("provider_keyword", self._provider_keyword),
            NamedRule("plausible_line", self._plausible_line),
        )

    def extract(self, text: str | None) -> tuple[Optional[str], Optional[str]]:
        raw, rule = first_match(self.rules, text)
        if raw is None:
            return None, None
        cleaned = strip_label_prefix(raw)
        if not cleaned:
            return None, None
        return cleaned, rule

    def _provider_keyword(self, text: str) -> Optional[str]:
        for line in first_lines(text, self.window_lines):
            if _has_provider_keyword(line):
                return line
        return None

    def _plausible_line(self, text: str) -> Optional[str]:
        for line in first_lines(text, self.window_lines):
            if _is_plausible_name(line):
                return line
        return None
