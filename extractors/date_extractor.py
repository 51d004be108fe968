from __future__ import annotations

import re
from typing import Optional

from extractors.rules import NamedRule, first_match
from extractors.validators import normalize_date

RE_ISO_DATE = re.compile(r"(?<!\d)\d{4}-\d{2}-\d{2}(?!\d)")
RE_DMY_DATE = re.compile(r"(?<!\d)\d{1,2}(?P<sep>[/\-.])\d{1,2}(?P=sep)\d{4}(?!\d)")


def _iso_date(text: str) -> Optional[str]:
    match = RE_ISO_DATE.search(text)
    return normalize_date(match.group(0)) if match else None


def _dmy_date(text: str) -> Optional[str]:
    match = RE_DMY_DATE.search(text)
    return normalize_date(match.group(0)) if match else None


DATE_RULES = (
    NamedRule("iso_date", _iso_date),
    NamedRule("dmy_date", _dmy_date),
)


class DateExtractor:
    def extract(self, text: str | None) -> tuple[Optional[str], Optional[str]]:
        return first_match(DATE_RULES, text)
