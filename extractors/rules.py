from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence


@dataclass(frozen=True, slots=True)
class NamedRule:
    """A pure text -> value rule. Returns None when it does not apply."""

    name: str
    apply: Callable[[str], Optional[str]]


def first_match(rules: Sequence[NamedRule], text: str | None) -> tuple[Optional[str], Optional[str]]:
    if not text:
        return None, None
    for rule in rules:
        value = rule.apply(text)
        if value not in (None, ""):
            return value, rule.name
    return None, None
