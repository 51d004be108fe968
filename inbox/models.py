from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ConversationSession:
    record_id: str
    sender: str
    step: str
    collected: dict[str, Any] = field(default_factory=dict)
    last_activity_at: str = ""
    version: int = 1
