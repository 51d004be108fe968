from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(slots=True)
class OCRText:
    engine: str
    engine_version: str
    lines: list[str]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class OCRAdapter(Protocol):
    name: str
    version: str

    def run(self, data: bytes) -> OCRText:
        ...

    def healthcheck(self) -> bool:
        ...


class OCRAdapterError(RuntimeError):
    pass
