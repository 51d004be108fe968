from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def dump_json(payload: dict[str, Any], pretty: bool = True) -> str:
    if pretty:
        return json.dumps(payload, ensure_ascii=False, indent=2)
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def write_json(path: str | Path, payload: dict[str, Any], pretty: bool = True) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(dump_json(payload, pretty=pretty), encoding="utf-8")
    return output_path
