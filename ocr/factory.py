from __future__ import annotations

from typing import Any

from ocr.base import OCRAdapter, OCRAdapterError
from ocr.tesseract_adapter import TesseractAdapter

DISABLED_ENGINES = {"", "none", "off", "disabled"}


def _canonical_engine_name(name: str) -> str:
    return name.strip().lower()


def create_ocr_adapter(config: dict[str, Any], engine_name: str | None = None) -> OCRAdapter | None:
    ocr_conf = config.get("extraction", {}).get("ocr", {})
    requested = engine_name if engine_name is not None else str(ocr_conf.get("engine", "none") or "none")
    name = _canonical_engine_name(requested)
    if name in DISABLED_ENGINES:
        return None

    engines_conf = ocr_conf.get("engines", {})
    if name == "tesseract":
        tconf = engines_conf.get("tesseract", {}) if isinstance(engines_conf, dict) else {}
        return TesseractAdapter(
            lang=str(tconf.get("lang", "ita")),
            tesseract_cmd=tconf.get("cmd"),
            tessdata_dir=tconf.get("tessdata_dir"),
        )

    raise OCRAdapterError(f"unsupported OCR engine: {requested}")
