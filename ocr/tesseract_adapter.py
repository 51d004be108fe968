from __future__ import annotations

import os
from io import BytesIO
from pathlib import Path
from typing import Any

from ocr.base import OCRAdapterError, OCRText


class TesseractAdapter:
    name = "tesseract"
    version = "unknown"

    def __init__(
        self,
        lang: str = "ita",
        tesseract_cmd: str | None = None,
        tessdata_dir: str | None = None,
    ) -> None:
        self.lang = lang
        self.tesseract_cmd = tesseract_cmd
        self.tessdata_dir = tessdata_dir
        self._pytesseract: Any = None
        self._image_module: Any = None
        self._load_dependency()

    def _load_dependency(self) -> None:
        try:
            import pytesseract  # type: ignore
            from PIL import Image  # type: ignore
        except Exception as exc:
            raise OCRAdapterError(
                "tesseract adapter requires pytesseract and pillow. "
                "Install dependencies and Tesseract OCR binary."
            ) from exc
        self._pytesseract = pytesseract
        self._image_module = Image
        if self.tesseract_cmd and Path(self.tesseract_cmd).exists():
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        if self.tessdata_dir:
            os.environ["TESSDATA_PREFIX"] = self.tessdata_dir

        try:
            self.version = str(pytesseract.get_tesseract_version())
        except Exception:
            self.version = "unknown"

    def healthcheck(self) -> bool:
        if self._pytesseract is None:
            return False
        try:
            _ = self._pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False

    def run(self, data: bytes) -> OCRText:
        if self._pytesseract is None or self._image_module is None:
            raise OCRAdapterError("tesseract dependency is not available.")

        try:
            image = self._image_module.open(BytesIO(data))
            ocr_data = self._pytesseract.image_to_data(
                image,
                lang=self.lang,
                output_type=self._pytesseract.Output.DICT,
            )
        except Exception as exc:
            raise OCRAdapterError(f"tesseract failed: {exc}") from exc
        return OCRText(
            engine=self.name,
            engine_version=self.version,
            lines=self._to_lines(ocr_data),
            metadata={"lang": self.lang},
        )

    @staticmethod
    def _to_lines(data: dict[str, list[Any]]) -> list[str]:
        lines: dict[tuple[int, int, int, int], list[str]] = {}
        count = len(data.get("text", []))

        for i in range(count):
            text = str(data["text"][i]).strip()
            if not text:
                continue
            key = (
                int(data.get("page_num", [1] * count)[i]),
                int(data.get("block_num", [0] * count)[i]),
                int(data.get("par_num", [0] * count)[i]),
                int(data.get("line_num", [i] * count)[i]),
            )
            lines.setdefault(key, []).append(text)

        return [" ".join(parts).strip() for _, parts in sorted(lines.items())]
