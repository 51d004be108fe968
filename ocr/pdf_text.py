from __future__ import annotations

from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ocr.base import OCRAdapterError

DEFAULT_MAX_PAGES = 5


class PdfTextReader:
    name = "pypdf"

    def __init__(self, max_pages: int = DEFAULT_MAX_PAGES) -> None:
        self.max_pages = max(1, int(max_pages))

    def read(self, data: bytes) -> str:
        if not data.startswith(b"%PDF-"):
            raise OCRAdapterError("document is not a PDF")
        try:
            reader = PdfReader(BytesIO(data))
            if reader.is_encrypted:
                reader.decrypt("")
            parts: list[str] = []
            for page in reader.pages[: self.max_pages]:
                parts.append(page.extract_text() or "")
        except (PyPdfError, ValueError, KeyError) as exc:
            raise OCRAdapterError(f"pdf text extraction failed: {exc}") from exc
        return "\n".join(part.strip() for part in parts if part.strip())
