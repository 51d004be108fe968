from __future__ import annotations

from core.enums import DocumentKind

IMAGE_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")
PDF_CONTENT_TYPES = ("application/pdf", "application/x-pdf")
TEXT_CONTENT_TYPES = ("text/plain",)

PDF_MAGIC = b"%PDF-"
IMAGE_MAGIC = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)
EXTENSION_KINDS = {
    ".pdf": DocumentKind.PDF,
    ".jpg": DocumentKind.IMAGE,
    ".jpeg": DocumentKind.IMAGE,
    ".png": DocumentKind.IMAGE,
    ".webp": DocumentKind.IMAGE,
    ".gif": DocumentKind.IMAGE,
    ".txt": DocumentKind.TEXT,
}


def _base_content_type(content_type: str | None) -> str:
    return str(content_type or "").split(";")[0].strip().lower()


class DocumentClassifier:
    def classify(
        self,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> tuple[DocumentKind, list[str]]:
        reasons: list[str] = []
        if not data:
            return DocumentKind.UNSUPPORTED, ["empty_document"]

        mime = _base_content_type(content_type)
        if mime in PDF_CONTENT_TYPES:
            return DocumentKind.PDF, [f"content_type:{mime}"]
        if mime in IMAGE_CONTENT_TYPES:
            return DocumentKind.IMAGE, [f"content_type:{mime}"]
        if mime in TEXT_CONTENT_TYPES:
            return DocumentKind.TEXT, [f"content_type:{mime}"]
        if mime:
            reasons.append(f"unknown_content_type:{mime}")

        # Transports sometimes label documents application/octet-stream; trust the bytes.
        if data.startswith(PDF_MAGIC):
            return DocumentKind.PDF, reasons + ["magic:pdf"]
        for magic, guessed in IMAGE_MAGIC:
            if data.startswith(magic):
                return DocumentKind.IMAGE, reasons + [f"magic:{guessed}"]
        if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
            return DocumentKind.IMAGE, reasons + ["magic:image/webp"]

        if filename:
            suffix = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
            kind = EXTENSION_KINDS.get(suffix)
            if kind is not None:
                return kind, reasons + [f"extension:{suffix}"]

        return DocumentKind.UNSUPPORTED, reasons + ["no_known_signature"]


def guess_image_content_type(data: bytes, fallback: str = "image/jpeg") -> str:
    for magic, guessed in IMAGE_MAGIC:
        if data.startswith(magic):
            return guessed
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return fallback
