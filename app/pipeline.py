from __future__ import annotations

import logging
from typing import Any

from app.config import resolve_secret
from classify.document_classifier import DocumentClassifier, guess_image_content_type
from core.enums import DocumentKind
from core.models import CandidateFields, ExtractionResult
from extractors.heuristic import HeuristicExtractor
from extractors.merger import merge_with_sources
from extractors.model_extractor import ModelExtractionError, ModelExtractor
from ocr.base import OCRAdapter, OCRAdapterError
from ocr.factory import create_ocr_adapter
from ocr.pdf_text import PdfTextReader

logger = logging.getLogger(__name__)


def model_extractor_from_config(config: dict[str, Any]) -> ModelExtractor:
    mconf = config.get("extraction", {}).get("model", {})
    return ModelExtractor(
        api_key=resolve_secret(mconf, "api_key"),
        base_url=str(mconf.get("base_url") or "https://api.openai.com/v1"),
        model=str(mconf.get("model") or "gpt-4o-mini"),
        timeout_sec=float(mconf.get("timeout_sec", 30)),
        max_chars=int(mconf.get("max_chars", 12000)),
        enabled=bool(mconf.get("enabled", True)),
    )


class BillExtractionPipeline:
    def __init__(
        self,
        config: dict[str, Any],
        model_extractor: ModelExtractor | None = None,
        ocr_adapter: OCRAdapter | None = None,
    ) -> None:
        self.config = config
        extraction_conf = config.get("extraction", {})
        heuristic_conf = extraction_conf.get("heuristic", {})
        self.iban_countries = tuple(config.get("intake", {}).get("iban_countries", ["IT"]))
        self.classifier = DocumentClassifier()
        self.heuristic_extractor = HeuristicExtractor(
            payee_window_lines=int(heuristic_conf.get("payee_window_lines", 12)),
            iban_countries=self.iban_countries,
        )
        self.model_extractor = model_extractor or model_extractor_from_config(config)
        self.pdf_reader = PdfTextReader(max_pages=int(extraction_conf.get("pdf", {}).get("max_pages", 5)))
        self._ocr_adapter = ocr_adapter
        self._ocr_loaded = ocr_adapter is not None

    def classify(self, data: bytes, content_type: str | None, filename: str | None = None) -> DocumentKind:
        kind, _ = self.classifier.classify(data, content_type, filename)
        return kind

    def process_document(
        self,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> ExtractionResult:
        kind, reasons = self.classifier.classify(data, content_type, filename)
        notes = [f"classifier:{reason}" for reason in reasons]
        if kind == DocumentKind.UNSUPPORTED:
            return self._build_result(kind, None, CandidateFields(), notes + ["unsupported_document"], 0)

        text = self._read_text(kind, data, notes)
        heuristic = self.heuristic_extractor.extract(text)

        model: CandidateFields | None = None
        if not self.model_extractor.available():
            notes.append("model_unavailable")
        elif kind == DocumentKind.IMAGE:
            mime = content_type if str(content_type or "").startswith("image/") else guess_image_content_type(data)
            model = self._run_model(lambda: self.model_extractor.extract_from_image(data, mime), notes)
        elif text:
            model = self._run_model(lambda: self.model_extractor.extract_from_text(text), notes)
        else:
            notes.append("model_skipped_no_text")

        return self._build_result(kind, model, heuristic, notes, len(text or ""))

    def process_text(self, text: str) -> ExtractionResult:
        notes: list[str] = []
        heuristic = self.heuristic_extractor.extract(text)
        model: CandidateFields | None = None
        if not self.model_extractor.available():
            notes.append("model_unavailable")
        elif text.strip():
            model = self._run_model(lambda: self.model_extractor.extract_from_text(text), notes)
        return self._build_result(DocumentKind.TEXT, model, heuristic, notes, len(text))

    def _read_text(self, kind: DocumentKind, data: bytes, notes: list[str]) -> str:
        if kind == DocumentKind.TEXT:
            return data.decode("utf-8", errors="replace")
        if kind == DocumentKind.PDF:
            try:
                text = self.pdf_reader.read(data)
            except OCRAdapterError as exc:
                logger.warning("pdf-read-failed error=%s", exc)
                notes.append("pdf_read_failed")
                return ""
            if not text:
                notes.append("pdf_text_empty")
            return text

        adapter = self._get_ocr_adapter(notes)
        if adapter is None:
            notes.append("ocr_disabled")
            return ""
        try:
            return adapter.run(data).text
        except OCRAdapterError as exc:
            logger.warning("ocr-failed engine=%s error=%s", adapter.name, exc)
            notes.append("ocr_failed")
            return ""

    def _get_ocr_adapter(self, notes: list[str]) -> OCRAdapter | None:
        if not self._ocr_loaded:
            self._ocr_loaded = True
            try:
                self._ocr_adapter = create_ocr_adapter(self.config)
            except OCRAdapterError as exc:
                logger.warning("ocr-init-failed error=%s", exc)
                notes.append("ocr_init_failed")
                self._ocr_adapter = None
        return self._ocr_adapter

    @staticmethod
    def _run_model(call: Any, notes: list[str]) -> CandidateFields | None:
        try:
            return call()
        except ModelExtractionError as exc:
            logger.warning("model-extraction-failed error=%s", exc)
            notes.append("model_failed")
            return None

    def _build_result(
        self,
        kind: DocumentKind,
        model: CandidateFields | None,
        heuristic: CandidateFields,
        notes: list[str],
        text_length: int,
    ) -> ExtractionResult:
        fields, sources = merge_with_sources(model, heuristic, self.iban_countries)
        if not text_length and kind != DocumentKind.IMAGE:
            notes.append("text_empty")
        return ExtractionResult(
            document_kind=kind,
            fields=fields,
            model=model,
            heuristic=heuristic,
            sources=sources,
            notes=notes,
            text_length=text_length,
        )
