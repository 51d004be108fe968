from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any
from urllib import error, request

from core.models import CandidateFields

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_CHARS = 12000

SYSTEM_PROMPT = (
    "You extract payment fields from Italian utility bills and invoices.\n"
    "Only use information explicitly present in the document. Never guess.\n"
    "Return JSON only."
)
USER_INSTRUCTION = (
    "Extract exactly these fields from the bill and return a JSON object:\n"
    '  "ente": payee / provider name (string or null),\n'
    '  "iban": the IBAN the bill must be paid to (string or null),\n'
    '  "amount": the TOTAL DUE of the bill as a plain decimal number in the document currency, '
    "no thousands separators, no currency symbol (number or null),\n"
    '  "scadenza": the payment due date as YYYY-MM-DD (string or null),\n'
    '  "descr": a short payment description (string or null).\n'
    "Pick the total amount to pay, not taxes, partial amounts, previous balances or consumption figures.\n"
    "If a field is not clearly present, return null for it."
)

_NULLABLE_STRING = {"anyOf": [{"type": "string"}, {"type": "null"}]}
BILL_FIELDS_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "bill_fields_extraction",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "ente": _NULLABLE_STRING,
                "iban": _NULLABLE_STRING,
                "amount": {"anyOf": [{"type": "number"}, {"type": "null"}]},
                "scadenza": _NULLABLE_STRING,
                "descr": _NULLABLE_STRING,
            },
            "required": ["ente", "iban", "amount", "scadenza", "descr"],
        },
    },
}


class ModelExtractionError(RuntimeError):
    pass


class ModelExtractor:
    """One structured-extraction request per document against a chat-completions endpoint."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout_sec: float = 30.0,
        max_chars: int = DEFAULT_MAX_CHARS,
        enabled: bool = True,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model or DEFAULT_MODEL
        self.timeout_sec = float(timeout_sec)
        self.max_chars = int(max_chars)
        self.enabled = bool(enabled)

    def available(self) -> bool:
        return self.enabled and bool(self.api_key)

    def extract_from_text(self, text: str) -> CandidateFields:
        cleaned = truncate_text(text, max_chars=self.max_chars)
        if not cleaned:
            raise ModelExtractionError("document text is empty")
        content = USER_INSTRUCTION + "\n\nDocument text:\n" + cleaned
        return self._extract([{"type": "text", "text": content}])

    def extract_from_image(self, data: bytes, content_type: str | None) -> CandidateFields:
        if not data:
            raise ModelExtractionError("image is empty")
        mime = (content_type or "image/jpeg").split(";")[0].strip() or "image/jpeg"
        encoded = base64.b64encode(data).decode("ascii")
        return self._extract(
            [
                {"type": "text", "text": USER_INSTRUCTION},
                {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{encoded}"}},
            ]
        )

    def _extract(self, user_content: list[dict[str, Any]]) -> CandidateFields:
        if not self.available():
            raise ModelExtractionError("model extraction is not configured")
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": 0,
            "response_format": BILL_FIELDS_RESPONSE_FORMAT,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
        }
        try:
            raw = self._post_json("/chat/completions", payload)
        except _HttpStatusError as exc:
            # Some endpoints reject structured outputs; JSON mode is the fallback.
            if exc.status not in {400, 422}:
                raise ModelExtractionError(str(exc)) from exc
            logger.info("model-structured-output-rejected status=%s fallback=json_object", exc.status)
            payload["response_format"] = {"type": "json_object"}
            try:
                raw = self._post_json("/chat/completions", payload)
            except _HttpStatusError as retry_exc:
                raise ModelExtractionError(str(retry_exc)) from retry_exc

        content = _message_content(raw)
        parsed = parse_json_object(content)
        if not isinstance(parsed, dict):
            raise ModelExtractionError("model response is not a JSON object")
        return candidate_fields_from_json(parsed)

    def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = request.Request(url=f"{self.base_url}{path}", data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("Authorization", f"Bearer {self.api_key}")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise _HttpStatusError(exc.code, body) from exc
        except error.URLError as exc:
            raise ModelExtractionError(f"model api connection error: {exc}") from exc
        except TimeoutError as exc:
            raise ModelExtractionError("model api timeout") from exc
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ModelExtractionError("model api returned non-JSON body") from exc


class _HttpStatusError(RuntimeError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"model api error: status={status} body={body[:500]}")
        self.status = status


def _message_content(raw: Any) -> str:
    try:
        message = raw["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ModelExtractionError("model response has no message") from exc
    if not isinstance(message, dict):
        raise ModelExtractionError("model response has no message")
    if message.get("refusal"):
        raise ModelExtractionError(f"model refused: {message.get('refusal')}")
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ModelExtractionError("model response content is empty")
    return content


def candidate_fields_from_json(obj: dict[str, Any]) -> CandidateFields:
    def _text(key: str) -> str | None:
        value = obj.get(key)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    amount = obj.get("amount")
    if isinstance(amount, str):
        amount = amount.strip() or None
    elif not isinstance(amount, (int, float)) or isinstance(amount, bool):
        amount = None

    return CandidateFields(
        ente=_text("ente"),
        iban=_text("iban"),
        amount=amount,
        scadenza=_text("scadenza"),
        descr=_text("descr"),
    )


def truncate_text(text: str | None, *, max_chars: int) -> str:
    t = (text or "").replace("\u202f", " ").replace("\xa0", " ").strip()
    if not t:
        return ""
    if max_chars <= 0 or len(t) <= max_chars:
        return t
    return t[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"


def parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Models sometimes wrap the object in prose or code fences.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None
