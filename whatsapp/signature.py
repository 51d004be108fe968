from __future__ import annotations

from typing import Any, Mapping

from twilio.request_validator import RequestValidator


def verify_twilio_signature(
    auth_token: str,
    url: str,
    params: Mapping[str, Any],
    signature: str | None,
) -> bool:
    token = (auth_token or "").strip()
    received = (signature or "").strip()
    if not token or not received or not url:
        return False
    validator = RequestValidator(token)
    return bool(validator.validate(url, dict(params), received))
