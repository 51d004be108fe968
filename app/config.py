from __future__ import annotations

import os
from pathlib import Path
from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "public_url": None,
        "public_url_env": "APP_URL",
        "pay_path": "/pay-bolletta",
    },
    "intake": {
        "session_ttl_minutes": 30,
        "missing_account_policy": "best_effort",
        "log_jobs": True,
        "iban_countries": ["IT"],
        "max_document_bytes": 10 * 1024 * 1024,
    },
    "extraction": {
        "model": {
            "enabled": True,
            "base_url": "https://api.openai.com/v1",
            "model": "gpt-4o-mini",
            "api_key": None,
            "api_key_env": "OPENAI_API_KEY",
            "timeout_sec": 30,
            "max_chars": 12000,
        },
        "heuristic": {
            "payee_window_lines": 12,
        },
        "pdf": {
            "max_pages": 5,
        },
        "ocr": {
            "engine": "none",
            "engines": {
                "tesseract": {
                    "lang": "ita",
                    "cmd": None,
                    "tessdata_dir": None,
                },
            },
        },
    },
    "store": {
        "backend": "sqlite",
        "sqlite_path": "data/store/records.db",
        "collections": {
            "sessions": "sessions",
            "bills": "bills",
            "jobs": "jobs",
        },
        "dynamodb": {
            "region": None,
            "table_prefix": "billbot",
            "indexes": {
                "sessions": {"sender": "sender_index"},
            },
        },
        "airtable": {
            "base_id": None,
            "base_id_env": "AIRTABLE_BASE_ID",
            "api_key": None,
            "api_key_env": "AIRTABLE_API_KEY",
            "api_base_url": "https://api.airtable.com/v0",
            "timeout_sec": 10,
        },
    },
    "whatsapp": {
        "enabled": True,
        "webhook_path": "/whatsapp/webhook",
        "public_webhook_url": None,
        "validate_signature": True,
        "account_sid": None,
        "account_sid_env": "TWILIO_ACCOUNT_SID",
        "auth_token": None,
        "auth_token_env": "TWILIO_AUTH_TOKEN",
        "timeout_sec": 10,
        "allowed_senders": [],
    },
    "output": {
        "pretty_json": True,
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    if not config_path:
        return DEFAULT_CONFIG

    path = Path(config_path)
    if not path.exists():
        return DEFAULT_CONFIG

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return DEFAULT_CONFIG

    data: dict[str, Any] | None = None
    if path.suffix.lower() == ".json":
        import json

        loaded = json.loads(text)
        data = loaded if isinstance(loaded, dict) else {}
    else:
        import yaml

        loaded = yaml.safe_load(text)
        data = loaded if isinstance(loaded, dict) else {}

    if data is None:
        data = {}
    return deep_merge(DEFAULT_CONFIG, data)


def resolve_secret(section: dict[str, Any], key: str) -> str | None:
    """Return ``section[key]`` or, when unset, the env var named by ``section[key + "_env"]``."""
    value = section.get(key)
    text = str(value or "").strip()
    if text:
        return text
    env_name = str(section.get(f"{key}_env") or "").strip()
    if not env_name:
        return None
    env_value = os.getenv(env_name, "").strip()
    return env_value or None
