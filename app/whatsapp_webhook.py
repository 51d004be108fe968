from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from app.config import load_config
from whatsapp.webhook_handler import TWIML_MEDIA_TYPE, WhatsAppWebhookHandler

DEFAULT_CONFIG_PATH = "config.yaml"

logging.basicConfig(level=os.getenv("BILLBOT_LOG_LEVEL", "INFO"))

CONFIG_PATH = os.getenv("BILLBOT_CONFIG_PATH", DEFAULT_CONFIG_PATH)
CONFIG = load_config(CONFIG_PATH)
HANDLER = WhatsAppWebhookHandler(CONFIG)

app = FastAPI(title="Billbot WhatsApp Webhook", version="0.1.0")
WEBHOOK_PATH = str(CONFIG.get("whatsapp", {}).get("webhook_path", "/whatsapp/webhook"))


def _request_url(request: Request) -> str:
    url = request.url
    proto = request.headers.get("x-forwarded-proto")
    host = request.headers.get("x-forwarded-host")
    if proto:
        url = url.replace(scheme=proto)
    if host:
        url = url.replace(netloc=host)
    return str(url)


@app.get("/")
async def root() -> dict[str, Any]:
    return {"ok": True, "service": "billbot"}


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    return {"ok": True}


@app.post(WEBHOOK_PATH)
async def whatsapp_webhook(request: Request) -> Response:
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    signature = request.headers.get("X-Twilio-Signature")
    status_code, body = await run_in_threadpool(HANDLER.handle, params, _request_url(request), signature)
    return Response(content=body, status_code=status_code, media_type=TWIML_MEDIA_TYPE)
