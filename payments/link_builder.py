from __future__ import annotations

from urllib.parse import urlencode

from core.models import ValidatedFields

DEFAULT_PAY_PATH = "/pay-bolletta"


def build_link_params(fields: ValidatedFields) -> list[tuple[str, str]]:
    """Ordered query parameters for the payment adapter; absent fields are omitted."""
    params: list[tuple[str, str]] = []
    amount = fields.amount_text()
    if amount:
        params.append(("importo", amount))
    if fields.ente:
        params.append(("ente", fields.ente))
    if fields.iban:
        params.append(("iban", fields.iban))
    if fields.descr:
        params.append(("descr", fields.descr))
    if fields.scadenza:
        params.append(("scadenza", fields.scadenza))
    return params


def build_payment_link(fields: ValidatedFields, base_url: str | None, path: str = DEFAULT_PAY_PATH) -> str:
    base = (base_url or "").rstrip("/")
    route = "/" + (path or DEFAULT_PAY_PATH).lstrip("/")
    query = urlencode(build_link_params(fields))
    return f"{base}{route}?{query}" if query else f"{base}{route}"
