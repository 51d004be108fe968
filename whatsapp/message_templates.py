from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from core.models import ValidatedFields

STEP_PROMPTS = {
    "ente": (
        "Ok, paghiamo una bolletta. A chi va pagata? Scrivi il nome del fornitore (es. Enel Energia).\n"
        "Puoi anche mandarmi una foto o un PDF della bolletta. Scrivi \"annulla\" per uscire."
    ),
    "importo": "Importo da pagare? (es. 49,90)",
    "iban": "IBAN del beneficiario? (es. IT60X0542811101000000123456)",
    "scadenza": "Data di scadenza? (es. 10/09/2025) Se non c'è scrivi \"nessuna\".",
}
STEP_INVALID = {
    "ente": "Scrivi il nome del fornitore (es. Enel Energia).",
    "importo": "Importo non valido. Scrivilo così: 49,90",
    "iban": "IBAN non valido. Controllalo e riprova (es. IT60X0542811101000000123456).",
    "scadenza": "Data non valida. Usa GG/MM/AAAA oppure AAAA-MM-GG, o scrivi \"nessuna\".",
}
_ISO_DATE_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})$")


def _text_message(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def format_amount(amount: Decimal | None) -> str:
    if amount is None:
        return "-"
    integer, _, cents = format(amount, "f").partition(".")
    grouped = f"{int(integer):,}".replace(",", ".")
    return f"€ {grouped},{(cents or '00')[:2].ljust(2, '0')}"


def format_date(value: str | None) -> str:
    if not value:
        return "nessuna"
    match = _ISO_DATE_RE.match(value)
    if match is None:
        return value
    return f"{match.group('day')}/{match.group('month')}/{match.group('year')}"


def build_step_prompt(step: str) -> list[dict[str, Any]]:
    return [_text_message(STEP_PROMPTS[step])]


def build_invalid_value_message(step: str) -> list[dict[str, Any]]:
    return [_text_message(STEP_INVALID[step])]


def build_cancelled_message() -> list[dict[str, Any]]:
    return [_text_message("Ok, operazione annullata. Scrivi \"bolletta\" quando vuoi ricominciare.")]


def build_summary_message(fields: ValidatedFields, link: str, from_document: bool = False) -> list[dict[str, Any]]:
    lines = ["Ho letto la bolletta:" if from_document else "Ecco il riepilogo:"]
    lines.extend(
        [
            f"Ente: {fields.ente}",
            f"Importo: {format_amount(fields.amount)}",
            f"IBAN: {fields.iban or 'non rilevato'}",
            f"Scadenza: {format_date(fields.scadenza)}",
            f"Descrizione: {fields.descr}",
        ]
    )
    if fields.iban is None:
        lines.append("Attenzione: IBAN non rilevato, controllalo prima di pagare.")
    lines.append("")
    lines.append(f"Paga qui: {link}")
    return [_text_message("\n".join(lines))]


def build_unsupported_document_message() -> list[dict[str, Any]]:
    return [_text_message("Formato non supportato. Mandami una foto (JPG/PNG) o un PDF della bolletta.")]


def build_unreadable_document_message() -> list[dict[str, Any]]:
    return [
        _text_message(
            "Non riesco a leggere la bolletta. Prova con una foto più nitida, "
            "oppure scrivi \"bolletta\" e inserisci i dati a mano."
        )
    ]


def build_missing_account_message() -> list[dict[str, Any]]:
    return [
        _text_message(
            "Non ho trovato un IBAN valido nel documento. Mandami una foto più nitida, "
            "oppure scrivi \"bolletta\" e inserisci i dati a mano."
        )
    ]


def build_media_unavailable_message() -> list[dict[str, Any]]:
    return [_text_message("Non sono riuscito a scaricare il file. Riprova a inviarlo.")]


def build_retry_message() -> list[dict[str, Any]]:
    return [_text_message("Si è verificato un errore temporaneo. Riprova tra poco.")]
