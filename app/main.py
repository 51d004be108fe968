from __future__ import annotations

import argparse
import mimetypes
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from app.config import load_config, resolve_secret
from app.pipeline import BillExtractionPipeline
from core.models import ExtractionResult
from extractors.validators import build_validated_fields, normalize_date, parse_amount, validate_iban
from io_utils.json_writer import dump_json, write_json
from ocr.base import OCRAdapterError
from ocr.factory import create_ocr_adapter
from payments.link_builder import DEFAULT_PAY_PATH, build_payment_link


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bill field extractor and payment-link builder")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Extract payment fields from one bill file")
    extract_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    extract_parser.add_argument("--file", required=True)
    extract_parser.add_argument("--content-type", default=None)
    extract_parser.add_argument("--ocr-engine", default=None)
    extract_parser.add_argument("--no-model", action="store_true", help="Heuristic extraction only")
    extract_parser.add_argument("--output", default=None, help="Optional output JSON path")

    text_parser = subparsers.add_parser("extract-text", help="Extract payment fields from pasted bill text")
    text_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    text_parser.add_argument("--text", required=True)
    text_parser.add_argument("--no-model", action="store_true", help="Heuristic extraction only")

    link_parser = subparsers.add_parser("link", help="Build a payment link from field values")
    link_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    link_parser.add_argument("--importo", default=None)
    link_parser.add_argument("--ente", default=None)
    link_parser.add_argument("--iban", default=None)
    link_parser.add_argument("--scadenza", default=None)
    link_parser.add_argument("--descr", default=None)
    link_parser.add_argument("--base-url", default=None)

    health_parser = subparsers.add_parser("healthcheck-ocr", help="Check OCR adapter availability")
    health_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    health_parser.add_argument("--ocr-engine", default=None)

    return parser


def _runtime_config(config: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    updated = deepcopy(config)
    extraction_conf = updated.setdefault("extraction", {})
    if getattr(args, "no_model", False):
        extraction_conf.setdefault("model", {})["enabled"] = False
    engine = getattr(args, "ocr_engine", None)
    if engine:
        extraction_conf.setdefault("ocr", {})["engine"] = engine
    return updated


def _print_result(result: ExtractionResult, config: dict[str, Any]) -> None:
    fields = result.fields
    print(
        f"kind={result.document_kind.value} ente={fields.ente} importo={fields.amount_text() or '-'} "
        f"iban={fields.iban or '-'} scadenza={fields.scadenza or '-'} notes={','.join(result.notes) or '-'}"
    )
    pay_path = str(config.get("app", {}).get("pay_path") or DEFAULT_PAY_PATH)
    if result.has_payable_fields():
        print(f"link: {build_payment_link(fields, resolve_secret(config.get('app', {}), 'public_url'), pay_path)}")


def cmd_extract(args: argparse.Namespace, config: dict[str, Any]) -> int:
    runtime_config = _runtime_config(config, args)
    path = Path(args.file)
    if not path.exists():
        print(f"file not found: {path}")
        return 1
    content_type = args.content_type or mimetypes.guess_type(path.name)[0]
    pipeline = BillExtractionPipeline(runtime_config)
    result = pipeline.process_document(path.read_bytes(), content_type, filename=path.name)

    pretty = bool(runtime_config.get("output", {}).get("pretty_json", True))
    if args.output:
        output_path = write_json(args.output, payload=result.to_dict(), pretty=pretty)
        print(f"saved: {output_path}")
    else:
        print(dump_json(result.to_dict(), pretty=pretty))
    _print_result(result, runtime_config)
    return 0 if result.has_payable_fields() else 2


def cmd_extract_text(args: argparse.Namespace, config: dict[str, Any]) -> int:
    runtime_config = _runtime_config(config, args)
    pipeline = BillExtractionPipeline(runtime_config)
    result = pipeline.process_text(args.text)
    print(dump_json(result.to_dict(), pretty=bool(runtime_config.get("output", {}).get("pretty_json", True))))
    _print_result(result, runtime_config)
    return 0 if result.has_payable_fields() else 2


def cmd_link(args: argparse.Namespace, config: dict[str, Any]) -> int:
    amount = parse_amount(args.importo) if args.importo else None
    if args.importo and amount is None:
        print(f"invalid importo: {args.importo}")
        return 1
    countries = tuple(config.get("intake", {}).get("iban_countries", ["IT"]))
    iban = validate_iban(args.iban, countries) if args.iban else None
    if args.iban and iban is None:
        print(f"invalid iban: {args.iban}")
        return 1
    scadenza = normalize_date(args.scadenza) if args.scadenza else None
    if args.scadenza and scadenza is None:
        print(f"invalid scadenza: {args.scadenza}")
        return 1

    fields = build_validated_fields(ente=args.ente, iban=iban, amount=amount, scadenza=scadenza, descr=args.descr)
    app_conf = config.get("app", {})
    base_url = args.base_url or resolve_secret(app_conf, "public_url")
    print(build_payment_link(fields, base_url, str(app_conf.get("pay_path") or DEFAULT_PAY_PATH)))
    return 0


def cmd_healthcheck_ocr(args: argparse.Namespace, config: dict[str, Any]) -> int:
    runtime_config = _runtime_config(config, args)
    try:
        adapter = create_ocr_adapter(runtime_config)
    except OCRAdapterError as exc:
        print(f"ocr unavailable: {exc}")
        return 1
    if adapter is None:
        print("ocr disabled")
        return 0
    healthy = adapter.healthcheck()
    print(f"{adapter.name}: {'ok' if healthy else 'unavailable'} version={adapter.version}")
    return 0 if healthy else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config or os.getenv("BILLBOT_CONFIG_PATH"))

    if args.command == "extract":
        return cmd_extract(args, config)
    if args.command == "extract-text":
        return cmd_extract_text(args, config)
    if args.command == "link":
        return cmd_link(args, config)
    if args.command == "healthcheck-ocr":
        return cmd_healthcheck_ocr(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
