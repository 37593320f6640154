#!/usr/bin/env python3
"""
Preview a settlement from a JSON file of line items (no DB).

Runs the same calculator and validation pass the review screen uses and
prints the summary, the components and any validation issues as JSON.

Usage:
  python3 scripts/preview_settlement.py \\
    --items items.json --management-fee 200 --service-type cohosting \\
    [--total-revenue 3000]

items.json is a list of objects with ``id``, ``item_type``, ``amount`` and
optionally ``item_id``, ``description``, ``verified``, ``excluded``,
``fee_type``.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from settlement_engines.settlement import (  # noqa: E402
    build_settlement_summary,
    calculate_settlement_outcome,
)
from settlement_engines.validation import validate_reconciliation  # noqa: E402
from settlement_kernel.domain.line_items import line_item_from_record  # noqa: E402
from settlement_kernel.domain.reconciliation import ServiceType  # noqa: E402
from settlement_kernel.logging_config import configure_logging  # noqa: E402


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc


def build_report(records: list[dict], management_fee: Decimal,
                 total_revenue: Decimal | None, service_type: str) -> dict:
    items = tuple(line_item_from_record(r) for r in records)
    outcome = calculate_settlement_outcome(items, management_fee, total_revenue, service_type)
    summary = build_settlement_summary(outcome.result, service_type)
    issues = validate_reconciliation(items)
    return {
        "summary": summary.to_dict(),
        "components": outcome.result.to_dict(),
        "error": asdict(outcome.error) if outcome.error else None,
        "issues": [
            {**asdict(issue), "severity": issue.severity.value} for issue in issues
        ],
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Preview a reconciliation settlement from line items JSON.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--items", type=Path, required=True,
                        help="Path to a JSON list of line items")
    parser.add_argument("--management-fee", type=_decimal_arg, required=True,
                        help="Management fee for the period")
    parser.add_argument("--service-type", choices=[s.value for s in ServiceType],
                        default=ServiceType.COHOSTING.value)
    parser.add_argument("--total-revenue", type=_decimal_arg, default=Decimal("0"),
                        help="Booking revenue (full_service only)")
    parser.add_argument("--log-level", default="WARNING",
                        help="Structured log level written to stderr")
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level.upper())

    if not args.items.exists():
        print(f"ERROR: Items file not found: {args.items}", file=sys.stderr)
        return 1

    with open(args.items) as f:
        records = json.load(f)
    if not isinstance(records, list):
        print("ERROR: Items file must contain a JSON list", file=sys.stderr)
        return 1

    try:
        report = build_report(records, args.management_fee, args.total_revenue,
                              args.service_type)
    except (KeyError, ValueError) as exc:
        print(f"ERROR: Invalid line item: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
