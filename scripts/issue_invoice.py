#!/usr/bin/env python3
"""
Invoice Issuance Script

Issues (or re-fetches) the invoice for a deal against the Supabase database,
or voids the active one. Useful for back-office corrections outside the UI.

Usage:
    python issue_invoice.py --deal-id <uuid>
    python issue_invoice.py --deal-id <uuid> --finance-company-id <uuid> --finance-advance 8000
    python issue_invoice.py --deal-id <uuid> --void --reason "Wrong finance company"
"""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import get_repositories, get_settings
from domain.deal import PaymentMethod
from domain.errors import DealError
from repositories.errors import StorageUnavailableError
from services.invoice_service import InvoiceService, IssueInvoiceRequest


def _decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Not a valid amount: {raw!r}") from None


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Issue or void a deal invoice",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Issue the invoice (returns the existing one if already issued)
  python issue_invoice.py --deal-id 123e4567-e89b-12d3-a456-426614174000

  # Confirm finance and record the advance
  python issue_invoice.py --deal-id <uuid> --finance-company-id <uuid> --finance-advance 8000

  # Void the active invoice so a corrected one can be issued
  python issue_invoice.py --deal-id <uuid> --void --reason "Wrong address"
        """
    )

    parser.add_argument("--deal-id", "-d", required=True, type=UUID, help="Deal to invoice")
    parser.add_argument(
        "--payment-method",
        choices=[m.value for m in PaymentMethod],
        help="Payment method to record on the deal"
    )
    parser.add_argument("--finance-company-id", type=UUID, help="Confirmed finance company contact")
    parser.add_argument("--finance-company-name", help="Finance company name when there is no contact")
    parser.add_argument("--finance-advance", type=_decimal, help="Finance advance amount to record")
    parser.add_argument("--cancel-finance", action="store_true", help="Clear the finance selection")
    parser.add_argument("--void", action="store_true", help="Void the active invoice instead")
    parser.add_argument("--reason", help="Reason recorded when voiding")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    service = InvoiceService(get_repositories(), get_settings())

    try:
        if args.void:
            voided = service.void_invoice(args.deal_id, args.reason)
            print(f"✓ Voided invoice {voided.voided_document_number}")
            print(f"  Deal status: {voided.deal_status.value}")
            return 0

        result = service.issue_invoice(
            args.deal_id,
            IssueInvoiceRequest(
                payment_method=PaymentMethod(args.payment_method) if args.payment_method else None,
                finance_company_id=args.finance_company_id,
                finance_company_name=args.finance_company_name,
                finance_advance_amount=args.finance_advance,
                cancel_finance=args.cancel_finance,
            ),
        )

        print()
        print("=" * 60)
        print("INVOICE ALREADY ISSUED" if result.already_issued else "INVOICE ISSUED")
        print("=" * 60)
        print(f"Document number: {result.document_number}")
        print(f"Deal status:     {result.deal_status.value}")
        print(f"Grand total:     {result.grand_total}")
        print(f"Balance due:     {result.balance_due}")
        if result.share_url:
            print(f"Share URL:       {result.share_url}")
        print("=" * 60)
        return 0

    except DealError as e:
        print(f"\nERROR [{e.code}]: {e.message}", file=sys.stderr)
        if e.field:
            print(f"  Field: {e.field}", file=sys.stderr)
        if e.hint:
            print(f"  Hint:  {e.hint}", file=sys.stderr)
        return 1

    except StorageUnavailableError as e:
        print(f"\nERROR: {e} (safe to retry)", file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
