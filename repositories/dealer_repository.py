"""
Dealer repository: letterhead and sales settings for the selling dealer.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.dealer import (
    DEFAULT_DEPOSIT_RECEIPT_PREFIX,
    DEFAULT_INVOICE_PREFIX,
    DEFAULT_PAYMENT_RECEIPT_PREFIX,
    Dealer,
    SalesSettings,
)
from repositories.client import execute, get_supabase, rows_of

_DEALERS_TABLE: str = "dealers"


def _row_to_dealer(row: Mapping[str, Any]) -> Dealer:
    settings = row.get("sales_settings") or {}
    return Dealer(
        dealer_id=UUID(str(row["dealer_id"])),
        name=str(row.get("name") or ""),
        company_name=row.get("company_name"),
        company_address=row.get("company_address"),
        company_phone=row.get("company_phone"),
        company_email=row.get("company_email"),
        logo_key=row.get("logo_key"),
        logo_url=row.get("logo_url"),
        sales_settings=SalesSettings(
            invoice_number_prefix=settings.get("invoice_number_prefix") or DEFAULT_INVOICE_PREFIX,
            deposit_receipt_prefix=settings.get("deposit_receipt_prefix") or DEFAULT_DEPOSIT_RECEIPT_PREFIX,
            payment_receipt_prefix=settings.get("payment_receipt_prefix") or DEFAULT_PAYMENT_RECEIPT_PREFIX,
            # Only an explicit false marks a dealer as not VAT registered
            vat_registered=settings.get("vat_registered") is not False,
            vat_number=settings.get("vat_number"),
            company_number=settings.get("company_number"),
            bank_details=dict(settings.get("bank_details") or {}),
            terms=dict(settings.get("terms") or {}),
        ),
    )


class SupabaseDealerRepository:
    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def get_dealer(self, dealer_id: UUID) -> Optional[Dealer]:
        response = execute(
            self._client.table(_DEALERS_TABLE).select("*").eq("dealer_id", str(dealer_id)).limit(1),
            "fetch dealer",
        )
        rows = rows_of(response)
        if not rows:
            return None
        return _row_to_dealer(rows[0])


__all__ = ["SupabaseDealerRepository"]
