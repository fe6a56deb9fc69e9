"""
Domain: Dealer (seller) letterhead and sales settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional
from uuid import UUID

from .deal import BuyerType, SaleChannel

DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_DEPOSIT_RECEIPT_PREFIX = "DEP"
DEFAULT_PAYMENT_RECEIPT_PREFIX = "PAY"


def terms_key(buyer_type: BuyerType, sale_channel: SaleChannel) -> str:
    """Key into `SalesSettings.terms`, e.g. "consumerInPerson" or "businessDistance"."""

    buyer = "business" if buyer_type is BuyerType.BUSINESS else "consumer"
    channel = "Distance" if sale_channel is SaleChannel.DISTANCE else "InPerson"
    return f"{buyer}{channel}"


@dataclass(frozen=True, slots=True)
class SalesSettings:
    invoice_number_prefix: str = DEFAULT_INVOICE_PREFIX
    deposit_receipt_prefix: str = DEFAULT_DEPOSIT_RECEIPT_PREFIX
    payment_receipt_prefix: str = DEFAULT_PAYMENT_RECEIPT_PREFIX
    vat_registered: bool = True
    vat_number: Optional[str] = None
    company_number: Optional[str] = None
    bank_details: Mapping[str, str] = field(default_factory=dict)
    terms: Mapping[str, str] = field(default_factory=dict)

    def terms_text_for(self, buyer_type: BuyerType, sale_channel: SaleChannel) -> str:
        """Terms for the buyer category and channel, falling back to consumer in-person terms."""

        key = terms_key(buyer_type, sale_channel)
        return self.terms.get(key) or self.terms.get("consumerInPerson") or ""


@dataclass(frozen=True, slots=True)
class Dealer:
    dealer_id: UUID
    name: str
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    company_email: Optional[str] = None
    logo_key: Optional[str] = None  # storage key; signed fresh per document
    logo_url: Optional[str] = None  # last known URL, used as fallback
    sales_settings: SalesSettings = field(default_factory=SalesSettings)
