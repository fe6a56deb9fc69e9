"""
Domain: Deal (vehicle sale) working record.

A Deal is the mutable-in-spirit record sales staff edit until a document
freezes a view of it. In code it is still a frozen value object: every change
returns a new instance via `dataclasses.replace`, and repositories persist the
result.

Status workflow:
    DRAFT -> DEPOSIT_TAKEN -> INVOICED -> DELIVERED -> COMPLETED
    CANCELLED is reachable from any non-terminal state.

This module contains only pure domain entities/value objects: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .contact import Address
from .money import ZERO
from .time import require_utc_timestamp
from .vat import DEFAULT_VAT_RATE, VatScheme, VatTreatment


class DealStatus(str, Enum):
    DRAFT = "DRAFT"
    DEPOSIT_TAKEN = "DEPOSIT_TAKEN"
    INVOICED = "INVOICED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (DealStatus.COMPLETED, DealStatus.CANCELLED)


class PaymentType(str, Enum):
    DEPOSIT = "DEPOSIT"
    BALANCE = "BALANCE"
    FINANCE_ADVANCE = "FINANCE_ADVANCE"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    FINANCE = "FINANCE"
    MIXED = "MIXED"
    OTHER = "OTHER"


class SaleType(str, Enum):
    RETAIL = "RETAIL"
    TRADE = "TRADE"
    EXPORT = "EXPORT"


class BuyerType(str, Enum):
    CONSUMER = "CONSUMER"
    BUSINESS = "BUSINESS"


class SaleChannel(str, Enum):
    IN_PERSON = "IN_PERSON"
    DISTANCE = "DISTANCE"


class WarrantyType(str, Enum):
    DEFAULT = "DEFAULT"
    TRADE = "TRADE"  # sold as seen / no warranty
    THIRD_PARTY = "THIRD_PARTY"


@dataclass(frozen=True, slots=True)
class DeliveryAddress:
    """Delivery address; only used when `is_different` is set."""

    is_different: bool = False
    address: Address = field(default_factory=Address)


@dataclass(frozen=True, slots=True)
class AddOn:
    name: str
    unit_price_net: Decimal
    qty: int = 1
    vat_treatment: VatTreatment = VatTreatment.STANDARD
    vat_rate: Decimal = DEFAULT_VAT_RATE


@dataclass(frozen=True, slots=True)
class Warranty:
    """
    Warranty selection on a deal.

    `included` with a gross price contributes to totals. A TRADE warranty
    only carries display terms. Both at once is rejected by the VAT engine.
    """

    included: bool = False
    type: WarrantyType = WarrantyType.DEFAULT
    name: Optional[str] = None
    description: Optional[str] = None
    duration_months: Optional[int] = None
    claim_limit: Optional[Decimal] = None  # None = unlimited
    price_gross: Decimal = ZERO
    vat_treatment: VatTreatment = VatTreatment.NO_VAT
    vat_rate: Decimal = DEFAULT_VAT_RATE
    trade_terms_text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FinanceSelection:
    is_financed: bool = False
    finance_company_contact_id: Optional[UUID] = None
    finance_company_name: Optional[str] = None
    to_be_confirmed: bool = False
    advance_amount: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class PartExchange:
    """A trade-in vehicle. Used both for the legacy single field and the list form."""

    allowance: Decimal = ZERO
    settlement: Decimal = ZERO
    vrm: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    vat_qualifying: bool = False
    has_finance: bool = False
    finance_company_name: Optional[str] = None
    has_settlement_in_writing: bool = False


@dataclass(frozen=True, slots=True)
class Payment:
    payment_id: UUID
    type: PaymentType
    amount: Decimal
    method: PaymentMethod
    paid_at: datetime
    reference: Optional[str] = None
    is_refunded: bool = False
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("paid_at", self.paid_at)


@dataclass(frozen=True, slots=True)
class Delivery:
    """
    Delivery terms.

    `original_amount_on_deposit` is captured the first time a deposit is taken
    and is the basis of the delivery credit when delivery is later removed.
    """

    amount_gross: Decimal = ZERO
    is_free: bool = False
    notes: Optional[str] = None
    original_amount_on_deposit: Optional[Decimal] = None

    @property
    def charge(self) -> Decimal:
        return ZERO if self.is_free else self.amount_gross


@dataclass(frozen=True, slots=True)
class SignaturePair:
    """Buyer and dealer signature image keys captured on a document."""

    customer_signature_key: Optional[str] = None
    dealer_signature_key: Optional[str] = None
    customer_signed_at: Optional[datetime] = None
    dealer_signed_at: Optional[datetime] = None

    @property
    def has_customer(self) -> bool:
        return bool(self.customer_signature_key)

    @property
    def has_dealer(self) -> bool:
        return bool(self.dealer_signature_key)


@dataclass(frozen=True, slots=True)
class SalesRequest:
    """Agreed work item (prep, accessory) shown on documents."""

    title: str
    details: Optional[str] = None
    type: str = "OTHER"
    status: str = "REQUESTED"


@dataclass(frozen=True, slots=True)
class Deal:
    deal_id: UUID
    dealer_id: UUID
    vehicle_id: UUID
    vat_scheme: VatScheme
    status: DealStatus = DealStatus.DRAFT
    deal_number: Optional[int] = None

    # Parties
    sold_to_contact_id: Optional[UUID] = None
    invoice_to_contact_id: Optional[UUID] = None
    delivery_address: Optional[DeliveryAddress] = None

    # Classification
    sale_type: SaleType = SaleType.RETAIL
    buyer_type: BuyerType = BuyerType.CONSUMER
    sale_channel: SaleChannel = SaleChannel.IN_PERSON
    payment_method: Optional[PaymentMethod] = None

    # Vehicle pricing
    vat_rate: Decimal = DEFAULT_VAT_RATE
    vehicle_price_net: Optional[Decimal] = None
    vehicle_vat_amount: Optional[Decimal] = None
    vehicle_price_gross: Optional[Decimal] = None

    add_ons: tuple[AddOn, ...] = ()
    warranty: Optional[Warranty] = None
    finance_selection: Optional[FinanceSelection] = None

    # Part exchange: legacy single reference plus the newer list
    part_exchange: Optional[PartExchange] = None
    part_exchanges: tuple[PartExchange, ...] = ()

    payments: tuple[Payment, ...] = ()
    delivery: Optional[Delivery] = None
    requests: tuple[SalesRequest, ...] = ()

    terms_snapshot_text: Optional[str] = None
    deposit_signature: Optional[SignaturePair] = None
    notes: Optional[str] = None

    # Lifecycle milestones
    deposit_taken_at: Optional[datetime] = None
    invoiced_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in (
            "deposit_taken_at",
            "invoiced_at",
            "delivered_at",
            "completed_at",
            "cancelled_at",
            "updated_at",
        ):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_distance_sale(self) -> bool:
        return self.sale_channel is SaleChannel.DISTANCE


__all__ = [
    "Address",
    "AddOn",
    "BuyerType",
    "Deal",
    "DealStatus",
    "Delivery",
    "DeliveryAddress",
    "FinanceSelection",
    "PartExchange",
    "Payment",
    "PaymentMethod",
    "PaymentType",
    "SaleChannel",
    "SaleType",
    "SalesRequest",
    "SignaturePair",
    "Warranty",
    "WarrantyType",
]
