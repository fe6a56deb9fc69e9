"""
Deal repository (persistence).

This module provides *only* persistence for the Deal domain entity. Nested
collections (add-ons, payments, part exchanges, ...) are stored as jsonb
columns on the `deals` row. It does not enforce lifecycle rules.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.contact import Address
from domain.deal import (
    AddOn,
    BuyerType,
    Deal,
    DealStatus,
    Delivery,
    DeliveryAddress,
    FinanceSelection,
    PartExchange,
    Payment,
    PaymentMethod,
    PaymentType,
    SaleChannel,
    SaleType,
    SalesRequest,
    SignaturePair,
    Warranty,
    WarrantyType,
)
from domain.money import optional_decimal, to_decimal
from domain.time import parse_utc_datetime, to_iso_utc
from domain.vat import DEFAULT_VAT_RATE, VatScheme, VatTreatment
from repositories.client import execute, get_supabase, rows_of

# Supabase table name for deals.
# Keep this aligned with your database schema.
_DEALS_TABLE: str = "deals"


def _uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _ts(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def _iso(value: Optional[datetime], name: str) -> Optional[str]:
    return to_iso_utc(value, name=name) if value is not None else None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ---------------------------------------------------------------------------
# Nested value objects
# ---------------------------------------------------------------------------

def _row_to_add_on(row: Mapping[str, Any]) -> AddOn:
    return AddOn(
        name=str(row["name"]),
        unit_price_net=to_decimal(row.get("unit_price_net", 0)),
        qty=int(row.get("qty") or 1),
        vat_treatment=VatTreatment(row.get("vat_treatment") or VatTreatment.STANDARD.value),
        vat_rate=to_decimal(row["vat_rate"]) if row.get("vat_rate") is not None else DEFAULT_VAT_RATE,
    )


def _add_on_to_row(add_on: AddOn) -> dict[str, Any]:
    return {
        "name": add_on.name,
        "unit_price_net": str(add_on.unit_price_net),
        "qty": add_on.qty,
        "vat_treatment": add_on.vat_treatment.value,
        "vat_rate": str(add_on.vat_rate),
    }


def _row_to_warranty(row: Optional[Mapping[str, Any]]) -> Optional[Warranty]:
    if not row:
        return None
    return Warranty(
        included=bool(row.get("included", False)),
        type=WarrantyType(row.get("type") or WarrantyType.DEFAULT.value),
        name=row.get("name"),
        description=row.get("description"),
        duration_months=row.get("duration_months"),
        claim_limit=optional_decimal(row.get("claim_limit")),
        price_gross=to_decimal(row.get("price_gross") or 0),
        vat_treatment=VatTreatment(row.get("vat_treatment") or VatTreatment.NO_VAT.value),
        vat_rate=to_decimal(row["vat_rate"]) if row.get("vat_rate") is not None else DEFAULT_VAT_RATE,
        trade_terms_text=row.get("trade_terms_text"),
    )


def _warranty_to_row(warranty: Optional[Warranty]) -> Optional[dict[str, Any]]:
    if warranty is None:
        return None
    return {
        "included": warranty.included,
        "type": warranty.type.value,
        "name": warranty.name,
        "description": warranty.description,
        "duration_months": warranty.duration_months,
        "claim_limit": _money(warranty.claim_limit),
        "price_gross": str(warranty.price_gross),
        "vat_treatment": warranty.vat_treatment.value,
        "vat_rate": str(warranty.vat_rate),
        "trade_terms_text": warranty.trade_terms_text,
    }


def _row_to_part_exchange(row: Optional[Mapping[str, Any]]) -> Optional[PartExchange]:
    if not row:
        return None
    return PartExchange(
        allowance=to_decimal(row.get("allowance") or 0),
        settlement=to_decimal(row.get("settlement") or 0),
        vrm=row.get("vrm"),
        make=row.get("make"),
        model=row.get("model"),
        year=row.get("year"),
        mileage=row.get("mileage"),
        vat_qualifying=bool(row.get("vat_qualifying", False)),
        has_finance=bool(row.get("has_finance", False)),
        finance_company_name=row.get("finance_company_name"),
        has_settlement_in_writing=bool(row.get("has_settlement_in_writing", False)),
    )


def _part_exchange_to_row(px: Optional[PartExchange]) -> Optional[dict[str, Any]]:
    if px is None:
        return None
    return {
        "allowance": str(px.allowance),
        "settlement": str(px.settlement),
        "vrm": px.vrm,
        "make": px.make,
        "model": px.model,
        "year": px.year,
        "mileage": px.mileage,
        "vat_qualifying": px.vat_qualifying,
        "has_finance": px.has_finance,
        "finance_company_name": px.finance_company_name,
        "has_settlement_in_writing": px.has_settlement_in_writing,
    }


def _row_to_payment(row: Mapping[str, Any]) -> Payment:
    return Payment(
        payment_id=UUID(str(row["payment_id"])),
        type=PaymentType(row["type"]),
        amount=to_decimal(row["amount"]),
        method=PaymentMethod(row["method"]),
        paid_at=parse_utc_datetime(row["paid_at"]),
        reference=row.get("reference"),
        is_refunded=bool(row.get("is_refunded", False)),
        notes=row.get("notes"),
    )


def _payment_to_row(payment: Payment) -> dict[str, Any]:
    return {
        "payment_id": str(payment.payment_id),
        "type": payment.type.value,
        "amount": str(payment.amount),
        "method": payment.method.value,
        "paid_at": to_iso_utc(payment.paid_at, name="paid_at"),
        "reference": payment.reference,
        "is_refunded": payment.is_refunded,
        "notes": payment.notes,
    }


def _row_to_delivery(row: Optional[Mapping[str, Any]]) -> Optional[Delivery]:
    if not row:
        return None
    return Delivery(
        amount_gross=to_decimal(row.get("amount_gross") or 0),
        is_free=bool(row.get("is_free", False)),
        notes=row.get("notes"),
        original_amount_on_deposit=optional_decimal(row.get("original_amount_on_deposit")),
    )


def _delivery_to_row(delivery: Optional[Delivery]) -> Optional[dict[str, Any]]:
    if delivery is None:
        return None
    return {
        "amount_gross": str(delivery.amount_gross),
        "is_free": delivery.is_free,
        "notes": delivery.notes,
        "original_amount_on_deposit": _money(delivery.original_amount_on_deposit),
    }


def _row_to_finance(row: Optional[Mapping[str, Any]]) -> Optional[FinanceSelection]:
    if not row:
        return None
    return FinanceSelection(
        is_financed=bool(row.get("is_financed", False)),
        finance_company_contact_id=_uuid(row.get("finance_company_contact_id")),
        finance_company_name=row.get("finance_company_name"),
        to_be_confirmed=bool(row.get("to_be_confirmed", False)),
        advance_amount=optional_decimal(row.get("advance_amount")),
    )


def _finance_to_row(finance: Optional[FinanceSelection]) -> Optional[dict[str, Any]]:
    if finance is None:
        return None
    return {
        "is_financed": finance.is_financed,
        "finance_company_contact_id": str(finance.finance_company_contact_id)
        if finance.finance_company_contact_id
        else None,
        "finance_company_name": finance.finance_company_name,
        "to_be_confirmed": finance.to_be_confirmed,
        "advance_amount": _money(finance.advance_amount),
    }


def row_to_signature(row: Optional[Mapping[str, Any]]) -> Optional[SignaturePair]:
    if not row:
        return None
    return SignaturePair(
        customer_signature_key=row.get("customer_signature_key"),
        dealer_signature_key=row.get("dealer_signature_key"),
        customer_signed_at=_ts(row.get("customer_signed_at")),
        dealer_signed_at=_ts(row.get("dealer_signed_at")),
    )


def signature_to_row(signature: Optional[SignaturePair]) -> Optional[dict[str, Any]]:
    if signature is None:
        return None
    return {
        "customer_signature_key": signature.customer_signature_key,
        "dealer_signature_key": signature.dealer_signature_key,
        "customer_signed_at": _iso(signature.customer_signed_at, "customer_signed_at"),
        "dealer_signed_at": _iso(signature.dealer_signed_at, "dealer_signed_at"),
    }


def _row_to_delivery_address(row: Optional[Mapping[str, Any]]) -> Optional[DeliveryAddress]:
    if not row:
        return None
    return DeliveryAddress(is_different=bool(row.get("is_different", False)), address=Address.from_mapping(row))


def _delivery_address_to_row(value: Optional[DeliveryAddress]) -> Optional[dict[str, Any]]:
    if value is None:
        return None
    return {"is_different": value.is_different, **value.address.to_dict()}


# ---------------------------------------------------------------------------
# Deal rows
# ---------------------------------------------------------------------------

def _row_to_deal(row: Mapping[str, Any]) -> Deal:
    """Convert a Supabase row into a Deal."""

    return Deal(
        deal_id=UUID(str(row["deal_id"])),
        dealer_id=UUID(str(row["dealer_id"])),
        vehicle_id=UUID(str(row["vehicle_id"])),
        vat_scheme=VatScheme(row["vat_scheme"]),
        status=DealStatus(row.get("status") or DealStatus.DRAFT.value),
        deal_number=row.get("deal_number"),
        sold_to_contact_id=_uuid(row.get("sold_to_contact_id")),
        invoice_to_contact_id=_uuid(row.get("invoice_to_contact_id")),
        delivery_address=_row_to_delivery_address(row.get("delivery_address")),
        sale_type=SaleType(row.get("sale_type") or SaleType.RETAIL.value),
        buyer_type=BuyerType(row.get("buyer_type") or BuyerType.CONSUMER.value),
        sale_channel=SaleChannel(row.get("sale_channel") or SaleChannel.IN_PERSON.value),
        payment_method=PaymentMethod(row["payment_method"]) if row.get("payment_method") else None,
        vat_rate=to_decimal(row["vat_rate"]) if row.get("vat_rate") is not None else DEFAULT_VAT_RATE,
        vehicle_price_net=optional_decimal(row.get("vehicle_price_net")),
        vehicle_vat_amount=optional_decimal(row.get("vehicle_vat_amount")),
        vehicle_price_gross=optional_decimal(row.get("vehicle_price_gross")),
        add_ons=tuple(_row_to_add_on(a) for a in row.get("add_ons") or []),
        warranty=_row_to_warranty(row.get("warranty")),
        finance_selection=_row_to_finance(row.get("finance_selection")),
        part_exchange=_row_to_part_exchange(row.get("part_exchange")),
        part_exchanges=tuple(
            px for px in (_row_to_part_exchange(p) for p in row.get("part_exchanges") or []) if px is not None
        ),
        payments=tuple(_row_to_payment(p) for p in row.get("payments") or []),
        delivery=_row_to_delivery(row.get("delivery")),
        requests=tuple(
            SalesRequest(
                title=str(r["title"]),
                details=r.get("details"),
                type=r.get("type") or "OTHER",
                status=r.get("status") or "REQUESTED",
            )
            for r in row.get("requests") or []
        ),
        terms_snapshot_text=row.get("terms_snapshot_text"),
        deposit_signature=row_to_signature(row.get("deposit_signature")),
        notes=row.get("notes"),
        deposit_taken_at=_ts(row.get("deposit_taken_at_utc")),
        invoiced_at=_ts(row.get("invoiced_at_utc")),
        delivered_at=_ts(row.get("delivered_at_utc")),
        completed_at=_ts(row.get("completed_at_utc")),
        cancelled_at=_ts(row.get("cancelled_at_utc")),
        cancel_reason=row.get("cancel_reason"),
        updated_at=_ts(row.get("updated_at_utc")),
    )


def _deal_to_row(deal: Deal) -> dict[str, Any]:
    return {
        "deal_id": str(deal.deal_id),
        "dealer_id": str(deal.dealer_id),
        "vehicle_id": str(deal.vehicle_id),
        "vat_scheme": deal.vat_scheme.value,
        "status": deal.status.value,
        "deal_number": deal.deal_number,
        "sold_to_contact_id": str(deal.sold_to_contact_id) if deal.sold_to_contact_id else None,
        "invoice_to_contact_id": str(deal.invoice_to_contact_id) if deal.invoice_to_contact_id else None,
        "delivery_address": _delivery_address_to_row(deal.delivery_address),
        "sale_type": deal.sale_type.value,
        "buyer_type": deal.buyer_type.value,
        "sale_channel": deal.sale_channel.value,
        "payment_method": deal.payment_method.value if deal.payment_method else None,
        "vat_rate": str(deal.vat_rate),
        "vehicle_price_net": _money(deal.vehicle_price_net),
        "vehicle_vat_amount": _money(deal.vehicle_vat_amount),
        "vehicle_price_gross": _money(deal.vehicle_price_gross),
        "add_ons": [_add_on_to_row(a) for a in deal.add_ons],
        "warranty": _warranty_to_row(deal.warranty),
        "finance_selection": _finance_to_row(deal.finance_selection),
        "part_exchange": _part_exchange_to_row(deal.part_exchange),
        "part_exchanges": [_part_exchange_to_row(px) for px in deal.part_exchanges],
        "payments": [_payment_to_row(p) for p in deal.payments],
        "delivery": _delivery_to_row(deal.delivery),
        "requests": [
            {"title": r.title, "details": r.details, "type": r.type, "status": r.status} for r in deal.requests
        ],
        "terms_snapshot_text": deal.terms_snapshot_text,
        "deposit_signature": signature_to_row(deal.deposit_signature),
        "notes": deal.notes,
        "deposit_taken_at_utc": _iso(deal.deposit_taken_at, "deposit_taken_at"),
        "invoiced_at_utc": _iso(deal.invoiced_at, "invoiced_at"),
        "delivered_at_utc": _iso(deal.delivered_at, "delivered_at"),
        "completed_at_utc": _iso(deal.completed_at, "completed_at"),
        "cancelled_at_utc": _iso(deal.cancelled_at, "cancelled_at"),
        "cancel_reason": deal.cancel_reason,
        "updated_at_utc": _iso(deal.updated_at, "updated_at"),
    }


class SupabaseDealRepository:
    """Deal persistence backed by the Supabase `deals` table."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def get_deal(self, deal_id: UUID) -> Optional[Deal]:
        response = execute(
            self._client.table(_DEALS_TABLE).select("*").eq("deal_id", str(deal_id)).limit(1),
            "fetch deal",
        )
        rows = rows_of(response)
        if not rows:
            return None
        return _row_to_deal(rows[0])

    def save_deal(self, deal: Deal) -> None:
        """Upsert the full deal row."""

        execute(
            self._client.table(_DEALS_TABLE).upsert(_deal_to_row(deal), on_conflict="deal_id"),
            "save deal",
        )


__all__ = ["SupabaseDealRepository", "row_to_signature", "signature_to_row"]
