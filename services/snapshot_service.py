"""
Document snapshot composition.

A snapshot is the fully denormalized, JSON-ready payload stored on a sales
document: vehicle, parties, pricing inputs, computed totals, line items,
payments, part exchanges, terms and dealer letterhead. It is written once.
`SalesDocument` deep-freezes it on construction and no repository operation
rewrites it.

Money is stored as 2dp strings and timestamps as ISO-8601 UTC strings.
The stored pricing inputs are sufficient for
`services.vat_service.recompute_from_snapshot` to reproduce `grandTotal`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from domain.contact import Address, Contact
from domain.deal import Deal, Payment, WarrantyType
from domain.dealer import Dealer
from domain.money import ZERO, round_money, to_decimal
from domain.time import to_iso_utc
from domain.vat import VatScheme
from domain.vehicle import ServiceRecord, Vehicle
from repositories.errors import StorageUnavailableError
from repositories.protocols import SignedUrlIssuer
from services.part_exchange_service import all_part_exchanges, deal_part_exchange_value
from services.payment_ledger import PaymentSummary, summarize_payments
from services.vat_service import SaleTotals, compute_deal_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Settlement:
    """The financial picture of a deal at one point in time."""

    totals: SaleTotals
    payments: PaymentSummary
    part_exchange_net: Decimal

    @property
    def balance_due(self) -> Decimal:
        return round_money(self.totals.grand_total - self.payments.total_paid - self.part_exchange_net)


def compute_settlement(deal: Deal) -> Settlement:
    return Settlement(
        totals=compute_deal_totals(deal),
        payments=summarize_payments(deal.payments),
        part_exchange_net=deal_part_exchange_value(deal),
    )


def _money(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(round_money(to_decimal(value)))


def _rate(value: Decimal) -> str:
    return str(to_decimal(value))


def _iso(value: Optional[datetime], name: str) -> Optional[str]:
    return to_iso_utc(value, name=name) if value is not None else None


def resolve_logo_url(dealer: Dealer, signed_urls: Optional[SignedUrlIssuer], expires_in_seconds: int) -> Optional[str]:
    """
    Fresh time-limited logo URL for the letterhead.

    Falls back to the dealer's stored `logo_url` when there is no logo key,
    no signer, or signing fails.
    """

    if not dealer.logo_key or signed_urls is None:
        return dealer.logo_url
    try:
        return signed_urls.signed_url(dealer.logo_key, expires_in_seconds)
    except StorageUnavailableError as e:
        logger.warning("Could not sign logo URL for dealer %s, using stored URL: %s", dealer.dealer_id, e)
        return dealer.logo_url


def terms_text(deal: Deal, dealer: Dealer) -> str:
    if deal.terms_snapshot_text:
        return deal.terms_snapshot_text
    return dealer.sales_settings.terms_text_for(deal.buyer_type, deal.sale_channel)


def vehicle_section(vehicle: Vehicle) -> dict[str, Any]:
    return {
        "regCurrent": vehicle.reg_current,
        "vin": vehicle.vin,
        "make": vehicle.make,
        "model": vehicle.model,
        "derivative": vehicle.derivative,
        "year": vehicle.year,
        "mileage": vehicle.mileage,
        "colour": vehicle.colour,
        "firstRegisteredDate": vehicle.first_registered_date.isoformat() if vehicle.first_registered_date else None,
    }


def contact_section(contact: Contact, address: Optional[Address] = None) -> dict[str, Any]:
    return {
        "name": contact.name,
        "companyName": contact.company_name,
        "email": contact.email,
        "phone": contact.phone,
        "address": (address or contact.address).to_dict(),
    }


def invoice_to_section(
    deal: Deal, invoice_to: Optional[Contact], finance_company_name: Optional[str] = None
) -> Optional[dict[str, Any]]:
    """
    The invoice recipient when it is not the buyer.

    A confirmed finance company with no contact record is addressed by name.
    """

    if invoice_to is not None:
        return contact_section(invoice_to)
    selection = deal.finance_selection
    if selection is None or not selection.is_financed or selection.to_be_confirmed:
        return None
    if selection.finance_company_contact_id is not None:
        return None
    name = finance_company_name or selection.finance_company_name
    if not name:
        return None
    return {"name": name, "companyName": name, "email": None, "phone": None, "address": Address().to_dict()}


def deliver_to_section(
    deal: Deal, customer: Contact, invoice_to: Optional[Contact], *, third_party: bool = False
) -> Optional[dict[str, Any]]:
    """
    The buyer, at the delivery address when one is set.

    Present when the invoice goes to a third party (e.g. a finance company) or
    a different delivery address is set; otherwise the customer block suffices.
    """

    different_address = deal.delivery_address is not None and deal.delivery_address.is_different
    if invoice_to is None and not third_party and not different_address:
        return None
    address = deal.delivery_address.address if different_address else customer.address
    section = contact_section(customer, address)
    section.pop("email")
    return section


def dealer_section(dealer: Dealer, logo_url: Optional[str]) -> dict[str, Any]:
    settings = dealer.sales_settings
    return {
        "name": dealer.name,
        "companyName": dealer.company_name,
        "address": dealer.company_address,
        "phone": dealer.company_phone,
        "email": dealer.company_email,
        "vatNumber": settings.vat_number if settings.vat_registered else None,
        "companyNumber": settings.company_number,
        "logoUrl": logo_url,
    }


def warranty_section(deal: Deal, totals: SaleTotals) -> Optional[dict[str, Any]]:
    warranty = deal.warranty
    if warranty is None:
        return None
    amount = totals.warranty
    return {
        "included": warranty.included,
        "type": warranty.type.value,
        "name": warranty.name,
        "description": warranty.description,
        "durationMonths": warranty.duration_months,
        "claimLimit": _money(warranty.claim_limit),
        "priceGross": _money(warranty.price_gross),
        "vatTreatment": warranty.vat_treatment.value,
        "vatRate": _rate(warranty.vat_rate),
        "tradeTermsText": warranty.trade_terms_text,
        "net": _money(amount.net),
        "vat": _money(amount.vat),
        "gross": _money(amount.gross),
        "termsText": amount.terms_text,
    }


def delivery_section(deal: Deal, totals: SaleTotals) -> Optional[dict[str, Any]]:
    delivery = deal.delivery
    if delivery is None:
        return None
    return {
        "amountGross": _money(delivery.amount_gross),
        "isFree": delivery.is_free,
        "notes": delivery.notes,
        "originalAmountOnDeposit": _money(delivery.original_amount_on_deposit),
        "charge": _money(totals.delivery.charge),
        "credit": _money(totals.delivery.credit),
    }


def add_ons_section(totals: SaleTotals) -> List[dict[str, Any]]:
    return [
        {
            "name": line.name,
            "qty": line.qty,
            "unitPriceNet": _money(line.unit_price_net),
            "vatTreatment": line.vat_treatment.value,
            "vatRate": _rate(line.vat_rate),
            "net": _money(line.net),
            "vat": _money(line.vat),
        }
        for line in totals.add_on_lines
    ]


def line_items(deal: Deal, vehicle: Vehicle, totals: SaleTotals) -> List[dict[str, Any]]:
    """Printable lines in document order. Credits carry negative amounts."""

    description = " ".join(p for p in (vehicle.make, vehicle.model, vehicle.derivative) if p) or "Vehicle"
    if vehicle.reg_current:
        description = f"{description} ({vehicle.reg_current})"

    items: List[dict[str, Any]] = []
    if totals.vat_scheme is VatScheme.VAT_QUALIFYING:
        net = to_decimal(deal.vehicle_price_net or ZERO)
        vat = to_decimal(deal.vehicle_vat_amount or ZERO)
        items.append(_line("VEHICLE", description, 1, net, vat))
    else:
        gross = to_decimal(deal.vehicle_price_gross or ZERO)
        items.append(_line("VEHICLE", description, 1, gross, ZERO))

    for line in totals.add_on_lines:
        items.append(_line("ADD_ON", line.name, line.qty, line.net, line.vat))

    if totals.warranty.gross > ZERO:
        name = deal.warranty.name if deal.warranty and deal.warranty.name else "Warranty"
        items.append(_line("WARRANTY", name, 1, totals.warranty.net, totals.warranty.vat))

    if totals.delivery.charge > ZERO:
        items.append(_line("DELIVERY", "Delivery", 1, totals.delivery.charge, ZERO))
    if totals.delivery.credit > ZERO:
        items.append(_line("DELIVERY_CREDIT", "Delivery credit", 1, -totals.delivery.credit, ZERO))

    return items


def _line(kind: str, description: str, qty: int, net: Decimal, vat: Decimal) -> dict[str, Any]:
    return {
        "kind": kind,
        "description": description,
        "qty": qty,
        "net": _money(net),
        "vat": _money(vat),
        "gross": _money(net + vat),
    }


def part_exchanges_section(deal: Deal) -> List[dict[str, Any]]:
    return [
        {
            "vrm": px.vrm,
            "make": px.make,
            "model": px.model,
            "year": px.year,
            "mileage": px.mileage,
            "allowance": _money(px.allowance),
            "settlement": _money(px.settlement),
            "net": _money(to_decimal(px.allowance) - to_decimal(px.settlement)),
            "vatQualifying": px.vat_qualifying,
            "hasFinance": px.has_finance,
            "financeCompanyName": px.finance_company_name,
            "hasSettlementInWriting": px.has_settlement_in_writing,
        }
        for px in all_part_exchanges(deal.part_exchange, deal.part_exchanges)
    ]


def payments_section(payments: Iterable[Payment]) -> List[dict[str, Any]]:
    return [
        {
            "type": p.type.value,
            "amount": _money(p.amount),
            "method": p.method.value,
            "paidAt": _iso(p.paid_at, "paid_at"),
            "reference": p.reference,
            "isRefunded": p.is_refunded,
        }
        for p in payments
    ]


def finance_section(deal: Deal, finance_company_name: Optional[str]) -> Optional[dict[str, Any]]:
    selection = deal.finance_selection
    if selection is None or not selection.is_financed:
        return None
    return {
        "isFinanced": True,
        "financeCompanyName": finance_company_name or selection.finance_company_name,
        "toBeConfirmed": selection.to_be_confirmed,
        "advanceAmount": _money(selection.advance_amount),
    }


def service_history_section(records: Sequence[ServiceRecord]) -> List[dict[str, Any]]:
    return [
        {
            "date": r.service_date.isoformat(),
            "description": r.description,
            "mileage": r.mileage,
            "garage": r.garage,
        }
        for r in sorted(records, key=lambda r: r.service_date)
    ]


def _pricing_and_totals(deal: Deal, vehicle: Vehicle, settlement: Settlement) -> dict[str, Any]:
    totals = settlement.totals
    payments = settlement.payments
    return {
        "vatScheme": deal.vat_scheme.value,
        "vatRate": _rate(deal.vat_rate),
        "vehiclePriceNet": _money(deal.vehicle_price_net),
        "vehicleVatAmount": _money(deal.vehicle_vat_amount),
        "vehiclePriceGross": _money(deal.vehicle_price_gross),
        "addOns": add_ons_section(totals),
        "addOnsNetTotal": _money(totals.add_ons_net_total),
        "addOnsVatTotal": _money(totals.add_ons_vat_total),
        "warranty": warranty_section(deal, totals),
        "delivery": delivery_section(deal, totals),
        "deliveryCredit": _money(totals.delivery.credit),
        "lineItems": line_items(deal, vehicle, totals),
        "partExchanges": part_exchanges_section(deal),
        "subtotal": _money(totals.subtotal),
        "totalVat": _money(totals.total_vat),
        "grandTotal": _money(totals.grand_total),
        "totalPaid": _money(payments.total_paid),
        "depositPaid": _money(payments.deposit_paid),
        "financeAdvance": _money(payments.finance_advance),
        "otherPayments": _money(payments.other_payments),
        "partExchangeNet": _money(settlement.part_exchange_net),
        "balanceDue": _money(settlement.balance_due),
    }


def build_invoice_snapshot(
    *,
    deal: Deal,
    vehicle: Vehicle,
    customer: Contact,
    invoice_to: Optional[Contact],
    dealer: Dealer,
    settlement: Settlement,
    logo_url: Optional[str],
    finance_company_name: Optional[str] = None,
    service_records: Optional[Sequence[ServiceRecord]] = None,
) -> dict[str, Any]:
    recipient = invoice_to_section(deal, invoice_to, finance_company_name)
    snapshot: dict[str, Any] = {
        "dealNumber": deal.deal_number,
        "vehicle": vehicle_section(vehicle),
        "customer": contact_section(customer),
        "invoiceTo": recipient,
        "deliverTo": deliver_to_section(deal, customer, invoice_to, third_party=recipient is not None),
        "saleType": deal.sale_type.value,
        "buyerType": deal.buyer_type.value,
        "saleChannel": deal.sale_channel.value,
        "paymentMethod": deal.payment_method.value if deal.payment_method else None,
        "isVatRegistered": dealer.sales_settings.vat_registered,
    }
    snapshot.update(_pricing_and_totals(deal, vehicle, settlement))
    snapshot.update(
        {
            "financeSelection": finance_section(deal, finance_company_name),
            "payments": payments_section(deal.payments),
            "termsText": terms_text(deal, dealer),
            "dealer": dealer_section(dealer, logo_url),
            "bankDetails": dict(dealer.sales_settings.bank_details),
            "requests": [
                {"title": r.title, "details": r.details, "type": r.type, "status": r.status}
                for r in deal.requests
            ],
        }
    )
    if service_records is not None:
        snapshot["serviceHistory"] = service_history_section(service_records)
    if deal.warranty is not None and deal.warranty.type is WarrantyType.TRADE:
        snapshot["tradeTermsText"] = settlement.totals.warranty.terms_text
    return snapshot


def build_deposit_receipt_snapshot(
    *,
    deal: Deal,
    vehicle: Vehicle,
    customer: Contact,
    dealer: Dealer,
    settlement: Settlement,
    deposit: Payment,
    logo_url: Optional[str],
    finance_company_name: Optional[str] = None,
) -> dict[str, Any]:
    """
    Deposit receipt payload: the sale as agreed when the deposit was taken.

    `payments` lists only the deposit being receipted; the totals reflect every
    non-refunded payment on the deal including it.
    """

    snapshot: dict[str, Any] = {
        "dealNumber": deal.deal_number,
        "vehicle": vehicle_section(vehicle),
        "customer": contact_section(customer),
        "saleType": deal.sale_type.value,
        "buyerType": deal.buyer_type.value,
        "saleChannel": deal.sale_channel.value,
        "isVatRegistered": dealer.sales_settings.vat_registered,
    }
    snapshot.update(_pricing_and_totals(deal, vehicle, settlement))
    snapshot.update(
        {
            "financeSelection": finance_section(deal, finance_company_name),
            "payments": payments_section([deposit]),
            "depositAmount": _money(deposit.amount),
            "termsText": terms_text(deal, dealer),
            "dealer": dealer_section(dealer, logo_url),
            "bankDetails": dict(dealer.sales_settings.bank_details),
            "requests": [
                {"title": r.title, "details": r.details, "type": r.type, "status": r.status}
                for r in deal.requests
            ],
        }
    )
    return snapshot


def build_payment_receipt_snapshot(
    *,
    deal: Deal,
    vehicle: Vehicle,
    customer: Contact,
    dealer: Dealer,
    payment: Payment,
    invoice_number: Optional[str],
    balance_before: Decimal,
    settlement: Settlement,
    is_full_payment: bool,
    logo_url: Optional[str],
) -> dict[str, Any]:
    """
    Payment receipt payload for one balance payment.

    `settlement` is taken after the payment. Balances never show below zero.
    """

    balance_after = max(settlement.balance_due, ZERO)
    return {
        "dealNumber": deal.deal_number,
        "vehicle": vehicle_section(vehicle),
        "customer": contact_section(customer),
        "dealer": dealer_section(dealer, logo_url),
        "isVatRegistered": dealer.sales_settings.vat_registered,
        "paymentReceipt": {
            "paymentAmount": _money(payment.amount),
            "paymentMethod": payment.method.value,
            "paymentReference": payment.reference,
            "paidAt": _iso(payment.paid_at, "paid_at"),
            "invoiceNumber": invoice_number,
            "invoiceBalanceBefore": _money(max(balance_before, ZERO)),
            "invoiceBalanceAfter": _money(balance_after),
            "isFullPayment": is_full_payment,
        },
        "payments": payments_section([payment]),
        "grandTotal": _money(settlement.totals.grand_total),
        "totalPaid": _money(settlement.payments.total_paid),
        "partExchangeNet": _money(settlement.part_exchange_net),
        "balanceDue": _money(balance_after),
    }


__all__ = [
    "Settlement",
    "build_deposit_receipt_snapshot",
    "build_invoice_snapshot",
    "build_payment_receipt_snapshot",
    "compute_settlement",
    "contact_section",
    "deliver_to_section",
    "dealer_section",
    "invoice_to_section",
    "line_items",
    "resolve_logo_url",
    "terms_text",
]
