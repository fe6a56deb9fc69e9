"""
VAT computation for deal settlement.

Pure functions: no I/O, no clock. Given a VAT scheme and the priced
components of a sale, produce the subtotal / VAT / grand total figures that
go on the invoice.

Rules:
- VAT_QUALIFYING:
    subtotal    = vehicle_net + Σ add_on_net
    total_vat   = vehicle_vat + Σ add_on_vat (STANDARD add-ons only)
    grand_total = subtotal + total_vat + delivery + warranty − delivery_credit
- MARGIN (no VAT broken out):
    subtotal    = vehicle_gross + Σ add_on_net + Σ add_on_vat
    total_vat   = 0
    grand_total = subtotal + delivery + warranty − delivery_credit

Every monetary output is rounded to 2dp, ROUND_HALF_UP. Line-level figures are
rounded first and totals are sums of the rounded lines, so the document's own
lines always add up to its totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from domain.deal import AddOn, Deal, Delivery, Warranty, WarrantyType
from domain.errors import InvalidWarrantyError
from domain.money import ZERO, round_money, sum_money, to_decimal
from domain.vat import DEFAULT_VAT_RATE, VatScheme, VatTreatment


@dataclass(frozen=True, slots=True)
class AddOnLine:
    name: str
    qty: int
    unit_price_net: Decimal
    vat_treatment: VatTreatment
    vat_rate: Decimal
    net: Decimal
    vat: Decimal

    @property
    def gross(self) -> Decimal:
        return self.net + self.vat


@dataclass(frozen=True, slots=True)
class WarrantyAmount:
    """Warranty contribution. `terms_text` is set for display-only trade warranties."""

    gross: Decimal
    net: Decimal
    vat: Decimal
    terms_text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeliveryCharge:
    charge: Decimal
    credit: Decimal


@dataclass(frozen=True, slots=True)
class SaleTotals:
    vat_scheme: VatScheme
    add_on_lines: tuple[AddOnLine, ...]
    add_ons_net_total: Decimal
    add_ons_vat_total: Decimal
    warranty: WarrantyAmount
    delivery: DeliveryCharge
    subtotal: Decimal
    total_vat: Decimal
    grand_total: Decimal


NO_WARRANTY = WarrantyAmount(gross=ZERO, net=ZERO, vat=ZERO)


def add_on_line(add_on: AddOn) -> AddOnLine:
    """Net is unit price × qty; VAT is charged only when the add-on itself is standard-rated."""

    qty = add_on.qty or 1
    net = round_money(to_decimal(add_on.unit_price_net) * qty)
    if add_on.vat_treatment.is_standard:
        vat = round_money(net * to_decimal(add_on.vat_rate))
    else:
        vat = ZERO
    return AddOnLine(
        name=add_on.name,
        qty=qty,
        unit_price_net=to_decimal(add_on.unit_price_net),
        vat_treatment=add_on.vat_treatment,
        vat_rate=to_decimal(add_on.vat_rate),
        net=net,
        vat=vat,
    )


def warranty_amount(warranty: Optional[Warranty]) -> WarrantyAmount:
    """
    Derive the warranty contribution from its gross price and VAT treatment.

    Raises:
        InvalidWarrantyError: if the warranty is both included and a trade
            (no-warranty) selection. Precedence between the two is undefined.
    """

    if warranty is None:
        return NO_WARRANTY

    is_trade = warranty.type is WarrantyType.TRADE
    if warranty.included and is_trade:
        raise InvalidWarrantyError(
            "Warranty cannot be both included and trade terms",
            field="warranty.type",
            hint="Either remove the warranty product or change the warranty type from TRADE",
        )

    if is_trade:
        return WarrantyAmount(gross=ZERO, net=ZERO, vat=ZERO, terms_text=warranty.trade_terms_text or "")

    if not warranty.included:
        return NO_WARRANTY

    gross = round_money(to_decimal(warranty.price_gross))
    if warranty.vat_treatment.is_standard:
        rate = to_decimal(warranty.vat_rate)
        net = round_money(gross / (Decimal(1) + rate))
        vat = gross - net
    else:
        net = gross
        vat = ZERO
    return WarrantyAmount(gross=gross, net=net, vat=vat)


def delivery_charge(delivery: Optional[Delivery]) -> DeliveryCharge:
    """
    Current delivery charge plus any credit owed for delivery removed after deposit.

    When a delivery fee was captured at deposit time and delivery has since
    been made free or reduced to zero, the originally charged amount becomes a
    credit against the grand total.
    """

    if delivery is None:
        return DeliveryCharge(charge=ZERO, credit=ZERO)

    charge = round_money(delivery.charge)
    original = delivery.original_amount_on_deposit
    if original is not None and to_decimal(original) > ZERO and charge == ZERO:
        return DeliveryCharge(charge=ZERO, credit=round_money(to_decimal(original)))
    return DeliveryCharge(charge=charge, credit=ZERO)


def compute_totals(
    *,
    vat_scheme: VatScheme,
    vehicle_price_net: Optional[Decimal],
    vehicle_vat_amount: Optional[Decimal],
    vehicle_price_gross: Optional[Decimal],
    add_ons: Sequence[AddOn] = (),
    warranty: Optional[Warranty] = None,
    delivery: Optional[Delivery] = None,
) -> SaleTotals:
    lines = tuple(add_on_line(a) for a in add_ons)
    add_ons_net = sum_money(line.net for line in lines)
    add_ons_vat = sum_money(line.vat for line in lines)
    warranty_part = warranty_amount(warranty)
    delivery_part = delivery_charge(delivery)

    if vat_scheme is VatScheme.VAT_QUALIFYING:
        subtotal = round_money(to_decimal(vehicle_price_net or ZERO) + add_ons_net)
        total_vat = round_money(to_decimal(vehicle_vat_amount or ZERO) + add_ons_vat)
        grand_total = subtotal + total_vat
    elif vat_scheme is VatScheme.MARGIN:
        subtotal = round_money(to_decimal(vehicle_price_gross or ZERO) + add_ons_net + add_ons_vat)
        total_vat = ZERO
        grand_total = subtotal
    else:
        raise ValueError(f"Unsupported VAT scheme: {vat_scheme!r}")

    grand_total = round_money(grand_total + delivery_part.charge + warranty_part.gross - delivery_part.credit)

    return SaleTotals(
        vat_scheme=vat_scheme,
        add_on_lines=lines,
        add_ons_net_total=round_money(add_ons_net),
        add_ons_vat_total=round_money(add_ons_vat),
        warranty=warranty_part,
        delivery=delivery_part,
        subtotal=subtotal,
        total_vat=total_vat,
        grand_total=grand_total,
    )


def compute_deal_totals(deal: Deal) -> SaleTotals:
    return compute_totals(
        vat_scheme=deal.vat_scheme,
        vehicle_price_net=deal.vehicle_price_net,
        vehicle_vat_amount=deal.vehicle_vat_amount,
        vehicle_price_gross=deal.vehicle_price_gross,
        add_ons=deal.add_ons,
        warranty=deal.warranty,
        delivery=deal.delivery,
    )


def _optional(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def recompute_from_snapshot(snapshot: Mapping[str, Any]) -> SaleTotals:
    """
    Recompute totals from the inputs stored on an issued snapshot.

    Used to audit a document later without re-fetching the deal.
    """

    add_ons: Iterable[Mapping[str, Any]] = snapshot.get("addOns") or ()
    warranty_data = snapshot.get("warranty")
    delivery_data = snapshot.get("delivery")

    warranty = None
    if warranty_data:
        warranty = Warranty(
            included=bool(warranty_data.get("included")),
            type=WarrantyType(warranty_data.get("type") or WarrantyType.DEFAULT.value),
            price_gross=to_decimal(warranty_data.get("priceGross") or 0),
            vat_treatment=VatTreatment(warranty_data.get("vatTreatment") or VatTreatment.NO_VAT.value),
            vat_rate=to_decimal(warranty_data.get("vatRate") or DEFAULT_VAT_RATE),
            trade_terms_text=warranty_data.get("tradeTermsText"),
        )

    delivery = None
    if delivery_data:
        delivery = Delivery(
            amount_gross=to_decimal(delivery_data.get("amountGross") or 0),
            is_free=bool(delivery_data.get("isFree")),
            original_amount_on_deposit=_optional(delivery_data.get("originalAmountOnDeposit")),
        )

    return compute_totals(
        vat_scheme=VatScheme(snapshot["vatScheme"]),
        vehicle_price_net=_optional(snapshot.get("vehiclePriceNet")),
        vehicle_vat_amount=_optional(snapshot.get("vehicleVatAmount")),
        vehicle_price_gross=_optional(snapshot.get("vehiclePriceGross")),
        add_ons=[
            AddOn(
                name=str(a.get("name") or ""),
                unit_price_net=to_decimal(a.get("unitPriceNet") or 0),
                qty=int(a.get("qty") or 1),
                vat_treatment=VatTreatment(a.get("vatTreatment") or VatTreatment.STANDARD.value),
                vat_rate=to_decimal(a.get("vatRate") or DEFAULT_VAT_RATE),
            )
            for a in add_ons
        ],
        warranty=warranty,
        delivery=delivery,
    )


__all__ = [
    "AddOnLine",
    "DeliveryCharge",
    "SaleTotals",
    "WarrantyAmount",
    "add_on_line",
    "compute_deal_totals",
    "compute_totals",
    "delivery_charge",
    "recompute_from_snapshot",
    "warranty_amount",
]
