"""
Deal lifecycle rules.

This module defines the ONLY allowed status transitions for deals and the
guards that must hold before a deal may be invoiced.

    DRAFT -> DEPOSIT_TAKEN -> INVOICED -> DELIVERED -> COMPLETED
    CANCELLED from any non-terminal state
    INVOICED -> DEPOSIT_TAKEN only when the invoice is voided

Guards and transitions never touch storage. Each returns a new Deal or raises;
a failed check leaves nothing partially applied.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from domain.deal import Deal, DealStatus
from domain.errors import DealConflictError, IllegalTransitionError, InvoicePreconditionError
from domain.sales_document import SalesDocument
from domain.time import require_utc_timestamp
from domain.vehicle import Vehicle
from services.part_exchange_service import all_part_exchanges

ALLOWED_TRANSITIONS: Dict[DealStatus, FrozenSet[DealStatus]] = {
    DealStatus.DRAFT: frozenset({DealStatus.DEPOSIT_TAKEN, DealStatus.INVOICED, DealStatus.CANCELLED}),
    DealStatus.DEPOSIT_TAKEN: frozenset({DealStatus.INVOICED, DealStatus.CANCELLED}),
    DealStatus.INVOICED: frozenset({DealStatus.DELIVERED, DealStatus.DEPOSIT_TAKEN, DealStatus.CANCELLED}),
    DealStatus.DELIVERED: frozenset({DealStatus.COMPLETED, DealStatus.CANCELLED}),
    DealStatus.COMPLETED: frozenset(),
    DealStatus.CANCELLED: frozenset(),
}

INVOICEABLE_STATES = frozenset({DealStatus.DRAFT, DealStatus.DEPOSIT_TAKEN})
ALREADY_INVOICED_STATES = frozenset({DealStatus.INVOICED, DealStatus.DELIVERED})


def can_transition(from_status: DealStatus, to_status: DealStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def transition(deal: Deal, target: DealStatus, at: datetime) -> Deal:
    """
    Move a deal to `target`, stamping the matching milestone timestamp.

    Raises:
        IllegalTransitionError: if the edge is not part of the lifecycle.
    """

    require_utc_timestamp("at", at)
    if not can_transition(deal.status, target):
        raise IllegalTransitionError(
            f"Deal cannot move from {deal.status.value} to {target.value}",
            field="status",
        )

    changes: dict = {"status": target, "updated_at": at}
    if target is DealStatus.DEPOSIT_TAKEN:
        if deal.status is DealStatus.INVOICED:
            changes["invoiced_at"] = None
        else:
            changes["deposit_taken_at"] = deal.deposit_taken_at or at
    elif target is DealStatus.INVOICED:
        changes["invoiced_at"] = at
    elif target is DealStatus.DELIVERED:
        changes["delivered_at"] = at
    elif target is DealStatus.COMPLETED:
        changes["completed_at"] = at
    elif target is DealStatus.CANCELLED:
        changes["cancelled_at"] = at
    return replace(deal, **changes)


def ensure_not_finalized(deal: Deal, action: str) -> None:
    if deal.status is DealStatus.CANCELLED:
        raise DealConflictError(f"Cannot {action} a cancelled deal", field="status")
    if deal.status is DealStatus.COMPLETED:
        raise DealConflictError("Deal is already completed", field="status")


def ensure_can_invoice(
    deal: Deal,
    vehicle: Optional[Vehicle],
    deposit_receipt: Optional[SalesDocument] = None,
) -> None:
    """
    Check every precondition for `{DRAFT|DEPOSIT_TAKEN} -> INVOICED`, in order.

    Raises:
        DealConflictError: deal is cancelled/completed or not in an invoiceable state.
        InvoicePreconditionError: first missing field, with a remediation hint.
    """

    ensure_not_finalized(deal, "invoice")
    if deal.status not in INVOICEABLE_STATES:
        raise DealConflictError(
            f"Deal in status {deal.status.value} cannot be invoiced",
            field="status",
            hint="Void the existing invoice before generating a new one",
        )

    if deal.sold_to_contact_id is None:
        raise InvoicePreconditionError(
            "Customer is required before generating invoice",
            field="soldToContactId",
            hint="Attach the buyer to the deal",
        )

    # Zero is a valid price; only a missing price blocks invoicing
    if deal.vehicle_price_gross is None:
        raise InvoicePreconditionError(
            "Vehicle price is required before generating invoice",
            field="vehiclePriceGross",
            hint="Set the vehicle sale price on the deal",
        )

    acquisition = vehicle.acquisition if vehicle is not None else None
    if acquisition is None or acquisition.purchase_price_net is None:
        raise InvoicePreconditionError(
            "Stock Invoice Value (SIV) is required before generating invoice",
            field="purchase.purchasePriceNet",
            hint="Set the vehicle purchase price in the vehicle details",
        )
    if acquisition.purchase_date is None:
        raise InvoicePreconditionError(
            "Purchase date is required before generating invoice",
            field="purchase.purchaseDate",
            hint="Set the vehicle purchase date in the vehicle details",
        )
    if acquisition.supplier_contact_id is None:
        raise InvoicePreconditionError(
            "Supplier is required before generating invoice",
            field="purchase.purchasedFromContactId",
            hint="Set the supplier contact in the vehicle details",
        )

    if deposit_receipt is not None and not deal.is_distance_sale:
        signature = deposit_receipt.signature
        if signature is None or not signature.has_customer:
            raise InvoicePreconditionError(
                "Customer signature on the deposit receipt is required before generating invoice",
                field="depositSignature.customer",
                hint="Capture the buyer's signature on the deposit receipt",
            )
        if not signature.has_dealer:
            raise InvoicePreconditionError(
                "Dealer signature on the deposit receipt is required before generating invoice",
                field="depositSignature.dealer",
                hint="Capture the dealer's signature on the deposit receipt",
            )


def mark_delivered(deal: Deal, at: datetime) -> Deal:
    ensure_not_finalized(deal, "deliver")
    return transition(deal, DealStatus.DELIVERED, at)


def ensure_can_complete(deal: Deal) -> None:
    """Part exchanges still under finance need a written settlement figure before completion."""

    for px in all_part_exchanges(deal.part_exchange, deal.part_exchanges):
        if not px.has_finance:
            continue
        if not px.finance_company_name:
            raise InvoicePreconditionError(
                "Finance company is required for part exchange with finance",
                field="partExchange.financeCompanyName",
            )
        if not px.has_settlement_in_writing:
            raise InvoicePreconditionError(
                "Settlement figure must be confirmed in writing before completion",
                field="partExchange.hasSettlementInWriting",
                hint="Record the finance company's written settlement figure",
            )


def mark_completed(deal: Deal, at: datetime) -> Deal:
    ensure_not_finalized(deal, "complete")
    ensure_can_complete(deal)
    return transition(deal, DealStatus.COMPLETED, at)


def cancel_deal(deal: Deal, at: datetime, reason: Optional[str] = None) -> Deal:
    ensure_not_finalized(deal, "cancel")
    cancelled = transition(deal, DealStatus.CANCELLED, at)
    return replace(cancelled, cancel_reason=reason)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "cancel_deal",
    "ensure_can_complete",
    "ensure_can_invoice",
    "ensure_not_finalized",
    "mark_completed",
    "mark_delivered",
    "transition",
]
