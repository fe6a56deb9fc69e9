"""
Balance payment service.

Recording a balance payment adds a BALANCE payment to an invoiced deal and,
unless the caller opts out, issues a numbered PAYMENT_RECEIPT showing the
balance before and after. When the payment clears the balance, the active
invoice is flagged paid. The invoice snapshot itself is never touched.

Payments are accepted on INVOICED, DELIVERED and COMPLETED deals; completion
is allowed with money outstanding. Before invoicing, money is taken as a
deposit instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from domain.deal import Deal, DealStatus, Payment, PaymentMethod, PaymentType
from domain.errors import DealConflictError, DealNotFoundError, InvalidRequestError, InvoicePreconditionError
from domain.money import ZERO, to_decimal
from domain.sales_document import DocumentType, SalesDocument
from domain.time import Clock, utc_now
from repositories.protocols import SalesRepositories
from services.document_number_service import DocumentNumberAllocator
from services.payment_ledger import PAID_TOLERANCE
from services.settings import EngineSettings
from services.share_token_service import issue_share_token
from services.snapshot_service import build_payment_receipt_snapshot, compute_settlement, resolve_logo_url

logger = logging.getLogger(__name__)

PAYABLE_STATES = frozenset({DealStatus.INVOICED, DealStatus.DELIVERED, DealStatus.COMPLETED})


@dataclass(frozen=True, slots=True)
class RecordBalancePaymentRequest:
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    generate_receipt: bool = True


@dataclass(frozen=True, slots=True)
class BalancePaymentResult:
    """
    Outcome of a balance payment.

    The receipt fields are None when no receipt was requested.
    """
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    payment_id: UUID
    amount: Decimal
    grand_total: Decimal
    total_paid: Decimal
    balance_before: Decimal
    balance_after: Decimal
    is_full_payment: bool
    invoice_paid: bool
    document_id: Optional[UUID] = None
    document_number: Optional[str] = None
    share_token: Optional[str] = None
    share_url: Optional[str] = None


class PaymentService:
    def __init__(
        self,
        repos: SalesRepositories,
        settings: Optional[EngineSettings] = None,
        *,
        clock: Clock = utc_now,
        allocator: Optional[DocumentNumberAllocator] = None,
    ) -> None:
        self._repos = repos
        self._settings = settings or EngineSettings()
        self._clock = clock
        self._allocator = allocator or DocumentNumberAllocator(
            repos.counters,
            repos.documents,
            max_retries=self._settings.document_number_max_retries,
        )

    def _load_deal(self, deal_id: UUID) -> Deal:
        deal = self._repos.deals.get_deal(deal_id)
        if deal is None:
            raise DealNotFoundError("Deal not found", field="dealId")
        return deal

    def record_balance_payment(
        self, deal_id: UUID, request: RecordBalancePaymentRequest
    ) -> BalancePaymentResult:
        """
        Record a payment against the invoice balance.

        Raises:
            InvalidRequestError: non-positive amount, or more than the balance due
            DealConflictError: deal cancelled or not yet invoiced
            InvoicePreconditionError: no buyer attached
            DealNotFoundError, StorageUnavailableError
        """

        amount = to_decimal(request.amount)
        if amount <= ZERO:
            raise InvalidRequestError("Payment amount must be greater than zero", field="amount")

        deal = self._load_deal(deal_id)
        if deal.status is DealStatus.CANCELLED:
            raise DealConflictError("Cannot record payment on a cancelled deal", field="status")
        if deal.status not in PAYABLE_STATES:
            raise DealConflictError(
                f"Cannot record a balance payment on a {deal.status.value.lower()} deal",
                field="status",
                hint="Issue the invoice first, or take a deposit",
            )
        customer = (
            self._repos.contacts.get_contact(deal.sold_to_contact_id)
            if deal.sold_to_contact_id is not None
            else None
        )
        if customer is None:
            raise InvoicePreconditionError("Customer is required", field="soldToContactId")

        balance_before = compute_settlement(deal).balance_due
        if amount > balance_before + PAID_TOLERANCE:
            raise InvalidRequestError(
                "Payment exceeds the balance due",
                field="amount",
                hint=f"Balance due is {max(balance_before, ZERO)}",
            )

        now = self._clock()
        allocated = None
        dealer = None
        vehicle = None
        if request.generate_receipt:
            dealer = self._repos.dealers.get_dealer(deal.dealer_id)
            if dealer is None:
                raise DealNotFoundError("Dealer not found", field="dealerId")
            vehicle = self._repos.vehicles.get_vehicle(deal.vehicle_id)
            if vehicle is None:
                raise DealNotFoundError("Vehicle not found", field="vehicleId")
            allocated = self._allocator.allocate(
                deal.dealer_id,
                DocumentType.PAYMENT_RECEIPT,
                dealer.sales_settings.payment_receipt_prefix,
            )

        payment = Payment(
            payment_id=uuid4(),
            type=PaymentType.BALANCE,
            amount=amount,
            method=request.method,
            paid_at=now,
            reference=request.reference or (allocated.document_number if allocated else None),
            notes=request.notes,
        )
        updated = replace(deal, payments=deal.payments + (payment,), updated_at=now)
        settlement = compute_settlement(updated)
        is_full_payment = settlement.balance_due <= PAID_TOLERANCE
        invoice = self._repos.documents.find_active_document(deal_id, DocumentType.INVOICE)

        document = None
        token = None
        if allocated is not None and dealer is not None and vehicle is not None:
            token = issue_share_token(now, self._settings.payment_receipt_share_window)
            document = SalesDocument(
                document_id=uuid4(),
                dealer_id=deal.dealer_id,
                deal_id=deal.deal_id,
                type=DocumentType.PAYMENT_RECEIPT,
                document_number=allocated.document_number,
                issued_at=now,
                snapshot=build_payment_receipt_snapshot(
                    deal=updated,
                    vehicle=vehicle,
                    customer=customer,
                    dealer=dealer,
                    payment=payment,
                    invoice_number=invoice.document_number if invoice else None,
                    balance_before=balance_before,
                    settlement=settlement,
                    is_full_payment=is_full_payment,
                    logo_url=resolve_logo_url(dealer, self._repos.signed_urls, self._settings.logo_url_ttl_seconds),
                ),
                share_token_hash=token.token_hash,
                share_expires_at=token.expires_at,
            )
            self._repos.documents.insert_document(document)

        self._repos.deals.save_deal(updated)

        invoice_paid = False
        if is_full_payment and invoice is not None:
            if invoice.paid_at is None:
                self._repos.documents.save_paid(invoice.mark_paid(now))
            invoice_paid = True

        logger.info(
            "Recorded balance payment of %s on deal %s (balance %s -> %s)",
            amount,
            deal_id,
            balance_before,
            settlement.balance_due,
        )

        return BalancePaymentResult(
            success=True,
            deal_id=updated.deal_id,
            deal_status=updated.status,
            payment_id=payment.payment_id,
            amount=amount,
            grand_total=settlement.totals.grand_total,
            total_paid=settlement.payments.total_paid,
            balance_before=balance_before,
            balance_after=max(settlement.balance_due, ZERO),
            is_full_payment=is_full_payment,
            invoice_paid=invoice_paid,
            document_id=document.document_id if document else None,
            document_number=document.document_number if document else None,
            share_token=token.token if token else None,
            share_url=self._settings.payment_receipt_share_url(token.token) if token else None,
        )


__all__ = [
    "BalancePaymentResult",
    "PAYABLE_STATES",
    "PaymentService",
    "RecordBalancePaymentRequest",
]
