"""
Deposit service.

Taking a deposit records a DEPOSIT payment, moves a DRAFT deal to
DEPOSIT_TAKEN, pins the delivery amount charged at that moment (basis of any
later delivery credit) and issues a numbered DEPOSIT_RECEIPT.

Signatures may be captured with the deposit or afterwards through
`sign_deposit_receipt`. For in-person sales, both signatures on the receipt
are required before the deal can be invoiced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from domain.deal import Deal, DealStatus, Delivery, Payment, PaymentMethod, PaymentType, SignaturePair
from domain.errors import DealConflictError, DealNotFoundError, InvalidRequestError, InvoicePreconditionError
from domain.money import ZERO, round_money, to_decimal
from domain.sales_document import DocumentType, SalesDocument
from domain.time import Clock, utc_now
from domain.vehicle import VehicleSalesStatus
from repositories.protocols import SalesRepositories
from services.deal_state_machine import ensure_not_finalized, transition
from services.document_number_service import DocumentNumberAllocator
from services.settings import EngineSettings
from services.share_token_service import issue_share_token
from services.snapshot_service import build_deposit_receipt_snapshot, compute_settlement, resolve_logo_url

logger = logging.getLogger(__name__)

DEPOSIT_STATES = frozenset({DealStatus.DRAFT, DealStatus.DEPOSIT_TAKEN})
SIGNABLE_STATES = frozenset(
    {DealStatus.DEPOSIT_TAKEN, DealStatus.INVOICED, DealStatus.DELIVERED, DealStatus.COMPLETED}
)


@dataclass(frozen=True, slots=True)
class TakeDepositRequest:
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    customer_signature_key: Optional[str] = None
    dealer_signature_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DepositResult:
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    document_id: UUID
    document_number: str
    share_token: str
    share_url: str
    deposit_amount: Decimal
    balance_due: Decimal


@dataclass(frozen=True, slots=True)
class SignDepositRequest:
    dealer_signature_key: str
    customer_signature_key: Optional[str] = None


def record_delivery_on_deposit(delivery: Optional[Delivery]) -> Optional[Delivery]:
    """Pin the delivery amount charged at deposit time, once."""

    if delivery is None or delivery.original_amount_on_deposit is not None:
        return delivery
    charge = round_money(delivery.charge)
    if charge > ZERO or delivery.is_free:
        return replace(delivery, original_amount_on_deposit=charge)
    return delivery


def _signature_pair(
    customer_key: Optional[str],
    dealer_key: Optional[str],
    at: datetime,
    previous: Optional[SignaturePair] = None,
) -> Optional[SignaturePair]:
    previous = previous or SignaturePair()
    if not customer_key and not dealer_key and previous == SignaturePair():
        return None
    return SignaturePair(
        customer_signature_key=customer_key or previous.customer_signature_key,
        dealer_signature_key=dealer_key or previous.dealer_signature_key,
        customer_signed_at=at if customer_key else previous.customer_signed_at,
        dealer_signed_at=at if dealer_key else previous.dealer_signed_at,
    )


class DepositService:
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

    def take_deposit(self, deal_id: UUID, request: TakeDepositRequest) -> DepositResult:
        """
        Record a deposit and issue its receipt.

        Raises:
            InvalidRequestError: non-positive amount
            DealConflictError: deal cancelled, completed or already invoiced
            InvoicePreconditionError: no buyer attached
        """

        amount = to_decimal(request.amount)
        if amount <= ZERO:
            raise InvalidRequestError("Deposit amount must be greater than zero", field="amount")

        deal = self._load_deal(deal_id)
        ensure_not_finalized(deal, "take deposit on")
        if deal.status not in DEPOSIT_STATES:
            raise DealConflictError(
                f"Cannot take a deposit on a {deal.status.value.lower()} deal",
                field="status",
                hint="Void the invoice first to record a further deposit",
            )
        if deal.sold_to_contact_id is None:
            raise InvoicePreconditionError(
                "Customer is required before taking deposit",
                field="soldToContactId",
                hint="Attach the buyer to the deal",
            )
        customer = self._repos.contacts.get_contact(deal.sold_to_contact_id)
        if customer is None:
            raise InvoicePreconditionError("Customer record not found", field="soldToContactId")
        vehicle = self._repos.vehicles.get_vehicle(deal.vehicle_id)
        if vehicle is None:
            raise DealNotFoundError("Vehicle not found", field="vehicleId")
        dealer = self._repos.dealers.get_dealer(deal.dealer_id)
        if dealer is None:
            raise DealNotFoundError("Dealer not found", field="dealerId")

        now = self._clock()
        allocated = self._allocator.allocate(
            deal.dealer_id,
            DocumentType.DEPOSIT_RECEIPT,
            dealer.sales_settings.deposit_receipt_prefix,
        )

        payment = Payment(
            payment_id=uuid4(),
            type=PaymentType.DEPOSIT,
            amount=amount,
            method=request.method,
            paid_at=now,
            reference=request.reference or allocated.document_number,
            notes=request.notes,
        )
        signature = _signature_pair(request.customer_signature_key, request.dealer_signature_key, now)

        updated = replace(
            deal,
            payments=deal.payments + (payment,),
            delivery=record_delivery_on_deposit(deal.delivery),
            deposit_signature=signature or deal.deposit_signature,
        )
        if updated.status is DealStatus.DRAFT:
            updated = transition(updated, DealStatus.DEPOSIT_TAKEN, now)
        else:
            updated = replace(updated, updated_at=now)

        settlement = compute_settlement(updated)
        token = issue_share_token(now, self._settings.deposit_share_window)
        finance_name = None
        selection = updated.finance_selection
        if selection is not None and selection.finance_company_contact_id is not None:
            company = self._repos.contacts.get_contact(selection.finance_company_contact_id)
            finance_name = company.name if company else None

        document = SalesDocument(
            document_id=uuid4(),
            dealer_id=deal.dealer_id,
            deal_id=deal.deal_id,
            type=DocumentType.DEPOSIT_RECEIPT,
            document_number=allocated.document_number,
            issued_at=now,
            snapshot=build_deposit_receipt_snapshot(
                deal=updated,
                vehicle=vehicle,
                customer=customer,
                dealer=dealer,
                settlement=settlement,
                deposit=payment,
                logo_url=resolve_logo_url(dealer, self._repos.signed_urls, self._settings.logo_url_ttl_seconds),
                finance_company_name=finance_name,
            ),
            share_token_hash=token.token_hash,
            share_expires_at=token.expires_at,
            signature=signature,
        )
        self._repos.documents.insert_document(document)
        self._repos.deals.save_deal(updated)
        self._repos.vehicles.save_sales_status(deal.vehicle_id, VehicleSalesStatus.IN_DEAL)

        logger.info(
            "Took deposit of %s on deal %s, receipt %s", amount, deal.deal_id, document.document_number
        )

        return DepositResult(
            success=True,
            deal_id=updated.deal_id,
            deal_status=updated.status,
            document_id=document.document_id,
            document_number=document.document_number,
            share_token=token.token,
            share_url=self._settings.deposit_receipt_share_url(token.token),
            deposit_amount=amount,
            balance_due=settlement.balance_due,
        )

    def sign_deposit_receipt(self, deal_id: UUID, request: SignDepositRequest) -> SalesDocument:
        """Attach signatures to the deal's active deposit receipt."""

        if not request.dealer_signature_key:
            raise InvalidRequestError("Dealer signature is required", field="dealerSignatureKey")

        deal = self._load_deal(deal_id)
        if deal.status not in SIGNABLE_STATES:
            raise DealConflictError("Deal must have a deposit receipt before signing", field="status")

        receipt = self._repos.documents.find_active_document(deal_id, DocumentType.DEPOSIT_RECEIPT)
        if receipt is None:
            raise DealNotFoundError("Deposit receipt not found", field="depositReceipt")

        now = self._clock()
        signature = _signature_pair(
            request.customer_signature_key, request.dealer_signature_key, now, previous=receipt.signature
        )
        signed = receipt.with_signature(signature)
        self._repos.documents.save_signature(signed)
        self._repos.deals.save_deal(replace(deal, deposit_signature=signature, updated_at=now))

        logger.info("Signed deposit receipt %s for deal %s", receipt.document_number, deal_id)
        return signed


__all__ = [
    "DepositResult",
    "DepositService",
    "SignDepositRequest",
    "TakeDepositRequest",
    "record_delivery_on_deposit",
]
