"""
Invoice issuance service.

Orchestrates the path from a mutable deal to an immutable, numbered invoice:

    existing-invoice short-circuit
    -> lifecycle guards
    -> behavioral inputs (finance) applied to the deal
    -> totals / payments / part-exchange netting
    -> document number allocation
    -> share token
    -> snapshot persisted
    -> deal status committed

Issuance is not one transaction. If the process dies after the document is
persisted but before the deal status is committed, the next call finds the
active invoice and resumes by committing the status instead of allocating a
second number.

Storage allows one non-void invoice per deal. Two requests that both pass
the existing-invoice check race on the insert; the loser's insert fails with
DuplicateDocumentError and it resumes on the winner's invoice. Its allocated
number is left unused.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from domain.contact import Contact
from domain.deal import Deal, DealStatus, FinanceSelection, Payment, PaymentMethod, PaymentType
from domain.errors import (
    DealConflictError,
    DealNotFoundError,
    DocumentNotFoundError,
    InvalidRequestError,
    InvoicePreconditionError,
)
from domain.dealer import Dealer
from domain.money import ZERO, optional_decimal, to_decimal
from domain.sales_document import DocumentType, SalesDocument
from domain.time import Clock, utc_now
from domain.vehicle import VehicleSalesStatus
from repositories.errors import DuplicateDocumentError
from repositories.protocols import SalesRepositories
from services.deal_state_machine import (
    ALREADY_INVOICED_STATES,
    ensure_can_invoice,
    ensure_not_finalized,
    transition,
)
from services.document_number_service import DocumentNumberAllocator
from services.settings import EngineSettings
from services.share_token_service import hash_share_token, issue_share_token, verify_share_token
from services.snapshot_service import build_invoice_snapshot, compute_settlement, resolve_logo_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IssueInvoiceRequest:
    """
    Optional inputs applied to the deal before totals are computed.

    cancel_finance: clear any finance selection
    finance_company_id / finance_company_name: confirm the finance company;
        it also becomes the invoice recipient when none is set
    finance_advance_amount: recorded as a FINANCE_ADVANCE payment
    """
    payment_method: Optional[PaymentMethod] = None
    finance_company_id: Optional[UUID] = None
    finance_company_name: Optional[str] = None
    finance_advance_amount: Optional[Decimal] = None
    cancel_finance: bool = False


@dataclass(frozen=True, slots=True)
class InvoiceIssueResult:
    """
    Result of an issuance attempt.

    share_token / share_url are only present when this call minted the token.
    An already-issued invoice returns them as None: only the hash is stored.
    """
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    document_id: UUID
    document_number: str
    share_token: Optional[str]
    share_url: Optional[str]
    grand_total: Decimal
    balance_due: Decimal
    already_issued: bool = False


@dataclass(frozen=True, slots=True)
class VoidInvoiceResult:
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    voided_document_id: UUID
    voided_document_number: str


@dataclass(frozen=True, slots=True)
class PublicDocument:
    document_id: UUID
    type: DocumentType
    document_number: str
    issued_at: datetime
    snapshot: Mapping[str, Any]


def apply_invoice_inputs(
    deal: Deal,
    request: IssueInvoiceRequest,
    *,
    at: datetime,
    finance_company: Optional[Contact] = None,
) -> Deal:
    """
    Return the deal with the request's behavioral inputs applied.

    Raises:
        InvalidRequestError: for a non-positive finance advance amount.
    """

    changes: dict[str, Any] = {}
    if request.payment_method is not None:
        changes["payment_method"] = request.payment_method

    if request.cancel_finance:
        changes["finance_selection"] = FinanceSelection(is_financed=False)
    elif request.finance_company_id is not None or request.finance_company_name:
        current = deal.finance_selection or FinanceSelection()
        name = request.finance_company_name or (finance_company.name if finance_company else None)
        changes["finance_selection"] = replace(
            current,
            is_financed=True,
            finance_company_contact_id=request.finance_company_id or current.finance_company_contact_id,
            finance_company_name=name or current.finance_company_name,
            to_be_confirmed=False,
        )
        if deal.invoice_to_contact_id is None and request.finance_company_id is not None:
            changes["invoice_to_contact_id"] = request.finance_company_id

    if request.finance_advance_amount is not None and not request.cancel_finance:
        amount = to_decimal(request.finance_advance_amount)
        if amount <= ZERO:
            raise InvalidRequestError(
                "Finance advance amount must be greater than zero",
                field="financeAdvanceAmount",
            )
        selection = changes.get("finance_selection", deal.finance_selection) or FinanceSelection(is_financed=True)
        changes["finance_selection"] = replace(selection, advance_amount=amount)
        changes["payments"] = deal.payments + (
            Payment(
                payment_id=uuid4(),
                type=PaymentType.FINANCE_ADVANCE,
                amount=amount,
                method=PaymentMethod.FINANCE,
                paid_at=at,
                reference=selection.finance_company_name,
            ),
        )

    return replace(deal, **changes) if changes else deal


class InvoiceService:
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

    def _load_dealer(self, dealer_id: UUID) -> Dealer:
        dealer = self._repos.dealers.get_dealer(dealer_id)
        if dealer is None:
            raise DealNotFoundError("Dealer not found", field="dealerId")
        return dealer

    def _contact(self, contact_id: Optional[UUID]) -> Optional[Contact]:
        if contact_id is None:
            return None
        return self._repos.contacts.get_contact(contact_id)

    def _existing_result(self, deal: Deal, document: SalesDocument) -> InvoiceIssueResult:
        snapshot = document.snapshot
        return InvoiceIssueResult(
            success=True,
            deal_id=deal.deal_id,
            deal_status=deal.status,
            document_id=document.document_id,
            document_number=document.document_number,
            share_token=None,
            share_url=None,
            grand_total=optional_decimal(snapshot.get("grandTotal")) or ZERO,
            balance_due=optional_decimal(snapshot.get("balanceDue")) or ZERO,
            already_issued=True,
        )

    def issue_invoice(self, deal_id: UUID, request: Optional[IssueInvoiceRequest] = None) -> InvoiceIssueResult:
        """
        Issue the invoice for a deal, or return the one already issued.

        Args:
            deal_id: Deal to invoice
            request: Optional finance / payment method inputs

        Returns:
            InvoiceIssueResult; `already_issued` is True when an active invoice existed

        Raises:
            DealNotFoundError, DealConflictError, InvoicePreconditionError,
            InvalidWarrantyError, InvalidRequestError, StorageUnavailableError
        """

        request = request or IssueInvoiceRequest()
        deal = self._load_deal(deal_id)

        existing = self._repos.documents.find_active_document(deal_id, DocumentType.INVOICE)
        if existing is not None:
            return self._resume(deal, existing, request)

        vehicle = self._repos.vehicles.get_vehicle(deal.vehicle_id)
        deposit_receipt = self._repos.documents.find_active_document(deal_id, DocumentType.DEPOSIT_RECEIPT)
        ensure_can_invoice(deal, vehicle, deposit_receipt)

        customer = self._contact(deal.sold_to_contact_id)
        if customer is None:
            raise InvoicePreconditionError(
                "Customer record not found",
                field="soldToContactId",
                hint="Attach an existing contact as the buyer",
            )
        dealer = self._load_dealer(deal.dealer_id)

        now = self._clock()
        finance_company = self._contact(request.finance_company_id)
        deal = apply_invoice_inputs(deal, request, at=now, finance_company=finance_company)

        # Computed before allocation so an invalid warranty never consumes a number
        settlement = compute_settlement(deal)

        invoice_to = self._contact(deal.invoice_to_contact_id)
        finance_name = None
        if deal.finance_selection is not None and deal.finance_selection.finance_company_contact_id is not None:
            company = self._contact(deal.finance_selection.finance_company_contact_id)
            finance_name = company.name if company else None

        allocated = self._allocator.allocate(
            deal.dealer_id,
            DocumentType.INVOICE,
            dealer.sales_settings.invoice_number_prefix,
        )
        token = issue_share_token(now, self._settings.invoice_share_window)

        snapshot = build_invoice_snapshot(
            deal=deal,
            vehicle=vehicle,
            customer=customer,
            invoice_to=invoice_to,
            dealer=dealer,
            settlement=settlement,
            logo_url=resolve_logo_url(dealer, self._repos.signed_urls, self._settings.logo_url_ttl_seconds),
            finance_company_name=finance_name,
            service_records=self._repos.vehicles.list_service_records(deal.vehicle_id),
        )
        document = SalesDocument(
            document_id=uuid4(),
            dealer_id=deal.dealer_id,
            deal_id=deal.deal_id,
            type=DocumentType.INVOICE,
            document_number=allocated.document_number,
            issued_at=now,
            snapshot=snapshot,
            share_token_hash=token.token_hash,
            share_expires_at=token.expires_at,
        )
        try:
            self._repos.documents.insert_document(document)
        except DuplicateDocumentError:
            # A concurrent request inserted the deal's invoice first
            winner = self._repos.documents.find_active_document(deal_id, DocumentType.INVOICE)
            if winner is None:
                raise
            logger.warning(
                "Invoice for deal %s already issued as %s; number %s left unused",
                deal_id,
                winner.document_number,
                document.document_number,
            )
            return self._resume(self._load_deal(deal_id), winner, request)

        invoiced = transition(deal, DealStatus.INVOICED, now)
        self._repos.deals.save_deal(invoiced)
        self._repos.vehicles.save_sales_status(deal.vehicle_id, VehicleSalesStatus.SOLD_IN_PROGRESS)

        logger.info(
            "Issued invoice %s for deal %s (grand total %s, balance due %s)",
            document.document_number,
            deal.deal_id,
            settlement.totals.grand_total,
            settlement.balance_due,
        )

        return InvoiceIssueResult(
            success=True,
            deal_id=invoiced.deal_id,
            deal_status=invoiced.status,
            document_id=document.document_id,
            document_number=document.document_number,
            share_token=token.token,
            share_url=self._settings.invoice_share_url(token.token),
            grand_total=settlement.totals.grand_total,
            balance_due=settlement.balance_due,
        )

    def _resume(self, deal: Deal, existing: SalesDocument, request: IssueInvoiceRequest) -> InvoiceIssueResult:
        ensure_not_finalized(deal, "invoice")
        if deal.status in ALREADY_INVOICED_STATES:
            return self._existing_result(deal, existing)

        # The document exists but the status commit did not happen; finish it.
        now = self._clock()
        finance_company = self._contact(request.finance_company_id)
        deal = apply_invoice_inputs(deal, request, at=now, finance_company=finance_company)
        invoiced = transition(deal, DealStatus.INVOICED, now)
        self._repos.deals.save_deal(invoiced)
        self._repos.vehicles.save_sales_status(deal.vehicle_id, VehicleSalesStatus.SOLD_IN_PROGRESS)
        logger.warning(
            "Resumed invoice %s for deal %s: status committed after earlier failure",
            existing.document_number,
            deal.deal_id,
        )
        return self._existing_result(invoiced, existing)

    def void_invoice(self, deal_id: UUID, reason: Optional[str] = None) -> VoidInvoiceResult:
        """
        Void the active invoice and revert the deal to DEPOSIT_TAKEN.

        The voided document keeps its snapshot and number; a new invoice may be
        issued afterwards and receives a new number.
        """

        deal = self._load_deal(deal_id)
        if deal.status is not DealStatus.INVOICED:
            hint = (
                "Deal has already been delivered or completed"
                if deal.status in (DealStatus.DELIVERED, DealStatus.COMPLETED)
                else "No invoice exists for this deal"
            )
            raise DealConflictError(
                f"Cannot void invoice for {deal.status.value.lower()} deal",
                field="status",
                hint=hint,
            )

        invoice = self._repos.documents.find_active_document(deal_id, DocumentType.INVOICE)
        if invoice is None:
            raise DealConflictError("No active invoice found for this deal", field="invoice")

        now = self._clock()
        voided = invoice.void(voided_at=now, reason=reason or "Voided by user")
        self._repos.documents.save_void(voided)

        reverted = transition(deal, DealStatus.DEPOSIT_TAKEN, now)
        self._repos.deals.save_deal(reverted)
        self._repos.vehicles.save_sales_status(deal.vehicle_id, VehicleSalesStatus.IN_DEAL)

        logger.info("Voided invoice %s for deal %s", invoice.document_number, deal_id)
        return VoidInvoiceResult(
            success=True,
            deal_id=deal_id,
            deal_status=reverted.status,
            voided_document_id=invoice.document_id,
            voided_document_number=invoice.document_number,
        )

    def get_document_by_share_token(self, token: str) -> PublicDocument:
        """
        Public read of an issued document.

        Raises:
            DocumentNotFoundError: unknown, expired, or void. Same error for each.
        """

        if not token:
            raise DocumentNotFoundError()
        document = self._repos.documents.find_by_share_token_hash(hash_share_token(token))
        if document is None or document.is_void:
            raise DocumentNotFoundError()
        if not verify_share_token(token, document.share_token_hash, document.share_expires_at, self._clock()):
            raise DocumentNotFoundError()
        return PublicDocument(
            document_id=document.document_id,
            type=document.type,
            document_number=document.document_number,
            issued_at=document.issued_at,
            snapshot=document.snapshot,
        )


__all__ = [
    "InvoiceIssueResult",
    "InvoiceService",
    "IssueInvoiceRequest",
    "PublicDocument",
    "VoidInvoiceResult",
    "apply_invoice_inputs",
]
