"""
Tests for `services/invoice_service.py`.

Covers contract rules:
- Issuing twice returns the same invoice; only the first call mints a token.
- A failed status commit is resumed without allocating a second number.
- Finance inputs are applied before totals; the finance company is invoiced.
- Voiding reverts the deal and a re-issue receives a new number.
- Public lookup fails identically for unknown, expired and void tokens.
- Concurrent issuance for one deal yields exactly one active invoice.
- A completed deal is a conflict even when its invoice exists.
- Failed guards leave deal, documents and counters untouched.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from domain.deal import (
    DealStatus,
    FinanceSelection,
    PartExchange,
    PaymentMethod,
    PaymentType,
    Warranty,
    WarrantyType,
)
from domain.errors import (
    DealConflictError,
    DealNotFoundError,
    DocumentNotFoundError,
    InvalidRequestError,
    InvalidWarrantyError,
    InvoicePreconditionError,
)
from domain.sales_document import DocumentType
from domain.vehicle import VehicleAcquisition, VehicleSalesStatus
from repositories.errors import StorageUnavailableError
from services.deposit_service import TakeDepositRequest
from services.invoice_service import IssueInvoiceRequest

from conftest import DEAL_ID, DEALER_ID, FINANCE_COMPANY_ID


def _invoices(repos):
    return [d for d in repos.documents.all() if d.type is DocumentType.INVOICE]


def test_issue_invoice_for_draft_deal(world, invoice_service, repos, clock) -> None:
    """A ready deal is invoiced with number 1, a share link and a snapshot."""

    result = invoice_service.issue_invoice(DEAL_ID)

    assert result.success
    assert result.deal_status is DealStatus.INVOICED
    assert result.document_number == "INV00001"
    assert result.grand_total == Decimal("12170.00")
    assert result.balance_due == Decimal("12170.00")
    assert result.share_url == f"https://dealer.example.com/public/invoice/{result.share_token}"
    assert not result.already_issued

    deal = world.current_deal()
    assert deal.status is DealStatus.INVOICED
    assert deal.invoiced_at == clock.now

    [invoice] = _invoices(repos)
    assert invoice.snapshot["grandTotal"] == "12170.00"
    assert invoice.snapshot["dealNumber"] == 42
    assert invoice.snapshot["customer"]["name"] == "Jamie Buyer"
    assert invoice.signature is None
    assert invoice.share_token_hash != result.share_token
    assert invoice.share_expires_at == clock.now + timedelta(days=90)


def test_issue_invoice_is_idempotent(world, invoice_service, repos) -> None:
    """The second call returns the existing invoice and no new token."""

    first = invoice_service.issue_invoice(DEAL_ID)
    second = invoice_service.issue_invoice(DEAL_ID)

    assert second.already_issued
    assert second.document_id == first.document_id
    assert second.document_number == first.document_number
    assert second.share_token is None
    assert second.grand_total == first.grand_total
    assert len(_invoices(repos)) == 1


def test_issue_invoice_resumes_after_failed_status_commit(world, invoice_service, repos, monkeypatch) -> None:
    """Document persisted, deal save failed: retry commits status, no second number."""

    original_save = repos.deals.save_deal

    def failing_save(deal):
        raise StorageUnavailableError("Failed to save deal")

    monkeypatch.setattr(repos.deals, "save_deal", failing_save)
    with pytest.raises(StorageUnavailableError):
        invoice_service.issue_invoice(DEAL_ID)
    assert world.current_deal().status is DealStatus.DRAFT
    assert len(_invoices(repos)) == 1

    monkeypatch.setattr(repos.deals, "save_deal", original_save)
    result = invoice_service.issue_invoice(DEAL_ID)

    assert result.already_issued
    assert result.document_number == "INV00001"
    assert world.current_deal().status is DealStatus.INVOICED
    assert len(_invoices(repos)) == 1


def test_missing_deal_is_not_found(invoice_service) -> None:
    from uuid import uuid4

    with pytest.raises(DealNotFoundError):
        invoice_service.issue_invoice(uuid4())


def test_finance_company_becomes_invoice_recipient(world, invoice_service, repos) -> None:
    """Invoice to the finance company, deliver to the buyer, advance netted off."""

    result = invoice_service.issue_invoice(
        DEAL_ID,
        IssueInvoiceRequest(
            payment_method=PaymentMethod.FINANCE,
            finance_company_id=FINANCE_COMPANY_ID,
            finance_advance_amount=Decimal("5000.00"),
        ),
    )

    assert result.balance_due == Decimal("7170.00")

    deal = world.current_deal()
    assert deal.invoice_to_contact_id == FINANCE_COMPANY_ID
    assert deal.finance_selection.is_financed
    assert deal.finance_selection.finance_company_name == "Acme Motor Finance"
    assert [p.type for p in deal.payments] == [PaymentType.FINANCE_ADVANCE]

    snapshot = _invoices(repos)[0].snapshot
    assert snapshot["invoiceTo"]["name"] == "Acme Motor Finance"
    assert snapshot["deliverTo"]["name"] == "Jamie Buyer"
    assert snapshot["financeAdvance"] == "5000.00"
    assert snapshot["financeSelection"]["financeCompanyName"] == "Acme Motor Finance"
    assert snapshot["paymentMethod"] == "FINANCE"


def test_existing_invoice_recipient_is_kept(world, invoice_service) -> None:
    from conftest import SUPPLIER_ID

    world.update_deal(invoice_to_contact_id=SUPPLIER_ID)

    invoice_service.issue_invoice(DEAL_ID, IssueInvoiceRequest(finance_company_id=FINANCE_COMPANY_ID))

    assert world.current_deal().invoice_to_contact_id == SUPPLIER_ID


def test_cancel_finance_clears_selection(world, invoice_service, repos) -> None:
    world.update_deal(
        finance_selection=FinanceSelection(is_financed=True, finance_company_name="Acme", to_be_confirmed=True)
    )

    invoice_service.issue_invoice(DEAL_ID, IssueInvoiceRequest(cancel_finance=True))

    assert not world.current_deal().finance_selection.is_financed
    assert _invoices(repos)[0].snapshot["financeSelection"] is None


def test_non_positive_finance_advance_is_rejected(world, invoice_service, repos) -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        invoice_service.issue_invoice(DEAL_ID, IssueInvoiceRequest(finance_advance_amount=Decimal("0")))

    assert exc_info.value.field == "financeAdvanceAmount"
    assert repos.documents.all() == []
    assert world.current_deal().status is DealStatus.DRAFT


def test_balance_due_after_deposit_and_part_exchange(world, invoice_service, deposit_service) -> None:
    """12,170 - 1,000 deposit - 3,500 part exchange = 7,670."""

    world.update_deal(
        part_exchange=PartExchange(allowance=Decimal("3000.00"), settlement=Decimal("500.00")),
        part_exchanges=(PartExchange(allowance=Decimal("1000.00")),),
    )
    deposit_service.take_deposit(
        DEAL_ID,
        TakeDepositRequest(
            amount=Decimal("1000.00"),
            method=PaymentMethod.CARD,
            customer_signature_key="sig/buyer.png",
            dealer_signature_key="sig/dealer.png",
        ),
    )

    result = invoice_service.issue_invoice(DEAL_ID)

    assert result.grand_total == Decimal("12170.00")
    assert result.balance_due == Decimal("7670.00")


def test_unsigned_deposit_receipt_blocks_in_person_invoice(world, invoice_service, deposit_service, repos) -> None:
    deposit_service.take_deposit(DEAL_ID, TakeDepositRequest(amount=Decimal("500.00"), method=PaymentMethod.CASH))

    with pytest.raises(InvoicePreconditionError) as exc_info:
        invoice_service.issue_invoice(DEAL_ID)

    assert exc_info.value.field == "depositSignature.customer"
    assert _invoices(repos) == []


def test_delivery_removed_after_deposit_is_credited(world, invoice_service, deposit_service, repos) -> None:
    """75.00 delivery charged at deposit time, later made free: 75.00 credit."""

    world.update_deal(delivery=replace(world.current_deal().delivery, amount_gross=Decimal("75.00")))
    deposit_service.take_deposit(
        DEAL_ID,
        TakeDepositRequest(
            amount=Decimal("1000.00"),
            method=PaymentMethod.BANK_TRANSFER,
            customer_signature_key="sig/buyer.png",
            dealer_signature_key="sig/dealer.png",
        ),
    )
    world.update_deal(delivery=replace(world.current_deal().delivery, is_free=True))

    result = invoice_service.issue_invoice(DEAL_ID)

    # 10,100 net + 2,020 VAT - 75 credit
    assert result.grand_total == Decimal("12045.00")
    snapshot = _invoices(repos)[0].snapshot
    assert snapshot["deliveryCredit"] == "75.00"
    assert snapshot["lineItems"][-1]["kind"] == "DELIVERY_CREDIT"


def test_void_then_reissue_gets_new_number(world, invoice_service, repos) -> None:
    first = invoice_service.issue_invoice(DEAL_ID)

    voided = invoice_service.void_invoice(DEAL_ID, "Wrong mileage")

    assert voided.deal_status is DealStatus.DEPOSIT_TAKEN
    assert voided.voided_document_number == "INV00001"
    deal = world.current_deal()
    assert deal.status is DealStatus.DEPOSIT_TAKEN
    assert deal.invoiced_at is None

    old = [d for d in _invoices(repos) if d.document_id == first.document_id][0]
    assert old.is_void
    assert old.void_reason == "Wrong mileage"
    assert old.snapshot["grandTotal"] == "12170.00"

    second = invoice_service.issue_invoice(DEAL_ID)

    assert not second.already_issued
    assert second.document_number == "INV00002"
    assert second.document_id != first.document_id


def test_void_requires_invoiced_deal(world, invoice_service) -> None:
    with pytest.raises(DealConflictError) as exc_info:
        invoice_service.void_invoice(DEAL_ID)
    assert exc_info.value.hint == "No invoice exists for this deal"

    invoice_service.issue_invoice(DEAL_ID)
    world.update_deal(status=DealStatus.DELIVERED)

    with pytest.raises(DealConflictError) as exc_info:
        invoice_service.void_invoice(DEAL_ID)
    assert exc_info.value.hint == "Deal has already been delivered or completed"


def test_void_default_reason(world, invoice_service, repos) -> None:
    invoice_service.issue_invoice(DEAL_ID)

    invoice_service.void_invoice(DEAL_ID)

    assert _invoices(repos)[0].void_reason == "Voided by user"


def test_public_lookup_by_share_token(world, invoice_service, clock) -> None:
    issued = invoice_service.issue_invoice(DEAL_ID)

    document = invoice_service.get_document_by_share_token(issued.share_token)

    assert document.document_number == "INV00001"
    assert document.type is DocumentType.INVOICE
    assert document.snapshot["grandTotal"] == "12170.00"


@pytest.mark.parametrize("token", ["", "not-a-real-token"])
def test_public_lookup_unknown_token(world, invoice_service, token: str) -> None:
    invoice_service.issue_invoice(DEAL_ID)

    with pytest.raises(DocumentNotFoundError):
        invoice_service.get_document_by_share_token(token)


def test_public_lookup_expired_token(world, invoice_service, clock) -> None:
    issued = invoice_service.issue_invoice(DEAL_ID)
    clock.advance(timedelta(days=90))

    with pytest.raises(DocumentNotFoundError):
        invoice_service.get_document_by_share_token(issued.share_token)


def test_public_lookup_void_document(world, invoice_service) -> None:
    issued = invoice_service.issue_invoice(DEAL_ID)
    invoice_service.void_invoice(DEAL_ID)

    with pytest.raises(DocumentNotFoundError) as exc_info:
        invoice_service.get_document_by_share_token(issued.share_token)
    assert exc_info.value.message == "Document not found or has expired"


def test_failed_guard_persists_nothing(world, invoice_service, repos) -> None:
    world.update_vehicle(acquisition=replace(world.vehicle.acquisition, purchase_date=None))
    saves_before = repos.deals.save_count

    with pytest.raises(InvoicePreconditionError) as exc_info:
        invoice_service.issue_invoice(DEAL_ID)

    assert exc_info.value.field == "purchase.purchaseDate"
    assert repos.documents.all() == []
    assert repos.deals.save_count == saves_before
    assert not repos.counters.counter_exists(DEALER_ID, DocumentType.INVOICE)


def test_missing_vehicle_acquisition_reported(world, invoice_service) -> None:
    world.update_vehicle(acquisition=VehicleAcquisition())

    with pytest.raises(InvoicePreconditionError) as exc_info:
        invoice_service.issue_invoice(DEAL_ID)

    assert exc_info.value.field == "purchase.purchasePriceNet"


def test_invalid_warranty_does_not_consume_a_number(world, invoice_service, repos) -> None:
    world.update_deal(
        warranty=Warranty(included=True, type=WarrantyType.TRADE, price_gross=Decimal("100.00"))
    )

    with pytest.raises(InvalidWarrantyError):
        invoice_service.issue_invoice(DEAL_ID)

    assert not repos.counters.counter_exists(DEALER_ID, DocumentType.INVOICE)

    world.update_deal(warranty=None)
    assert invoice_service.issue_invoice(DEAL_ID).document_number == "INV00001"


def test_cancelled_deal_cannot_be_invoiced(world, invoice_service, repos) -> None:
    world.update_deal(status=DealStatus.CANCELLED)

    with pytest.raises(DealConflictError):
        invoice_service.issue_invoice(DEAL_ID)

    assert repos.documents.all() == []


def test_logo_is_signed_into_snapshot(world, invoice_service, repos) -> None:
    invoice_service.issue_invoice(DEAL_ID)

    snapshot = _invoices(repos)[0].snapshot

    assert snapshot["dealer"]["logoUrl"].startswith("https://storage.invalid/signed/logos/northside.png")
    assert snapshot["dealer"]["vatNumber"] == "GB123456789"
    assert snapshot["termsText"] == "Consumer in-person terms"
    assert len(snapshot["serviceHistory"]) == 2


def test_issued_snapshot_is_read_only(world, invoice_service, repos) -> None:
    invoice_service.issue_invoice(DEAL_ID)
    snapshot = _invoices(repos)[0].snapshot

    with pytest.raises(TypeError):
        snapshot["grandTotal"] = "0.00"  # type: ignore[index]
    with pytest.raises(TypeError):
        snapshot["vehicle"]["mileage"] = 1  # type: ignore[index]


def test_concurrent_issue_produces_one_invoice(world, invoice_service, repos, monkeypatch, caplog) -> None:
    """Both requests pass the existing-invoice check; the loser resumes on the winner's invoice."""

    barrier = threading.Barrier(2, timeout=5)
    original_find = repos.documents.find_active_document
    waited = threading.local()

    def find_then_wait(deal_id, document_type):
        found = original_find(deal_id, document_type)
        if document_type is DocumentType.INVOICE and not getattr(waited, "done", False):
            waited.done = True
            barrier.wait()
        return found

    monkeypatch.setattr(repos.documents, "find_active_document", find_then_wait)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(invoice_service.issue_invoice, DEAL_ID) for _ in range(2)]
        results = [f.result() for f in futures]

    active = [d for d in _invoices(repos) if not d.is_void]
    assert len(active) == 1
    assert {r.document_id for r in results} == {active[0].document_id}
    assert sorted(r.already_issued for r in results) == [False, True]
    assert world.current_deal().status is DealStatus.INVOICED
    assert "left unused" in caplog.text


def test_completed_deal_with_invoice_is_a_conflict(world, invoice_service, repos) -> None:
    invoice_service.issue_invoice(DEAL_ID)
    world.update_deal(status=DealStatus.COMPLETED)

    with pytest.raises(DealConflictError) as exc_info:
        invoice_service.issue_invoice(DEAL_ID)

    assert exc_info.value.message == "Deal is already completed"
    assert len(_invoices(repos)) == 1
    assert world.current_deal().status is DealStatus.COMPLETED


def test_finance_company_named_without_contact_is_invoiced(world, invoice_service, repos) -> None:
    invoice_service.issue_invoice(DEAL_ID, IssueInvoiceRequest(finance_company_name="Northern Auto Credit"))

    deal = world.current_deal()
    assert deal.invoice_to_contact_id is None
    assert deal.finance_selection.finance_company_name == "Northern Auto Credit"

    snapshot = _invoices(repos)[0].snapshot
    assert snapshot["invoiceTo"]["name"] == "Northern Auto Credit"
    assert snapshot["invoiceTo"]["email"] is None
    assert snapshot["deliverTo"]["name"] == "Jamie Buyer"


def test_vehicle_sales_status_follows_invoice(world, invoice_service) -> None:
    assert world.current_vehicle().sales_status is VehicleSalesStatus.AVAILABLE

    invoice_service.issue_invoice(DEAL_ID)
    assert world.current_vehicle().sales_status is VehicleSalesStatus.SOLD_IN_PROGRESS

    invoice_service.void_invoice(DEAL_ID)
    assert world.current_vehicle().sales_status is VehicleSalesStatus.IN_DEAL
