"""
Tests for `services/deposit_service.py`.

Covers contract rules:
- A deposit moves a DRAFT deal to DEPOSIT_TAKEN and issues a numbered receipt.
- The delivery charge at deposit time is pinned once.
- Signatures can be captured afterwards without touching the snapshot.
- Invalid amounts and finalized deals are rejected with nothing persisted.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from domain.deal import DealStatus, Delivery, PaymentMethod, PaymentType
from domain.errors import DealConflictError, DealNotFoundError, InvalidRequestError, InvoicePreconditionError
from domain.sales_document import DocumentType
from services.deposit_service import SignDepositRequest, TakeDepositRequest, record_delivery_on_deposit

from conftest import DEAL_ID


def _receipts(repos):
    return [d for d in repos.documents.all() if d.type is DocumentType.DEPOSIT_RECEIPT]


def _deposit(amount: str = "1000.00", **kwargs) -> TakeDepositRequest:
    return TakeDepositRequest(amount=Decimal(amount), method=PaymentMethod.CARD, **kwargs)


def test_take_deposit_on_draft_deal(world, deposit_service, repos, clock) -> None:
    result = deposit_service.take_deposit(DEAL_ID, _deposit())

    assert result.success
    assert result.deal_status is DealStatus.DEPOSIT_TAKEN
    assert result.document_number == "DEP00001"
    assert result.deposit_amount == Decimal("1000.00")
    assert result.balance_due == Decimal("11170.00")
    assert result.share_url == f"https://dealer.example.com/public/deposit-receipt/{result.share_token}"

    deal = world.current_deal()
    assert deal.status is DealStatus.DEPOSIT_TAKEN
    assert deal.deposit_taken_at == clock.now
    [payment] = deal.payments
    assert payment.type is PaymentType.DEPOSIT
    assert payment.reference == "DEP00001"

    [receipt] = _receipts(repos)
    assert receipt.share_expires_at == clock.now + timedelta(days=30)
    assert receipt.snapshot["depositAmount"] == "1000.00"
    assert receipt.snapshot["balanceDue"] == "11170.00"
    assert len(receipt.snapshot["payments"]) == 1


def test_second_deposit_keeps_status_and_numbers_on(world, deposit_service, repos) -> None:
    deposit_service.take_deposit(DEAL_ID, _deposit("500.00"))
    second = deposit_service.take_deposit(DEAL_ID, _deposit("250.00", reference="Card 4242"))

    assert second.document_number == "DEP00002"
    assert second.deal_status is DealStatus.DEPOSIT_TAKEN
    assert second.balance_due == Decimal("11420.00")

    deal = world.current_deal()
    assert [p.amount for p in deal.payments] == [Decimal("500.00"), Decimal("250.00")]
    assert deal.payments[1].reference == "Card 4242"


def test_delivery_charge_is_pinned_on_first_deposit(world, deposit_service) -> None:
    deposit_service.take_deposit(DEAL_ID, _deposit("500.00"))
    assert world.current_deal().delivery.original_amount_on_deposit == Decimal("50.00")

    world.update_deal(delivery=replace(world.current_deal().delivery, amount_gross=Decimal("80.00")))
    deposit_service.take_deposit(DEAL_ID, _deposit("500.00"))

    assert world.current_deal().delivery.original_amount_on_deposit == Decimal("50.00")


def test_record_delivery_on_deposit() -> None:
    assert record_delivery_on_deposit(None) is None
    assert record_delivery_on_deposit(Delivery()).original_amount_on_deposit is None
    assert record_delivery_on_deposit(Delivery(is_free=True)).original_amount_on_deposit == Decimal("0.00")
    assert record_delivery_on_deposit(Delivery(amount_gross=Decimal("75"))).original_amount_on_deposit == Decimal(
        "75.00"
    )


@pytest.mark.parametrize("amount", ["0", "-10.00"])
def test_non_positive_amount_is_rejected(world, deposit_service, repos, amount: str) -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        deposit_service.take_deposit(DEAL_ID, _deposit(amount))

    assert exc_info.value.field == "amount"
    assert repos.documents.all() == []
    assert world.current_deal().status is DealStatus.DRAFT


def test_deposit_requires_buyer(world, deposit_service, repos) -> None:
    world.update_deal(sold_to_contact_id=None)

    with pytest.raises(InvoicePreconditionError) as exc_info:
        deposit_service.take_deposit(DEAL_ID, _deposit())

    assert exc_info.value.field == "soldToContactId"
    assert repos.documents.all() == []


@pytest.mark.parametrize("status", [DealStatus.INVOICED, DealStatus.CANCELLED, DealStatus.COMPLETED])
def test_deposit_conflicts_after_invoicing(world, deposit_service, repos, status: DealStatus) -> None:
    world.update_deal(status=status)

    with pytest.raises(DealConflictError):
        deposit_service.take_deposit(DEAL_ID, _deposit())

    assert repos.documents.all() == []


def test_signatures_captured_with_deposit(world, deposit_service, repos, clock) -> None:
    deposit_service.take_deposit(
        DEAL_ID, _deposit(customer_signature_key="sig/buyer.png", dealer_signature_key="sig/dealer.png")
    )

    [receipt] = _receipts(repos)
    assert receipt.signature.has_customer
    assert receipt.signature.has_dealer
    assert receipt.signature.customer_signed_at == clock.now
    assert world.current_deal().deposit_signature == receipt.signature


def test_sign_deposit_receipt_later(world, deposit_service, invoice_service, repos, clock) -> None:
    """Signing after issuance updates the signature only; the snapshot is unchanged."""

    deposit_service.take_deposit(DEAL_ID, _deposit())
    [before] = _receipts(repos)
    clock.advance(timedelta(minutes=10))

    signed = deposit_service.sign_deposit_receipt(
        DEAL_ID,
        SignDepositRequest(dealer_signature_key="sig/dealer.png", customer_signature_key="sig/buyer.png"),
    )

    [after] = _receipts(repos)
    assert after.signature == signed.signature
    assert after.signature.dealer_signed_at == clock.now
    assert after.snapshot == before.snapshot
    assert after.document_number == before.document_number
    assert world.current_deal().deposit_signature == signed.signature

    assert invoice_service.issue_invoice(DEAL_ID).document_number == "INV00001"


def test_dealer_only_signature_keeps_earlier_customer_signature(world, deposit_service, repos) -> None:
    deposit_service.take_deposit(DEAL_ID, _deposit(customer_signature_key="sig/buyer.png"))

    deposit_service.sign_deposit_receipt(DEAL_ID, SignDepositRequest(dealer_signature_key="sig/dealer.png"))

    [receipt] = _receipts(repos)
    assert receipt.signature.customer_signature_key == "sig/buyer.png"
    assert receipt.signature.dealer_signature_key == "sig/dealer.png"


def test_sign_requires_dealer_signature(world, deposit_service) -> None:
    deposit_service.take_deposit(DEAL_ID, _deposit())

    with pytest.raises(InvalidRequestError) as exc_info:
        deposit_service.sign_deposit_receipt(DEAL_ID, SignDepositRequest(dealer_signature_key=""))

    assert exc_info.value.field == "dealerSignatureKey"


def test_sign_without_receipt(world, deposit_service) -> None:
    with pytest.raises(DealConflictError):
        deposit_service.sign_deposit_receipt(DEAL_ID, SignDepositRequest(dealer_signature_key="sig/dealer.png"))

    world.update_deal(status=DealStatus.DEPOSIT_TAKEN)
    with pytest.raises(DealNotFoundError):
        deposit_service.sign_deposit_receipt(DEAL_ID, SignDepositRequest(dealer_signature_key="sig/dealer.png"))
