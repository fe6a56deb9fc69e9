"""
Tests for `services/deal_lifecycle_service.py`.

Covers contract rules:
- Delivery and completion follow invoicing in order.
- Completion with money outstanding is allowed but logged.
- Cancellation records the reason and is final.
- The vehicle is marked completed on completion and released on cancellation.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.deal import DealStatus, PaymentMethod
from domain.errors import DealConflictError, DealNotFoundError, IllegalTransitionError
from domain.vehicle import VehicleSalesStatus
from services.deal_lifecycle_service import DealLifecycleService
from services.deposit_service import TakeDepositRequest

from conftest import DEAL_ID


@pytest.fixture
def lifecycle(repos, clock) -> DealLifecycleService:
    return DealLifecycleService(repos.deals, vehicles=repos.vehicles, clock=clock)


def test_deliver_then_complete(world, invoice_service, lifecycle, clock) -> None:
    invoice_service.issue_invoice(DEAL_ID)
    clock.advance(timedelta(days=1))

    delivered = lifecycle.deliver(DEAL_ID)
    assert delivered.deal_status is DealStatus.DELIVERED
    assert world.current_deal().delivered_at == clock.now

    clock.advance(timedelta(days=1))
    completed = lifecycle.complete(DEAL_ID)

    assert completed.deal_status is DealStatus.COMPLETED
    assert world.current_deal().completed_at == clock.now
    assert completed.balance_due == Decimal("12170.00")


def test_complete_with_balance_outstanding_logs_warning(world, invoice_service, lifecycle, caplog) -> None:
    invoice_service.issue_invoice(DEAL_ID)
    lifecycle.deliver(DEAL_ID)

    lifecycle.complete(DEAL_ID)

    assert "completed with balance due 12170.00" in caplog.text


def test_deliver_requires_invoice(world, lifecycle) -> None:
    with pytest.raises(IllegalTransitionError):
        lifecycle.deliver(DEAL_ID)

    assert world.current_deal().status is DealStatus.DRAFT


def test_complete_requires_delivery(world, invoice_service, lifecycle) -> None:
    invoice_service.issue_invoice(DEAL_ID)

    with pytest.raises(IllegalTransitionError):
        lifecycle.complete(DEAL_ID)


def test_cancel_records_reason(world, lifecycle, clock) -> None:
    result = lifecycle.cancel(DEAL_ID, "Buyer changed their mind")

    assert result.deal_status is DealStatus.CANCELLED
    deal = world.current_deal()
    assert deal.cancel_reason == "Buyer changed their mind"
    assert deal.cancelled_at == clock.now

    with pytest.raises(DealConflictError):
        lifecycle.cancel(DEAL_ID)


def test_unknown_deal(lifecycle) -> None:
    with pytest.raises(DealNotFoundError):
        lifecycle.deliver(uuid4())


def test_vehicle_sales_status_follows_lifecycle(world, invoice_service, lifecycle) -> None:
    invoice_service.issue_invoice(DEAL_ID)
    lifecycle.deliver(DEAL_ID)
    assert world.current_vehicle().sales_status is VehicleSalesStatus.SOLD_IN_PROGRESS

    lifecycle.complete(DEAL_ID)

    assert world.current_vehicle().sales_status is VehicleSalesStatus.COMPLETED


def test_cancel_releases_vehicle(world, deposit_service, lifecycle) -> None:
    deposit_service.take_deposit(DEAL_ID, TakeDepositRequest(amount=Decimal("500.00"), method=PaymentMethod.CASH))
    assert world.current_vehicle().sales_status is VehicleSalesStatus.IN_DEAL

    lifecycle.cancel(DEAL_ID)

    assert world.current_vehicle().sales_status is VehicleSalesStatus.AVAILABLE
