"""
Post-invoice lifecycle: delivery, completion and cancellation.

Thin load / transition / save wrappers around `services.deal_state_machine`.
When a vehicle repository is supplied the vehicle's sales status follows:
COMPLETED on completion, AVAILABLE again on cancellation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from domain.deal import Deal, DealStatus
from domain.errors import DealNotFoundError
from domain.time import Clock, utc_now
from domain.vehicle import VehicleSalesStatus
from repositories.protocols import DealRepository, VehicleRepository
from services.deal_state_machine import cancel_deal, mark_completed, mark_delivered
from services.payment_ledger import PAID_TOLERANCE
from services.snapshot_service import compute_settlement

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LifecycleResult:
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    balance_due: Decimal


class DealLifecycleService:
    def __init__(
        self,
        deals: DealRepository,
        *,
        vehicles: Optional[VehicleRepository] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._deals = deals
        self._vehicles = vehicles
        self._clock = clock

    def _load(self, deal_id: UUID) -> Deal:
        deal = self._deals.get_deal(deal_id)
        if deal is None:
            raise DealNotFoundError("Deal not found", field="dealId")
        return deal

    def _commit(self, deal: Deal, sales_status: Optional[VehicleSalesStatus] = None) -> LifecycleResult:
        self._deals.save_deal(deal)
        if sales_status is not None and self._vehicles is not None:
            self._vehicles.save_sales_status(deal.vehicle_id, sales_status)
        return LifecycleResult(
            success=True,
            deal_id=deal.deal_id,
            deal_status=deal.status,
            balance_due=compute_settlement(deal).balance_due,
        )

    def deliver(self, deal_id: UUID) -> LifecycleResult:
        deal = mark_delivered(self._load(deal_id), self._clock())
        logger.info("Deal %s delivered", deal_id)
        return self._commit(deal)

    def complete(self, deal_id: UUID) -> LifecycleResult:
        deal = mark_completed(self._load(deal_id), self._clock())
        result = self._commit(deal, VehicleSalesStatus.COMPLETED)
        # Completion is allowed with a balance outstanding
        if result.balance_due > PAID_TOLERANCE:
            logger.warning("Deal %s completed with balance due %s", deal_id, result.balance_due)
        else:
            logger.info("Deal %s completed", deal_id)
        return result

    def cancel(self, deal_id: UUID, reason: Optional[str] = None) -> LifecycleResult:
        deal = cancel_deal(self._load(deal_id), self._clock(), reason)
        logger.info("Deal %s cancelled", deal_id)
        return self._commit(deal, VehicleSalesStatus.AVAILABLE)


__all__ = ["DealLifecycleService", "LifecycleResult"]
