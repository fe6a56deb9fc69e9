"""
Domain: Vehicle reference data.

The acquisition record (stock invoice value, purchase date and supplier) is
required for regulatory stock-book reporting and gates invoicing.

`sales_status` tracks where the vehicle sits in a sale. It follows the deal:
IN_DEAL once a deposit is taken, SOLD_IN_PROGRESS once invoiced, COMPLETED
when the sale completes and AVAILABLE again if the sale is cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID


class VehicleSalesStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_DEAL = "IN_DEAL"
    SOLD_IN_PROGRESS = "SOLD_IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True, slots=True)
class VehicleAcquisition:
    purchase_price_net: Optional[Decimal] = None  # SIV
    purchase_date: Optional[date] = None
    supplier_contact_id: Optional[UUID] = None


@dataclass(frozen=True, slots=True)
class Vehicle:
    vehicle_id: UUID
    dealer_id: UUID
    reg_current: Optional[str] = None
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    derivative: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    colour: Optional[str] = None
    first_registered_date: Optional[date] = None
    acquisition: VehicleAcquisition = field(default_factory=VehicleAcquisition)
    sales_status: VehicleSalesStatus = VehicleSalesStatus.AVAILABLE


@dataclass(frozen=True, slots=True)
class ServiceRecord:
    """Service history entry; only used to annotate document snapshots."""

    service_date: date
    description: str
    mileage: Optional[int] = None
    garage: Optional[str] = None
