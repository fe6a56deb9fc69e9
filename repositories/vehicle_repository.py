"""
Vehicle repository.

Reads vehicles (descriptive fields plus the acquisition record used for the
stock book) and, optionally, service history used to annotate snapshots.
The only write is the sales status, which follows the deal lifecycle.
"""

from __future__ import annotations

from datetime import date
from typing import Any, List, Mapping, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.money import optional_decimal
from domain.vehicle import ServiceRecord, Vehicle, VehicleAcquisition, VehicleSalesStatus
from repositories.client import execute, get_supabase, rows_of

_VEHICLES_TABLE: str = "vehicles"
_SERVICE_RECORDS_TABLE: str = "service_records"


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _row_to_vehicle(row: Mapping[str, Any]) -> Vehicle:
    """Convert a Supabase row into a Vehicle."""

    purchase = row.get("purchase") or {}
    supplier = purchase.get("purchased_from_contact_id")
    return Vehicle(
        vehicle_id=UUID(str(row["vehicle_id"])),
        dealer_id=UUID(str(row["dealer_id"])),
        reg_current=row.get("reg_current"),
        vin=row.get("vin"),
        make=row.get("make"),
        model=row.get("model"),
        derivative=row.get("derivative"),
        year=row.get("year"),
        mileage=row.get("mileage_current"),
        colour=row.get("colour"),
        first_registered_date=_parse_date(row.get("first_registered_date")),
        acquisition=VehicleAcquisition(
            purchase_price_net=optional_decimal(purchase.get("purchase_price_net")),
            purchase_date=_parse_date(purchase.get("purchase_date")),
            supplier_contact_id=UUID(str(supplier)) if supplier else None,
        ),
        sales_status=VehicleSalesStatus(row.get("sales_status") or VehicleSalesStatus.AVAILABLE.value),
    )


class SupabaseVehicleRepository:
    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]:
        response = execute(
            self._client.table(_VEHICLES_TABLE).select("*").eq("vehicle_id", str(vehicle_id)).limit(1),
            "fetch vehicle",
        )
        rows = rows_of(response)
        if not rows:
            return None
        return _row_to_vehicle(rows[0])

    def list_service_records(self, vehicle_id: UUID) -> List[ServiceRecord]:
        response = execute(
            self._client.table(_SERVICE_RECORDS_TABLE)
            .select("*")
            .eq("vehicle_id", str(vehicle_id))
            .order("service_date", desc=True),
            "list service records",
        )
        return [
            ServiceRecord(
                service_date=_parse_date(row["service_date"]),
                description=str(row.get("description") or ""),
                mileage=row.get("mileage"),
                garage=row.get("garage"),
            )
            for row in rows_of(response)
        ]

    def save_sales_status(self, vehicle_id: UUID, sales_status: VehicleSalesStatus) -> None:
        payload: dict[str, Any] = {"sales_status": sales_status.value}
        if sales_status is VehicleSalesStatus.COMPLETED:
            payload["status"] = "SOLD"
        execute(
            self._client.table(_VEHICLES_TABLE).update(payload).eq("vehicle_id", str(vehicle_id)),
            "update vehicle sales status",
        )


__all__ = ["SupabaseVehicleRepository"]
