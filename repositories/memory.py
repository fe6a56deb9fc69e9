"""
In-process implementations of the repository protocols.

Used by the test suite and local scripts. Semantics mirror the Supabase
implementations, including the atomic counter: `increment` holds a lock for
the whole create-or-increment step, the in-process equivalent of the
single-statement Postgres function.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from domain.contact import Contact
from domain.deal import Deal
from domain.dealer import Dealer
from domain.sales_document import DocumentType, SalesDocument, highest_numbered
from domain.vehicle import ServiceRecord, Vehicle, VehicleSalesStatus
from repositories.errors import DuplicateDocumentError
from repositories.protocols import CounterValue, SalesRepositories


class InMemoryDealRepository:
    def __init__(self) -> None:
        self._deals: Dict[UUID, Deal] = {}
        self.save_count = 0

    def add(self, deal: Deal) -> Deal:
        self._deals[deal.deal_id] = deal
        return deal

    def get_deal(self, deal_id: UUID) -> Optional[Deal]:
        return self._deals.get(deal_id)

    def save_deal(self, deal: Deal) -> None:
        self._deals[deal.deal_id] = deal
        self.save_count += 1


class InMemoryVehicleRepository:
    def __init__(self) -> None:
        self._vehicles: Dict[UUID, Vehicle] = {}
        self._service_records: Dict[UUID, List[ServiceRecord]] = {}

    def add(self, vehicle: Vehicle, service_records: Optional[List[ServiceRecord]] = None) -> Vehicle:
        self._vehicles[vehicle.vehicle_id] = vehicle
        if service_records is not None:
            self._service_records[vehicle.vehicle_id] = list(service_records)
        return vehicle

    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)

    def list_service_records(self, vehicle_id: UUID) -> List[ServiceRecord]:
        return list(self._service_records.get(vehicle_id, []))

    def save_sales_status(self, vehicle_id: UUID, sales_status: VehicleSalesStatus) -> None:
        vehicle = self._vehicles.get(vehicle_id)
        if vehicle is None:
            return
        self._vehicles[vehicle_id] = replace(vehicle, sales_status=sales_status)


class InMemoryContactRepository:
    def __init__(self) -> None:
        self._contacts: Dict[UUID, Contact] = {}

    def add(self, contact: Contact) -> Contact:
        self._contacts[contact.contact_id] = contact
        return contact

    def get_contact(self, contact_id: UUID) -> Optional[Contact]:
        return self._contacts.get(contact_id)


class InMemoryDealerRepository:
    def __init__(self) -> None:
        self._dealers: Dict[UUID, Dealer] = {}

    def add(self, dealer: Dealer) -> Dealer:
        self._dealers[dealer.dealer_id] = dealer
        return dealer

    def get_dealer(self, dealer_id: UUID) -> Optional[Dealer]:
        return self._dealers.get(dealer_id)


class InMemorySalesDocumentRepository:
    def __init__(self) -> None:
        self._documents: Dict[UUID, SalesDocument] = {}
        self._lock = threading.Lock()

    def all(self) -> List[SalesDocument]:
        with self._lock:
            return list(self._documents.values())

    def find_active_document(self, deal_id: UUID, document_type: DocumentType) -> Optional[SalesDocument]:
        matches = [
            d
            for d in self.all()
            if d.deal_id == deal_id and d.type is document_type and not d.is_void
        ]
        if not matches:
            return None
        return max(matches, key=lambda d: d.issued_at)

    def find_by_number(
        self, dealer_id: UUID, document_type: DocumentType, document_number: str
    ) -> Optional[SalesDocument]:
        for d in self.all():
            if (
                d.dealer_id == dealer_id
                and d.type is document_type
                and d.document_number == document_number
            ):
                return d
        return None

    def find_by_share_token_hash(self, token_hash: str) -> Optional[SalesDocument]:
        for d in self.all():
            if d.share_token_hash == token_hash:
                return d
        return None

    def highest_document_number(self, dealer_id: UUID, document_type: DocumentType) -> Optional[str]:
        return highest_numbered(
            d.document_number
            for d in self.all()
            if d.dealer_id == dealer_id and d.type is document_type
        )

    def insert_document(self, document: SalesDocument) -> None:
        """Same uniqueness rules as the sales_documents indexes in sql/document_counters.sql."""

        with self._lock:
            if document.document_id in self._documents:
                raise ValueError("SalesDocument already exists")
            for d in self._documents.values():
                if d.type is not document.type:
                    continue
                if d.dealer_id == document.dealer_id and d.document_number == document.document_number:
                    raise DuplicateDocumentError("Document number already in use")
                if document.type.single_active and d.deal_id == document.deal_id and not d.is_void:
                    raise DuplicateDocumentError("An active document of this type already exists for the deal")
            self._documents[document.document_id] = document

    def save_paid(self, document: SalesDocument) -> None:
        with self._lock:
            existing = self._documents.get(document.document_id)
            if existing is None:
                raise ValueError("SalesDocument not found")
            self._documents[document.document_id] = existing.mark_paid(document.paid_at)

    def save_void(self, document: SalesDocument) -> None:
        with self._lock:
            existing = self._documents.get(document.document_id)
            if existing is None:
                raise ValueError("SalesDocument not found")
            # Only the void fields are taken from the caller; the snapshot stays as issued.
            self._documents[document.document_id] = existing.void(
                voided_at=document.voided_at, reason=document.void_reason or ""
            )

    def save_signature(self, document: SalesDocument) -> None:
        with self._lock:
            existing = self._documents.get(document.document_id)
            if existing is None:
                raise ValueError("SalesDocument not found")
            self._documents[document.document_id] = existing.with_signature(document.signature)


class InMemoryDocumentCounterStore:
    def __init__(self) -> None:
        # (dealer_id, type) -> (next_number, prefix)
        self._counters: Dict[Tuple[UUID, DocumentType], Tuple[int, str]] = {}
        self._lock = threading.Lock()

    def counter_exists(self, dealer_id: UUID, document_type: DocumentType) -> bool:
        return (dealer_id, document_type) in self._counters

    def initialize(self, dealer_id: UUID, document_type: DocumentType, start_number: int, prefix: str) -> None:
        with self._lock:
            self._counters.setdefault((dealer_id, document_type), (max(start_number, 1), prefix))

    def increment(self, dealer_id: UUID, document_type: DocumentType, default_prefix: str) -> CounterValue:
        key = (dealer_id, document_type)
        with self._lock:
            next_number, prefix = self._counters.get(key, (1, default_prefix))
            self._counters[key] = (next_number + 1, prefix)
        return CounterValue(number=next_number, prefix=prefix)


class InMemorySignedUrlIssuer:
    def __init__(self, base_url: str = "https://storage.invalid/signed") -> None:
        self._base_url = base_url
        self.calls: List[Tuple[str, int]] = []

    def signed_url(self, key: str, expires_in_seconds: int) -> str:
        self.calls.append((key, expires_in_seconds))
        return f"{self._base_url}/{key}?expires_in={expires_in_seconds}"


def in_memory_repositories() -> SalesRepositories:
    return SalesRepositories(
        deals=InMemoryDealRepository(),
        vehicles=InMemoryVehicleRepository(),
        contacts=InMemoryContactRepository(),
        dealers=InMemoryDealerRepository(),
        documents=InMemorySalesDocumentRepository(),
        counters=InMemoryDocumentCounterStore(),
        signed_urls=InMemorySignedUrlIssuer(),
    )


__all__ = [
    "InMemoryContactRepository",
    "InMemoryDealRepository",
    "InMemoryDealerRepository",
    "InMemoryDocumentCounterStore",
    "InMemorySalesDocumentRepository",
    "InMemorySignedUrlIssuer",
    "InMemoryVehicleRepository",
    "in_memory_repositories",
]
