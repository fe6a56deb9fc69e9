"""
Repository interfaces consumed by the settlement services.

Services depend only on these protocols and receive plain domain value
objects back. Supabase-backed implementations live next to this module;
`repositories.memory` provides in-process implementations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol
from uuid import UUID

from domain.contact import Contact
from domain.deal import Deal
from domain.dealer import Dealer
from domain.sales_document import DocumentType, SalesDocument
from domain.vehicle import ServiceRecord, Vehicle, VehicleSalesStatus


@dataclass(frozen=True, slots=True)
class CounterValue:
    """Result of one atomic counter increment: the number reserved for the caller."""

    number: int
    prefix: str


class DealRepository(Protocol):
    def get_deal(self, deal_id: UUID) -> Optional[Deal]: ...

    def save_deal(self, deal: Deal) -> None: ...


class VehicleRepository(Protocol):
    def get_vehicle(self, vehicle_id: UUID) -> Optional[Vehicle]: ...

    def list_service_records(self, vehicle_id: UUID) -> List[ServiceRecord]: ...

    def save_sales_status(self, vehicle_id: UUID, sales_status: VehicleSalesStatus) -> None: ...


class ContactRepository(Protocol):
    def get_contact(self, contact_id: UUID) -> Optional[Contact]: ...


class DealerRepository(Protocol):
    def get_dealer(self, dealer_id: UUID) -> Optional[Dealer]: ...


class SalesDocumentRepository(Protocol):
    """
    `insert_document` raises DuplicateDocumentError when the number is taken
    for (dealer, type), or when the type allows one active document per deal
    and a non-void one already exists. `highest_document_number` compares
    the numeric part of each number, never the string.
    """

    def find_active_document(self, deal_id: UUID, document_type: DocumentType) -> Optional[SalesDocument]: ...

    def find_by_number(
        self, dealer_id: UUID, document_type: DocumentType, document_number: str
    ) -> Optional[SalesDocument]: ...

    def find_by_share_token_hash(self, token_hash: str) -> Optional[SalesDocument]: ...

    def highest_document_number(self, dealer_id: UUID, document_type: DocumentType) -> Optional[str]: ...

    def insert_document(self, document: SalesDocument) -> None: ...

    def save_void(self, document: SalesDocument) -> None: ...

    def save_signature(self, document: SalesDocument) -> None: ...

    def save_paid(self, document: SalesDocument) -> None: ...


class DocumentCounterStore(Protocol):
    """
    Durable per-(dealer, document type) counters.

    `increment` MUST be a single atomic storage operation that creates the
    counter on first use and returns the reserved number. Implementations must
    never read the counter and write it back from application code.
    """

    def counter_exists(self, dealer_id: UUID, document_type: DocumentType) -> bool: ...

    def initialize(self, dealer_id: UUID, document_type: DocumentType, start_number: int, prefix: str) -> None: ...

    def increment(self, dealer_id: UUID, document_type: DocumentType, default_prefix: str) -> CounterValue: ...


class SignedUrlIssuer(Protocol):
    def signed_url(self, key: str, expires_in_seconds: int) -> str: ...


@dataclass(frozen=True, slots=True)
class SalesRepositories:
    """Bundle of collaborators handed to the settlement services."""

    deals: DealRepository
    vehicles: VehicleRepository
    contacts: ContactRepository
    dealers: DealerRepository
    documents: SalesDocumentRepository
    counters: DocumentCounterStore
    signed_urls: Optional[SignedUrlIssuer] = None


__all__ = [
    "CounterValue",
    "ContactRepository",
    "DealRepository",
    "DealerRepository",
    "DocumentCounterStore",
    "SalesDocumentRepository",
    "SalesRepositories",
    "SignedUrlIssuer",
    "VehicleRepository",
]
