"""
Tests for the Supabase-backed repositories, against a fake client.

Covers contract rules:
- Storage failures surface as StorageUnavailableError without internals.
- Unique violations surface as DuplicateDocumentError.
- Counter increments go through the allocate function in one call.
- Document rows keep the snapshot and signature as stored.
- The highest document number is picked by numeric value, not text order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, List, Optional
from uuid import UUID

import httpx
import pytest
from postgrest.exceptions import APIError

from domain.deal import SignaturePair
from domain.sales_document import DocumentType, SalesDocument
from domain.vehicle import VehicleSalesStatus
from repositories.client import execute
from repositories.document_counter_repository import SupabaseDocumentCounterStore
from repositories.errors import DuplicateDocumentError, StorageUnavailableError
from repositories.sales_document_repository import SupabaseSalesDocumentRepository
from repositories.vehicle_repository import SupabaseVehicleRepository

DEALER_ID = UUID("00000000-0000-0000-0000-000000000001")
AT = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeQuery:
    """Chainable stand-in for a postgrest request builder."""

    def __init__(self, data: Any = None, error: Optional[Exception] = None) -> None:
        self.data = data
        self.error = error
        self.calls: List[tuple] = []

    def __getattr__(self, name: str):
        def method(*args: Any, **kwargs: Any) -> "FakeQuery":
            self.calls.append((name, args, kwargs))
            return self

        return method

    def execute(self) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class FakeClient:
    def __init__(self, query: FakeQuery) -> None:
        self.query = query
        self.tables: List[str] = []
        self.rpcs: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        self.tables.append(name)
        return self.query

    def rpc(self, name: str, params: dict) -> FakeQuery:
        self.rpcs.append((name, params))
        return self.query


def test_execute_maps_unique_violation() -> None:
    query = FakeQuery(error=APIError({"message": "duplicate key", "code": "23505"}))

    with pytest.raises(DuplicateDocumentError):
        execute(query, "insert sales document")


def test_execute_maps_api_and_transport_errors() -> None:
    api_error = FakeQuery(error=APIError({"message": "relation missing", "code": "42P01"}))
    transport_error = FakeQuery(error=httpx.ConnectError("connection refused"))

    with pytest.raises(StorageUnavailableError) as exc_info:
        execute(api_error, "fetch deal")
    assert str(exc_info.value) == "Failed to fetch deal"

    with pytest.raises(StorageUnavailableError) as exc_info:
        execute(transport_error, "fetch deal")
    assert "connection refused" not in str(exc_info.value)


def test_counter_increment_uses_allocate_function() -> None:
    client = FakeClient(FakeQuery(data=[{"allocated_number": 7, "prefix": "INV"}]))
    store = SupabaseDocumentCounterStore(client)

    value = store.increment(DEALER_ID, DocumentType.INVOICE, "INV")

    assert value.number == 7
    assert value.prefix == "INV"
    assert client.rpcs == [
        (
            "allocate_document_number",
            {"p_dealer_id": str(DEALER_ID), "p_type": "INVOICE", "p_default_prefix": "INV"},
        )
    ]


def test_counter_increment_without_row_is_unavailable() -> None:
    store = SupabaseDocumentCounterStore(FakeClient(FakeQuery(data=[])))

    with pytest.raises(StorageUnavailableError):
        store.increment(DEALER_ID, DocumentType.DEPOSIT_RECEIPT, "DEP")


def test_counter_initialize_never_overwrites() -> None:
    query = FakeQuery(data=[])
    SupabaseDocumentCounterStore(FakeClient(query)).initialize(DEALER_ID, DocumentType.INVOICE, 13, "INV")

    [(name, args, kwargs)] = query.calls
    assert name == "upsert"
    assert args[0]["next_number"] == 13
    assert kwargs == {"on_conflict": "dealer_id,type", "ignore_duplicates": True}


def test_document_insert_and_read_back() -> None:
    document = SalesDocument(
        document_id=UUID(int=1),
        dealer_id=DEALER_ID,
        deal_id=UUID(int=3),
        type=DocumentType.DEPOSIT_RECEIPT,
        document_number="DEP00001",
        issued_at=AT,
        snapshot={"grandTotal": "12170.00", "payments": [{"amount": "1000.00"}]},
        share_token_hash="b" * 64,
        share_expires_at=AT + timedelta(days=30),
        signature=SignaturePair(customer_signature_key="sig/buyer.png", customer_signed_at=AT),
    )
    insert_query = FakeQuery(data=[])
    SupabaseSalesDocumentRepository(FakeClient(insert_query)).insert_document(document)

    [(name, args, _)] = insert_query.calls
    assert name == "insert"
    row = args[0]
    assert row["snapshot_data"] == {"grandTotal": "12170.00", "payments": [{"amount": "1000.00"}]}
    assert row["issued_at_utc"] == "2025-03-01T12:00:00+00:00"

    read_back = SupabaseSalesDocumentRepository(FakeClient(FakeQuery(data=[row]))).find_by_number(
        DEALER_ID, DocumentType.DEPOSIT_RECEIPT, "DEP00001"
    )

    assert read_back == document


def test_highest_document_number_compares_numeric_parts() -> None:
    query = FakeQuery(
        data=[
            {"document_number": "INV99999"},
            {"document_number": "INV100000"},
            {"document_number": "OLD-2"},
        ]
    )

    highest = SupabaseSalesDocumentRepository(FakeClient(query)).highest_document_number(
        DEALER_ID, DocumentType.INVOICE
    )

    assert highest == "INV100000"
    assert "order" not in [name for name, _, _ in query.calls]


def test_highest_document_number_without_documents() -> None:
    repository = SupabaseSalesDocumentRepository(FakeClient(FakeQuery(data=[])))

    assert repository.highest_document_number(DEALER_ID, DocumentType.INVOICE) is None


def test_save_paid_writes_only_paid_column() -> None:
    document = SalesDocument(
        document_id=UUID(int=1),
        dealer_id=DEALER_ID,
        deal_id=UUID(int=3),
        type=DocumentType.INVOICE,
        document_number="INV00001",
        issued_at=AT,
        snapshot={"grandTotal": "100.00"},
        share_token_hash="c" * 64,
        share_expires_at=AT + timedelta(days=90),
    )
    query = FakeQuery(data=[])

    SupabaseSalesDocumentRepository(FakeClient(query)).save_paid(document.mark_paid(AT + timedelta(days=1)))

    name, args, _ = query.calls[0]
    assert name == "update"
    assert args[0] == {"paid_at_utc": "2025-03-02T12:00:00+00:00"}


def test_vehicle_completion_marks_stock_sold() -> None:
    query = FakeQuery(data=[])
    client = FakeClient(query)

    SupabaseVehicleRepository(client).save_sales_status(UUID(int=4), VehicleSalesStatus.COMPLETED)

    name, args, _ = query.calls[0]
    assert client.tables == ["vehicles"]
    assert name == "update"
    assert args[0] == {"sales_status": "COMPLETED", "status": "SOLD"}
