"""
Document counter repository (persistence).

Counters are incremented exclusively through the `allocate_document_number`
PostgreSQL function (see sql/document_counters.sql), which performs an
`INSERT ... ON CONFLICT DO UPDATE SET next_number = next_number + 1 RETURNING`
in one statement. Row-level locking inside Postgres serializes concurrent
callers for the same (dealer, type); two callers can never receive the same
number.

Never replace `increment` with a select followed by an update from Python:
that read-modify-write is racy.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.sales_document import DocumentType
from repositories.client import execute, get_supabase, rows_of
from repositories.errors import StorageUnavailableError
from repositories.protocols import CounterValue

_COUNTERS_TABLE: str = "document_counters"
_ALLOCATE_FUNCTION: str = "allocate_document_number"


class SupabaseDocumentCounterStore:
    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def counter_exists(self, dealer_id: UUID, document_type: DocumentType) -> bool:
        response = execute(
            self._client.table(_COUNTERS_TABLE)
            .select("dealer_id")
            .eq("dealer_id", str(dealer_id))
            .eq("type", document_type.value)
            .limit(1),
            "check document counter",
        )
        return bool(rows_of(response))

    def initialize(self, dealer_id: UUID, document_type: DocumentType, start_number: int, prefix: str) -> None:
        """Create the counter if absent. An existing counter is never overwritten."""

        payload: dict[str, Any] = {
            "dealer_id": str(dealer_id),
            "type": document_type.value,
            "next_number": max(start_number, 1),
            "prefix": prefix,
        }
        execute(
            self._client.table(_COUNTERS_TABLE).upsert(
                payload, on_conflict="dealer_id,type", ignore_duplicates=True
            ),
            "initialize document counter",
        )

    def increment(self, dealer_id: UUID, document_type: DocumentType, default_prefix: str) -> CounterValue:
        response = execute(
            self._client.rpc(
                _ALLOCATE_FUNCTION,
                {
                    "p_dealer_id": str(dealer_id),
                    "p_type": document_type.value,
                    "p_default_prefix": default_prefix,
                },
            ),
            "allocate document number",
        )
        rows = rows_of(response)
        if not rows or rows[0].get("allocated_number") is None:
            raise StorageUnavailableError("Failed to allocate document number")
        row = rows[0]
        return CounterValue(number=int(row["allocated_number"]), prefix=str(row.get("prefix") or ""))


__all__ = ["SupabaseDocumentCounterStore"]
