"""
Sales document repository (persistence).

Documents are insert-only apart from voiding, signatures and the paid flag.
No operation rewrites `snapshot_data` of an existing row.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.sales_document import (
    DocumentStatus,
    DocumentType,
    SalesDocument,
    highest_numbered,
    thaw_snapshot,
)
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import execute, get_supabase, rows_of
from repositories.deal_repository import row_to_signature, signature_to_row

_DOCUMENTS_TABLE: str = "sales_documents"


def _row_to_document(row: Mapping[str, Any]) -> SalesDocument:
    """Convert a Supabase row into a SalesDocument."""

    voided_at = row.get("voided_at_utc")
    paid_at = row.get("paid_at_utc")
    return SalesDocument(
        document_id=UUID(str(row["document_id"])),
        dealer_id=UUID(str(row["dealer_id"])),
        deal_id=UUID(str(row["deal_id"])),
        type=DocumentType(row["type"]),
        document_number=str(row["document_number"]),
        issued_at=parse_utc_datetime(row["issued_at_utc"]),
        snapshot=row.get("snapshot_data") or {},
        share_token_hash=str(row["share_token_hash"]),
        share_expires_at=parse_utc_datetime(row["share_expires_at_utc"]),
        status=DocumentStatus(row.get("status") or DocumentStatus.ISSUED.value),
        signature=row_to_signature(row.get("signature")),
        voided_at=parse_utc_datetime(voided_at) if voided_at else None,
        void_reason=row.get("void_reason"),
        paid_at=parse_utc_datetime(paid_at) if paid_at else None,
    )


def _document_to_row(document: SalesDocument) -> dict[str, Any]:
    return {
        "document_id": str(document.document_id),
        "dealer_id": str(document.dealer_id),
        "deal_id": str(document.deal_id),
        "type": document.type.value,
        "document_number": document.document_number,
        "status": document.status.value,
        "issued_at_utc": to_iso_utc(document.issued_at, name="issued_at"),
        "snapshot_data": thaw_snapshot(document.snapshot),
        "share_token_hash": document.share_token_hash,
        "share_expires_at_utc": to_iso_utc(document.share_expires_at, name="share_expires_at"),
        "signature": signature_to_row(document.signature),
        "paid_at_utc": to_iso_utc(document.paid_at, name="paid_at") if document.paid_at else None,
    }


class SupabaseSalesDocumentRepository:
    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def _first(self, query: Any, action: str) -> Optional[SalesDocument]:
        rows = rows_of(execute(query.limit(1), action))
        if not rows:
            return None
        return _row_to_document(rows[0])

    def find_active_document(self, deal_id: UUID, document_type: DocumentType) -> Optional[SalesDocument]:
        query = (
            self._client.table(_DOCUMENTS_TABLE)
            .select("*")
            .eq("deal_id", str(deal_id))
            .eq("type", document_type.value)
            .neq("status", DocumentStatus.VOID.value)
            .order("issued_at_utc", desc=True)
        )
        return self._first(query, "fetch active document")

    def find_by_number(
        self, dealer_id: UUID, document_type: DocumentType, document_number: str
    ) -> Optional[SalesDocument]:
        query = (
            self._client.table(_DOCUMENTS_TABLE)
            .select("*")
            .eq("dealer_id", str(dealer_id))
            .eq("type", document_type.value)
            .eq("document_number", document_number)
        )
        return self._first(query, "fetch document by number")

    def find_by_share_token_hash(self, token_hash: str) -> Optional[SalesDocument]:
        query = self._client.table(_DOCUMENTS_TABLE).select("*").eq("share_token_hash", token_hash)
        return self._first(query, "fetch shared document")

    def highest_document_number(self, dealer_id: UUID, document_type: DocumentType) -> Optional[str]:
        # Text order ranks "INV99999" above "INV100000"; compare numeric parts instead.
        response = execute(
            self._client.table(_DOCUMENTS_TABLE)
            .select("document_number")
            .eq("dealer_id", str(dealer_id))
            .eq("type", document_type.value),
            "fetch document numbers",
        )
        return highest_numbered(str(row["document_number"]) for row in rows_of(response))

    def insert_document(self, document: SalesDocument) -> None:
        execute(
            self._client.table(_DOCUMENTS_TABLE).insert(_document_to_row(document)),
            "insert sales document",
        )

    def save_void(self, document: SalesDocument) -> None:
        """Persist the void status of a document. Only status columns are written."""

        if document.voided_at is None:
            raise ValueError("save_void requires a voided document")
        payload: dict[str, Any] = {
            "status": document.status.value,
            "voided_at_utc": to_iso_utc(document.voided_at, name="voided_at"),
            "void_reason": document.void_reason,
        }
        execute(
            self._client.table(_DOCUMENTS_TABLE).update(payload).eq("document_id", str(document.document_id)),
            "void sales document",
        )

    def save_signature(self, document: SalesDocument) -> None:
        """Persist captured signatures. `snapshot_data` is not written."""

        execute(
            self._client.table(_DOCUMENTS_TABLE)
            .update({"signature": signature_to_row(document.signature)})
            .eq("document_id", str(document.document_id)),
            "save document signature",
        )

    def save_paid(self, document: SalesDocument) -> None:
        if document.paid_at is None:
            raise ValueError("save_paid requires a paid document")
        execute(
            self._client.table(_DOCUMENTS_TABLE)
            .update({"paid_at_utc": to_iso_utc(document.paid_at, name="paid_at")})
            .eq("document_id", str(document.document_id)),
            "mark document paid",
        )


__all__ = ["SupabaseSalesDocumentRepository"]
