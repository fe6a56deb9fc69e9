"""
Domain: Sales documents (deposit receipts, invoices and payment receipts).

A SalesDocument is created once with a fully denormalized snapshot. The
snapshot is deep-frozen on construction: nested dicts become read-only
mappings and lists become tuples, so no code path can patch an issued
document in place. Corrections are made by voiding and issuing a new one.

Only `status`/`voided_at`/`void_reason` (through `void()`), the captured
`signature` (through `with_signature()`) and an invoice's `paid_at` (through
`mark_paid()`) change after issuance; each returns a new instance.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from .deal import SignaturePair
from .time import require_utc_timestamp


class DocumentType(str, Enum):
    DEPOSIT_RECEIPT = "DEPOSIT_RECEIPT"
    INVOICE = "INVOICE"
    PAYMENT_RECEIPT = "PAYMENT_RECEIPT"

    @property
    def single_active(self) -> bool:
        """At most one non-void document of this type may exist per deal."""

        return self is DocumentType.INVOICE


class DocumentStatus(str, Enum):
    ISSUED = "ISSUED"
    VOID = "VOID"


_TRAILING_DIGITS = re.compile(r"(\d+)$")


def parse_document_number(document_number: Optional[str]) -> Optional[int]:
    """Numeric part of a formatted document number, or None when there is none."""

    if not document_number:
        return None
    match = _TRAILING_DIGITS.search(document_number)
    return int(match.group(1)) if match else None


def highest_numbered(document_numbers: Iterable[str]) -> Optional[str]:
    """
    The document number with the largest numeric part.

    Compares parsed values, not strings: "INV100000" outranks "INV99999" and
    prefixes play no part. Numbers without digits rank lowest.
    """

    best: Optional[str] = None
    best_value = -1
    for document_number in document_numbers:
        value = parse_document_number(document_number)
        value = -1 if value is None else value
        if best is None or value > best_value:
            best, best_value = document_number, value
    return best


def freeze_snapshot(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""

    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze_snapshot(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze_snapshot(v) for v in value)
    return value


def thaw_snapshot(value: Any) -> Any:
    """Inverse of `freeze_snapshot`, producing plain JSON-ready dicts and lists."""

    if isinstance(value, Mapping):
        return {k: thaw_snapshot(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw_snapshot(v) for v in value]
    return value


@dataclass(frozen=True, slots=True)
class SalesDocument:
    document_id: UUID
    dealer_id: UUID
    deal_id: UUID
    type: DocumentType
    document_number: str
    issued_at: datetime
    snapshot: Mapping[str, Any]
    share_token_hash: str
    share_expires_at: datetime
    status: DocumentStatus = DocumentStatus.ISSUED
    signature: Optional[SignaturePair] = None
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("issued_at", self.issued_at)
        require_utc_timestamp("share_expires_at", self.share_expires_at)
        if self.voided_at is not None:
            require_utc_timestamp("voided_at", self.voided_at)
        if self.paid_at is not None:
            require_utc_timestamp("paid_at", self.paid_at)
        object.__setattr__(self, "snapshot", freeze_snapshot(self.snapshot))

    @property
    def is_void(self) -> bool:
        return self.status is DocumentStatus.VOID

    def with_signature(self, signature: SignaturePair) -> "SalesDocument":
        """Signatures are captured after issuance; they sit outside the snapshot."""

        if self.is_void:
            raise ValueError("Cannot sign a void SalesDocument")
        return replace(self, signature=signature)

    def void(self, *, voided_at: datetime, reason: str) -> "SalesDocument":
        require_utc_timestamp("voided_at", voided_at)
        if self.is_void:
            raise ValueError("SalesDocument is already void")
        return replace(self, status=DocumentStatus.VOID, voided_at=voided_at, void_reason=reason)

    def mark_paid(self, paid_at: datetime) -> "SalesDocument":
        """Flag a settled invoice. The snapshot still shows the balance at issue."""

        require_utc_timestamp("paid_at", paid_at)
        if self.is_void:
            raise ValueError("Cannot mark a void SalesDocument as paid")
        return replace(self, paid_at=paid_at)
