"""
Domain: Error taxonomy for deal settlement.

Every error carries a machine-readable code plus, where it applies, the
offending field and a remediation hint so callers can show the salesperson
what to fix. Raising any of these must leave deal and document state untouched.
"""

from __future__ import annotations

from typing import Any, Optional


class DealError(Exception):
    """Base class for all deal settlement errors surfaced to callers."""

    code: str = "DEAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.message = message
        self.field = field
        self.hint = hint
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "error": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class InvoicePreconditionError(DealError):
    """Raised when a guard required before invoicing does not hold."""

    code = "PRECONDITION_FAILED"


class DealConflictError(DealError):
    """Raised when the deal is finalized or cancelled and cannot be changed."""

    code = "CONFLICT"


class IllegalTransitionError(DealConflictError):
    """Raised when a status change is not a legal edge of the deal lifecycle."""

    code = "ILLEGAL_TRANSITION"


class InvalidWarrantyError(DealError):
    """Raised for a warranty that is both included and trade/no-warranty."""

    code = "INVALID_WARRANTY"


class InvalidRequestError(DealError):
    """Raised for malformed operation inputs (e.g. non-positive deposit)."""

    code = "INVALID_REQUEST"


class DealNotFoundError(DealError):
    code = "NOT_FOUND"


class DocumentNotFoundError(DealError):
    """
    Raised for unknown, void or expired share tokens.

    Same message for every cause.
    """

    code = "NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("Document not found or has expired")


__all__ = [
    "DealError",
    "InvoicePreconditionError",
    "DealConflictError",
    "IllegalTransitionError",
    "InvalidWarrantyError",
    "InvalidRequestError",
    "DealNotFoundError",
    "DocumentNotFoundError",
]
