"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Request and response field names are snake_case; snapshot payloads are passed
through as stored (camelCase keys).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.deal import DealStatus, PaymentMethod
from domain.sales_document import DocumentType


# ============================================================================
# Invoice Models
# ============================================================================

class IssueInvoiceRequest(BaseModel):
    """Optional inputs applied before the invoice is computed."""
    payment_method: Optional[PaymentMethod] = None
    finance_company_id: Optional[UUID] = None
    finance_company_name: Optional[str] = None
    finance_advance_amount: Optional[Decimal] = Field(None, gt=0)
    cancel_finance: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "payment_method": "FINANCE",
                "finance_company_id": "123e4567-e89b-12d3-a456-426614174010",
                "finance_advance_amount": "8000.00",
            }
        }


class InvoiceResponse(BaseModel):
    """Result of issuing (or re-requesting) an invoice."""
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    document_id: UUID
    document_number: str
    share_token: Optional[str] = None  # only returned when the token was minted by this call
    share_url: Optional[str] = None
    grand_total: Decimal
    balance_due: Decimal
    already_issued: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "deal_id": "123e4567-e89b-12d3-a456-426614174000",
                "deal_status": "INVOICED",
                "document_id": "123e4567-e89b-12d3-a456-426614174001",
                "document_number": "INV00042",
                "share_token": "q3Zt...",
                "share_url": "https://dealer.example.com/public/invoice/q3Zt...",
                "grand_total": "12170.00",
                "balance_due": "7670.00",
                "already_issued": False,
            }
        }


class VoidInvoiceRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class VoidInvoiceResponse(BaseModel):
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    voided_document_id: UUID
    voided_document_number: str
    message: str = "Invoice voided successfully"


# ============================================================================
# Deposit Models
# ============================================================================

class TakeDepositRequest(BaseModel):
    """Deposit to record against a deal."""
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    customer_signature_key: Optional[str] = None
    dealer_signature_key: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "amount": "1000.00",
                "method": "CARD",
                "customer_signature_key": "signatures/dealer/deal/buyer.png",
                "dealer_signature_key": "signatures/dealer/deal/dealer.png",
            }
        }


class DepositResponse(BaseModel):
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    document_id: UUID
    document_number: str
    share_token: str
    share_url: str
    deposit_amount: Decimal
    balance_due: Decimal


# ============================================================================
# Balance Payment Models
# ============================================================================

class RecordBalancePaymentRequest(BaseModel):
    """Payment against the invoice balance."""
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None
    generate_receipt: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "amount": "7670.00",
                "method": "BANK_TRANSFER",
                "reference": "FPS 0412",
            }
        }


class BalancePaymentResponse(BaseModel):
    success: bool
    deal_id: UUID
    deal_status: DealStatus
    payment_id: UUID
    amount: Decimal
    grand_total: Decimal
    total_paid: Decimal
    balance_before: Decimal
    balance_after: Decimal
    is_full_payment: bool
    invoice_paid: bool
    document_id: Optional[UUID] = None
    document_number: Optional[str] = None
    share_token: Optional[str] = None
    share_url: Optional[str] = None


class SignDepositRequest(BaseModel):
    dealer_signature_key: str = Field(..., min_length=1)
    customer_signature_key: Optional[str] = None


class SignDepositResponse(BaseModel):
    success: bool
    document_id: UUID
    document_number: str
    has_customer_signature: bool
    has_dealer_signature: bool


# ============================================================================
# Lifecycle Models
# ============================================================================

class CancelDealRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DealStatusResponse(BaseModel):
    success: bool
    deal_id: UUID
    deal_status: DealStatus


# ============================================================================
# Public Document Models
# ============================================================================

class PublicDocumentResponse(BaseModel):
    """Issued document as viewed through a share link."""
    document_id: UUID
    type: DocumentType
    document_number: str
    issued_at: datetime
    snapshot: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error body carried in `detail`."""
    code: str
    error: str
    field: Optional[str] = None
    hint: Optional[str] = None
