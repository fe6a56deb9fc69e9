"""
Deal Settlement API Endpoints.

Endpoints for taking deposits, issuing and voiding invoices, recording
balance payments, and moving a deal through delivery, completion or
cancellation.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_deposit_service,
    get_invoice_service,
    get_lifecycle_service,
    get_payment_service,
)
from api.errors import to_http_exception
from api.models import (
    BalancePaymentResponse,
    CancelDealRequest,
    DealStatusResponse,
    DepositResponse,
    InvoiceResponse,
    IssueInvoiceRequest as APIIssueInvoiceRequest,
    RecordBalancePaymentRequest as APIRecordBalancePaymentRequest,
    SignDepositRequest as APISignDepositRequest,
    SignDepositResponse,
    TakeDepositRequest as APITakeDepositRequest,
    VoidInvoiceRequest,
    VoidInvoiceResponse,
)
from services.deal_lifecycle_service import DealLifecycleService
from services.deposit_service import DepositService, SignDepositRequest, TakeDepositRequest
from services.invoice_service import InvoiceService, IssueInvoiceRequest
from services.payment_service import PaymentService, RecordBalancePaymentRequest

router = APIRouter()


@router.post(
    "/deals/{deal_id}/invoice",
    response_model=InvoiceResponse,
    summary="Issue Invoice",
    description="Issue the invoice for a deal, or return the active one if it already exists.",
)
def issue_invoice(
    deal_id: UUID,
    request: Optional[APIIssueInvoiceRequest] = None,
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Issue a numbered, immutable invoice for a deal.

    **Process:**
    1. Returns the existing invoice if one is active (no new number, `already_issued: true`)
    2. Checks the deal can be invoiced (buyer, price, vehicle acquisition, deposit signatures)
    3. Applies finance inputs (cancel, confirm company, record advance)
    4. Computes totals, allocates the next invoice number and mints a share link
    5. Stores the snapshot and moves the deal to INVOICED

    **Errors:**
    - 400 `PRECONDITION_FAILED` with `field` and `hint` naming what to fix
    - 409 `CONFLICT` if the deal is cancelled or completed
    - 503 if storage is unavailable (safe to retry)
    """
    body = request or APIIssueInvoiceRequest()
    try:
        result = service.issue_invoice(
            deal_id,
            IssueInvoiceRequest(
                payment_method=body.payment_method,
                finance_company_id=body.finance_company_id,
                finance_company_name=body.finance_company_name,
                finance_advance_amount=body.finance_advance_amount,
                cancel_finance=body.cancel_finance,
            ),
        )
    except Exception as e:
        raise to_http_exception(e)

    return InvoiceResponse(
        success=result.success,
        deal_id=result.deal_id,
        deal_status=result.deal_status,
        document_id=result.document_id,
        document_number=result.document_number,
        share_token=result.share_token,
        share_url=result.share_url,
        grand_total=result.grand_total,
        balance_due=result.balance_due,
        already_issued=result.already_issued,
    )


@router.post(
    "/deals/{deal_id}/void-invoice",
    response_model=VoidInvoiceResponse,
    summary="Void Invoice",
    description="Void the active invoice and revert the deal to DEPOSIT_TAKEN so a corrected invoice can be issued.",
)
def void_invoice(
    deal_id: UUID,
    request: Optional[VoidInvoiceRequest] = None,
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        result = service.void_invoice(deal_id, request.reason if request else None)
    except Exception as e:
        raise to_http_exception(e)

    return VoidInvoiceResponse(
        success=result.success,
        deal_id=result.deal_id,
        deal_status=result.deal_status,
        voided_document_id=result.voided_document_id,
        voided_document_number=result.voided_document_number,
    )


@router.post(
    "/deals/{deal_id}/deposit",
    response_model=DepositResponse,
    summary="Take Deposit",
    description="Record a deposit payment and issue a numbered deposit receipt.",
)
def take_deposit(
    deal_id: UUID,
    request: APITakeDepositRequest,
    service: DepositService = Depends(get_deposit_service),
):
    try:
        result = service.take_deposit(
            deal_id,
            TakeDepositRequest(
                amount=request.amount,
                method=request.method,
                reference=request.reference,
                notes=request.notes,
                customer_signature_key=request.customer_signature_key,
                dealer_signature_key=request.dealer_signature_key,
            ),
        )
    except Exception as e:
        raise to_http_exception(e)

    return DepositResponse(
        success=result.success,
        deal_id=result.deal_id,
        deal_status=result.deal_status,
        document_id=result.document_id,
        document_number=result.document_number,
        share_token=result.share_token,
        share_url=result.share_url,
        deposit_amount=result.deposit_amount,
        balance_due=result.balance_due,
    )


@router.post(
    "/deals/{deal_id}/sign-deposit",
    response_model=SignDepositResponse,
    summary="Sign Deposit Receipt",
)
def sign_deposit(
    deal_id: UUID,
    request: APISignDepositRequest,
    service: DepositService = Depends(get_deposit_service),
):
    try:
        receipt = service.sign_deposit_receipt(
            deal_id,
            SignDepositRequest(
                dealer_signature_key=request.dealer_signature_key,
                customer_signature_key=request.customer_signature_key,
            ),
        )
    except Exception as e:
        raise to_http_exception(e)

    signature = receipt.signature
    return SignDepositResponse(
        success=True,
        document_id=receipt.document_id,
        document_number=receipt.document_number,
        has_customer_signature=bool(signature and signature.has_customer),
        has_dealer_signature=bool(signature and signature.has_dealer),
    )


@router.post(
    "/deals/{deal_id}/balance-payment",
    response_model=BalancePaymentResponse,
    summary="Record Balance Payment",
    description="Record a payment against the invoice balance and issue a numbered payment receipt.",
)
def record_balance_payment(
    deal_id: UUID,
    request: APIRecordBalancePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Record a BALANCE payment on an invoiced deal.

    The active invoice is flagged paid once the balance reaches zero.

    **Errors:**
    - 400 `INVALID_REQUEST` if the amount exceeds the balance due
    - 409 `CONFLICT` if the deal is cancelled or not yet invoiced
    """
    try:
        result = service.record_balance_payment(
            deal_id,
            RecordBalancePaymentRequest(
                amount=request.amount,
                method=request.method,
                reference=request.reference,
                notes=request.notes,
                generate_receipt=request.generate_receipt,
            ),
        )
    except Exception as e:
        raise to_http_exception(e)

    return BalancePaymentResponse(
        success=result.success,
        deal_id=result.deal_id,
        deal_status=result.deal_status,
        payment_id=result.payment_id,
        amount=result.amount,
        grand_total=result.grand_total,
        total_paid=result.total_paid,
        balance_before=result.balance_before,
        balance_after=result.balance_after,
        is_full_payment=result.is_full_payment,
        invoice_paid=result.invoice_paid,
        document_id=result.document_id,
        document_number=result.document_number,
        share_token=result.share_token,
        share_url=result.share_url,
    )


@router.post("/deals/{deal_id}/deliver", response_model=DealStatusResponse, summary="Mark Delivered")
def deliver_deal(deal_id: UUID, service: DealLifecycleService = Depends(get_lifecycle_service)):
    try:
        result = service.deliver(deal_id)
    except Exception as e:
        raise to_http_exception(e)
    return DealStatusResponse(success=result.success, deal_id=result.deal_id, deal_status=result.deal_status)


@router.post("/deals/{deal_id}/complete", response_model=DealStatusResponse, summary="Mark Completed")
def complete_deal(deal_id: UUID, service: DealLifecycleService = Depends(get_lifecycle_service)):
    try:
        result = service.complete(deal_id)
    except Exception as e:
        raise to_http_exception(e)
    return DealStatusResponse(success=result.success, deal_id=result.deal_id, deal_status=result.deal_status)


@router.post("/deals/{deal_id}/cancel", response_model=DealStatusResponse, summary="Cancel Deal")
def cancel_deal(
    deal_id: UUID,
    request: Optional[CancelDealRequest] = None,
    service: DealLifecycleService = Depends(get_lifecycle_service),
):
    try:
        result = service.cancel(deal_id, request.reason if request else None)
    except Exception as e:
        raise to_http_exception(e)
    return DealStatusResponse(success=result.success, deal_id=result.deal_id, deal_status=result.deal_status)

