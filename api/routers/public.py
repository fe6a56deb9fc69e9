"""
Public Document Endpoints.

Unauthenticated read access to issued documents through share tokens.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_invoice_service
from api.errors import to_http_exception
from api.models import PublicDocumentResponse
from domain.sales_document import thaw_snapshot
from services.invoice_service import InvoiceService

router = APIRouter()


@router.get(
    "/public/documents/{token}",
    response_model=PublicDocumentResponse,
    summary="View Shared Document",
    description="Return the frozen snapshot of an issued invoice or deposit receipt.",
)
def get_shared_document(token: str, service: InvoiceService = Depends(get_invoice_service)):
    """
    Look up a document by its public share token.

    Unknown, expired and voided tokens all return the same 404 body.
    """
    try:
        document = service.get_document_by_share_token(token)
    except Exception as e:
        raise to_http_exception(e)

    return PublicDocumentResponse(
        document_id=document.document_id,
        type=document.type,
        document_number=document.document_number,
        issued_at=document.issued_at,
        snapshot=thaw_snapshot(document.snapshot),
    )
