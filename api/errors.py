"""
Mapping of service errors to HTTP responses.

`detail` is always `{code, error, field?, hint?}`. Storage failures never
expose storage internals.
"""

import logging

from fastapi import HTTPException

from domain.errors import (
    DealConflictError,
    DealError,
    DealNotFoundError,
    DocumentNotFoundError,
)
from repositories.errors import DuplicateDocumentError, StorageUnavailableError

logger = logging.getLogger(__name__)


def to_http_exception(error: Exception) -> HTTPException:
    if isinstance(error, (DealNotFoundError, DocumentNotFoundError)):
        return HTTPException(status_code=404, detail=error.to_dict())
    if isinstance(error, DealConflictError):
        return HTTPException(status_code=409, detail=error.to_dict())
    if isinstance(error, DealError):
        return HTTPException(status_code=400, detail=error.to_dict())
    if isinstance(error, DuplicateDocumentError):
        return HTTPException(
            status_code=409,
            detail={"code": "CONFLICT", "error": "Document already exists, please retry"},
        )
    if isinstance(error, StorageUnavailableError):
        return HTTPException(
            status_code=503,
            detail={"code": "STORAGE_UNAVAILABLE", "error": "Storage temporarily unavailable, please retry"},
        )
    logger.exception("Unhandled error", exc_info=error)
    return HTTPException(status_code=500, detail={"code": "INTERNAL_ERROR", "error": "Internal server error"})
