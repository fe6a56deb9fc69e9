"""
Document number allocation.

Numbers are unique and strictly increasing per (dealer, document type) and
are formatted as prefix + 5-digit zero-padded integer, e.g. "INV00042".

The increment itself is a single atomic operation of the counter store; this
module never reads a counter and writes it back. It adds two behaviors on
top:
- First use: a missing counter is seeded to start after the highest document
  number already issued for that dealer and type.
- Collision guard: a number that already belongs to any document (void ones
  included) is skipped, up to `max_retries` times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from domain.sales_document import DocumentType, parse_document_number
from repositories.errors import DocumentNumberExhaustedError
from repositories.protocols import DocumentCounterStore, SalesDocumentRepository

logger = logging.getLogger(__name__)

NUMBER_WIDTH = 5
DEFAULT_MAX_RETRIES = 5


@dataclass(frozen=True, slots=True)
class AllocatedNumber:
    number: int
    prefix: str
    document_number: str


def format_document_number(prefix: str, number: int) -> str:
    return f"{prefix}{str(number).zfill(NUMBER_WIDTH)}"


class DocumentNumberAllocator:
    def __init__(
        self,
        counters: DocumentCounterStore,
        documents: SalesDocumentRepository,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._counters = counters
        self._documents = documents
        self._max_retries = max_retries

    def _ensure_counter(self, dealer_id: UUID, document_type: DocumentType, default_prefix: str) -> None:
        if self._counters.counter_exists(dealer_id, document_type):
            return
        highest = parse_document_number(self._documents.highest_document_number(dealer_id, document_type))
        start = (highest or 0) + 1
        # Insert-if-absent: a concurrent creator's row wins and is never reset
        self._counters.initialize(dealer_id, document_type, start, default_prefix)
        logger.info(
            "Initialized %s counter for dealer %s at %d", document_type.value, dealer_id, start
        )

    def allocate(self, dealer_id: UUID, document_type: DocumentType, default_prefix: str) -> AllocatedNumber:
        """
        Reserve the next number for (dealer, type).

        Raises:
            DocumentNumberExhaustedError: every attempt collided with an existing document.
            StorageUnavailableError: the counter store could not be reached.
        """

        self._ensure_counter(dealer_id, document_type, default_prefix)

        for attempt in range(1, self._max_retries + 1):
            value = self._counters.increment(dealer_id, document_type, default_prefix)
            document_number = format_document_number(value.prefix, value.number)

            existing = self._documents.find_by_number(dealer_id, document_type, document_number)
            if existing is None:
                return AllocatedNumber(number=value.number, prefix=value.prefix, document_number=document_number)

            logger.warning(
                "Document number %s already in use for dealer %s (attempt %d/%d)",
                document_number,
                dealer_id,
                attempt,
                self._max_retries,
            )

        raise DocumentNumberExhaustedError(
            f"Could not allocate a unique {document_type.value} number after {self._max_retries} attempts"
        )


__all__ = [
    "AllocatedNumber",
    "DocumentNumberAllocator",
    "format_document_number",
    "parse_document_number",
]
