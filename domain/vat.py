"""
Domain: VAT scheme and per-component VAT treatment.

Both are closed sets. Computation code branches on every member explicitly and
raises for anything else, so adding a member forces every branch to be revisited.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

DEFAULT_VAT_RATE = Decimal("0.20")


class VatScheme(str, Enum):
    """How a sale is taxed as a whole."""

    MARGIN = "MARGIN"
    VAT_QUALIFYING = "VAT_QUALIFYING"


class VatTreatment(str, Enum):
    """How a single priced component (add-on, warranty) is taxed."""

    STANDARD = "STANDARD"
    NO_VAT = "NO_VAT"
    ZERO = "ZERO"
    EXEMPT = "EXEMPT"

    @property
    def is_standard(self) -> bool:
        return self is VatTreatment.STANDARD
