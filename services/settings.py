"""
Engine settings loaded from the environment (.env supported).

Environment variables (all optional):
- PUBLIC_BASE_URL: prefix for public share links (default: empty)
- INVOICE_SHARE_DAYS: public access window for invoices (default: 90)
- DEPOSIT_SHARE_DAYS: public access window for deposit receipts (default: 30)
- PAYMENT_RECEIPT_SHARE_DAYS: public access window for payment receipts (default: 90)
- LOGO_URL_TTL_SECONDS: lifetime of the signed logo URL embedded in snapshots
- DOCUMENT_NUMBER_MAX_RETRIES: allocator retries on legacy number collisions
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class EngineSettings:
    public_base_url: str = ""
    invoice_share_days: int = 90
    deposit_share_days: int = 30
    payment_receipt_share_days: int = 90
    logo_url_ttl_seconds: int = 90 * 24 * 60 * 60
    document_number_max_retries: int = 5

    @property
    def invoice_share_window(self) -> timedelta:
        return timedelta(days=self.invoice_share_days)

    @property
    def deposit_share_window(self) -> timedelta:
        return timedelta(days=self.deposit_share_days)

    @property
    def payment_receipt_share_window(self) -> timedelta:
        return timedelta(days=self.payment_receipt_share_days)

    def invoice_share_url(self, token: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/public/invoice/{token}"

    def deposit_receipt_share_url(self, token: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/public/deposit-receipt/{token}"

    def payment_receipt_share_url(self, token: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/public/payment-receipt/{token}"

    @staticmethod
    def from_env() -> "EngineSettings":
        return EngineSettings(
            public_base_url=os.getenv("PUBLIC_BASE_URL", ""),
            invoice_share_days=_int_env("INVOICE_SHARE_DAYS", 90),
            deposit_share_days=_int_env("DEPOSIT_SHARE_DAYS", 30),
            payment_receipt_share_days=_int_env("PAYMENT_RECEIPT_SHARE_DAYS", 90),
            logo_url_ttl_seconds=_int_env("LOGO_URL_TTL_SECONDS", 90 * 24 * 60 * 60),
            document_number_max_retries=_int_env("DOCUMENT_NUMBER_MAX_RETRIES", 5),
        )


__all__ = ["EngineSettings"]
