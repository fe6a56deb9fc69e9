"""
Public share tokens for issued documents.

Only the SHA-256 hash of a token is stored. The plaintext is returned once, at
issuance, and cannot be recovered afterwards.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from domain.time import require_utc_timestamp

TOKEN_BYTES = 32


@dataclass(frozen=True, slots=True)
class ShareToken:
    token: str
    token_hash: str
    expires_at: datetime


def hash_share_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_share_token(now: datetime, valid_for: timedelta) -> ShareToken:
    require_utc_timestamp("now", now)
    token = secrets.token_urlsafe(TOKEN_BYTES)
    return ShareToken(token=token, token_hash=hash_share_token(token), expires_at=now + valid_for)


def verify_share_token(
    token: str,
    token_hash: Optional[str],
    expires_at: Optional[datetime],
    now: datetime,
) -> bool:
    """
    True only when `token` hashes to `token_hash` and `now` is before `expires_at`.

    Never reports which check failed.
    """

    require_utc_timestamp("now", now)
    if not token or not token_hash or expires_at is None:
        return False
    matches = hmac.compare_digest(hash_share_token(token), token_hash)
    return matches and now < expires_at


__all__ = ["ShareToken", "hash_share_token", "issue_share_token", "verify_share_token"]
