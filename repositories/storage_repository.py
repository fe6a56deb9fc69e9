"""
Signed URL issuance for dealer assets (logos) in Supabase Storage.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from supabase import Client  # type: ignore[import-not-found]

from repositories.client import get_supabase
from repositories.errors import StorageUnavailableError

_DEFAULT_BUCKET: str = "dealer-assets"


class SupabaseSignedUrlIssuer:
    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self._client = client or get_supabase()
        self._bucket = bucket or os.getenv("DOCUMENT_STORAGE_BUCKET", _DEFAULT_BUCKET)

    def signed_url(self, key: str, expires_in_seconds: int) -> str:
        try:
            result: Any = self._client.storage.from_(self._bucket).create_signed_url(key, expires_in_seconds)
        except Exception as e:  # storage3 exception types differ between releases
            raise StorageUnavailableError("Failed to create signed URL") from e
        # supabase-py has returned both spellings across releases
        url = None
        if isinstance(result, dict):
            url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise StorageUnavailableError("Failed to create signed URL")
        return str(url)


__all__ = ["SupabaseSignedUrlIssuer"]
