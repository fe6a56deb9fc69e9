"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created lazily on first use so that importing repositories (e.g. from tests
that use the in-memory implementations) does not require credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import httpx
from dotenv import load_dotenv
from postgrest.exceptions import APIError

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from repositories.errors import DuplicateDocumentError, StorageUnavailableError

logger = logging.getLogger(__name__)

# Load environment variables from the project-root .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the shared Supabase client, creating it on first call."""

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(supabase_url, supabase_key)


def execute(query: Any, action: str) -> Any:
    """
    Execute a postgrest query and normalize failures.

    Any API or transport error becomes StorageUnavailableError with a generic
    message; the underlying error is logged, not returned to callers.
    """

    try:
        response = query.execute()
    except APIError as e:
        if str(e.code) == "23505":
            raise DuplicateDocumentError(f"Unique constraint violated during {action}") from e
        logger.error("Supabase %s failed: code=%s message=%s", action, e.code, e.message)
        raise StorageUnavailableError(f"Failed to {action}") from e
    except (httpx.HTTPError, OSError) as e:
        logger.error("Supabase %s failed: %s", action, e)
        raise StorageUnavailableError(f"Failed to {action}") from e

    error = getattr(response, "error", None)
    if error:
        logger.error("Supabase %s failed: %s", action, error)
        raise StorageUnavailableError(f"Failed to {action}")
    return response


def rows_of(response: Any) -> list[dict[str, Any]]:
    data = getattr(response, "data", None) or []
    if isinstance(data, dict):
        return [data]
    return list(data)


__all__ = ["get_supabase", "execute", "rows_of"]
