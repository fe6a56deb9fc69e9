"""
Contact repository for buyers, finance companies and suppliers.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.contact import Address, Contact
from repositories.client import execute, get_supabase, rows_of

_CONTACTS_TABLE: str = "contacts"


def _row_to_contact(row: Mapping[str, Any]) -> Contact:
    return Contact(
        contact_id=UUID(str(row["contact_id"])),
        display_name=str(row.get("display_name") or row.get("company_name") or ""),
        company_name=row.get("company_name"),
        email=row.get("email"),
        phone=row.get("phone"),
        address=Address.from_mapping(row.get("address")),
    )


class SupabaseContactRepository:
    def __init__(self, client: Optional[Client] = None):
        self._client = client or get_supabase()

    def get_contact(self, contact_id: UUID) -> Optional[Contact]:
        """
        Get a contact by ID.

        Returns:
            Contact domain model or None if not found
        """
        response = execute(
            self._client.table(_CONTACTS_TABLE).select("*").eq("contact_id", str(contact_id)).limit(1),
            "fetch contact",
        )
        rows = rows_of(response)
        if not rows:
            return None
        return _row_to_contact(rows[0])


__all__ = ["SupabaseContactRepository"]
