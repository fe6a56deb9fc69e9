"""
Domain: Contacts (buyers, finance companies, suppliers).

Contacts are reference data owned by the contacts module. The settlement
engine only reads them to denormalize names and addresses into documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Address:
    line1: Optional[str] = None
    line2: Optional[str] = None
    town: Optional[str] = None
    county: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None

    @staticmethod
    def from_mapping(data: Optional[Mapping[str, Any]]) -> "Address":
        if not data:
            return Address()
        return Address(
            line1=data.get("line1"),
            line2=data.get("line2"),
            town=data.get("town"),
            county=data.get("county"),
            postcode=data.get("postcode"),
            country=data.get("country"),
        )

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "line1": self.line1,
            "line2": self.line2,
            "town": self.town,
            "county": self.county,
            "postcode": self.postcode,
            "country": self.country,
        }


@dataclass(frozen=True, slots=True)
class Contact:
    """
    A person or company the dealer trades with.

    `display_name` is what documents print; `company_name` is printed
    alongside it for business buyers and finance companies.
    """

    contact_id: UUID
    display_name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Address = field(default_factory=Address)

    @property
    def name(self) -> str:
        return self.display_name or self.company_name or ""
