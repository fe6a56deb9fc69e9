"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules, and seeds
an in-memory sale (dealer, vehicle, contacts, deal) for service tests.
"""

import sys
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.contact import Address, Contact  # noqa: E402
from domain.deal import AddOn, Deal, Delivery  # noqa: E402
from domain.dealer import Dealer, SalesSettings  # noqa: E402
from domain.vat import VatScheme  # noqa: E402
from domain.vehicle import ServiceRecord, Vehicle, VehicleAcquisition  # noqa: E402
from repositories.memory import in_memory_repositories  # noqa: E402
from repositories.protocols import SalesRepositories  # noqa: E402
from services.deposit_service import DepositService  # noqa: E402
from services.invoice_service import InvoiceService  # noqa: E402
from services.payment_service import PaymentService  # noqa: E402
from services.settings import EngineSettings  # noqa: E402

DEALER_ID = UUID("00000000-0000-0000-0000-000000000001")
DEAL_ID = UUID("00000000-0000-0000-0000-000000000010")
VEHICLE_ID = UUID("00000000-0000-0000-0000-000000000020")
CUSTOMER_ID = UUID("00000000-0000-0000-0000-000000000030")
SUPPLIER_ID = UUID("00000000-0000-0000-0000-000000000031")
FINANCE_COMPANY_ID = UUID("00000000-0000-0000-0000-000000000032")

START = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic UTC clock; call it like `utc_now`."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@dataclass
class SaleWorld:
    """Reference data for one in-progress sale, seeded into the in-memory repositories."""

    repos: SalesRepositories
    dealer: Dealer
    vehicle: Vehicle
    customer: Contact
    supplier: Contact
    finance_company: Contact
    deal: Deal
    service_records: list[ServiceRecord] = field(default_factory=list)

    def update_deal(self, **changes: Any) -> Deal:
        self.deal = replace(self.current_deal(), **changes)
        self.repos.deals.add(self.deal)
        return self.deal

    def update_vehicle(self, **changes: Any) -> Vehicle:
        self.vehicle = replace(self.vehicle, **changes)
        self.repos.vehicles.add(self.vehicle)
        return self.vehicle

    def update_dealer(self, **changes: Any) -> Dealer:
        self.dealer = replace(self.dealer, **changes)
        self.repos.dealers.add(self.dealer)
        return self.dealer

    def current_deal(self) -> Deal:
        return self.repos.deals.get_deal(DEAL_ID)

    def current_vehicle(self) -> Vehicle:
        return self.repos.vehicles.get_vehicle(VEHICLE_ID)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(public_base_url="https://dealer.example.com")


@pytest.fixture
def repos() -> SalesRepositories:
    return in_memory_repositories()


@pytest.fixture
def world(repos: SalesRepositories) -> SaleWorld:
    """
    A VAT-qualifying in-person sale ready to invoice:
    vehicle 10,000 net + 2,000 VAT, one 100.00 standard-rated add-on, 50.00 delivery.
    """

    dealer = repos.dealers.add(
        Dealer(
            dealer_id=DEALER_ID,
            name="Northside Motors",
            company_name="Northside Motors Ltd",
            company_address="1 Forecourt Way, Leeds",
            company_phone="0113 000 0000",
            company_email="sales@northside.example.com",
            logo_key="logos/northside.png",
            logo_url="https://cdn.example.com/logos/northside.png",
            sales_settings=SalesSettings(
                vat_registered=True,
                vat_number="GB123456789",
                company_number="01234567",
                bank_details={"accountName": "Northside Motors Ltd", "sortCode": "00-00-00"},
                terms={
                    "consumerInPerson": "Consumer in-person terms",
                    "consumerDistance": "Consumer distance terms",
                    "businessInPerson": "Business terms",
                },
            ),
        )
    )
    service_records = [
        ServiceRecord(service_date=date(2024, 6, 1), description="Annual service", mileage=30000),
        ServiceRecord(service_date=date(2023, 5, 1), description="Interim service", mileage=21000),
    ]
    vehicle = repos.vehicles.add(
        Vehicle(
            vehicle_id=VEHICLE_ID,
            dealer_id=DEALER_ID,
            reg_current="AB12 CDE",
            vin="WVWZZZ1KZAW000001",
            make="Volkswagen",
            model="Golf",
            derivative="1.5 TSI Life",
            year=2021,
            mileage=32000,
            colour="Grey",
            first_registered_date=date(2021, 3, 1),
            acquisition=VehicleAcquisition(
                purchase_price_net=Decimal("8500.00"),
                purchase_date=date(2025, 1, 15),
                supplier_contact_id=SUPPLIER_ID,
            ),
        ),
        service_records=service_records,
    )
    customer = repos.contacts.add(
        Contact(
            contact_id=CUSTOMER_ID,
            display_name="Jamie Buyer",
            email="jamie@example.com",
            phone="07700 900000",
            address=Address(line1="2 High Street", town="York", postcode="YO1 1AA"),
        )
    )
    supplier = repos.contacts.add(Contact(contact_id=SUPPLIER_ID, display_name="Auction House"))
    finance_company = repos.contacts.add(
        Contact(
            contact_id=FINANCE_COMPANY_ID,
            display_name="Acme Motor Finance",
            company_name="Acme Motor Finance plc",
            address=Address(line1="10 Finance Row", town="London", postcode="EC1 1AA"),
        )
    )
    deal = repos.deals.add(
        Deal(
            deal_id=DEAL_ID,
            dealer_id=DEALER_ID,
            vehicle_id=VEHICLE_ID,
            vat_scheme=VatScheme.VAT_QUALIFYING,
            deal_number=42,
            sold_to_contact_id=CUSTOMER_ID,
            vehicle_price_net=Decimal("10000.00"),
            vehicle_vat_amount=Decimal("2000.00"),
            vehicle_price_gross=Decimal("12000.00"),
            add_ons=(AddOn(name="Paint protection", unit_price_net=Decimal("100.00")),),
            delivery=Delivery(amount_gross=Decimal("50.00")),
        )
    )
    return SaleWorld(
        repos=repos,
        dealer=dealer,
        vehicle=vehicle,
        customer=customer,
        supplier=supplier,
        finance_company=finance_company,
        deal=deal,
        service_records=service_records,
    )


@pytest.fixture
def invoice_service(repos: SalesRepositories, settings: EngineSettings, clock: FakeClock) -> InvoiceService:
    return InvoiceService(repos, settings, clock=clock)


@pytest.fixture
def deposit_service(repos: SalesRepositories, settings: EngineSettings, clock: FakeClock) -> DepositService:
    return DepositService(repos, settings, clock=clock)


@pytest.fixture
def payment_service(repos: SalesRepositories, settings: EngineSettings, clock: FakeClock) -> PaymentService:
    return PaymentService(repos, settings, clock=clock)
