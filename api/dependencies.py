"""
FastAPI dependency providers.

Services are built per request from the Supabase-backed repositories. Tests
replace `get_repositories` / `get_settings` through `app.dependency_overrides`.
"""

from functools import lru_cache

from fastapi import Depends

from repositories.contact_repository import SupabaseContactRepository
from repositories.deal_repository import SupabaseDealRepository
from repositories.dealer_repository import SupabaseDealerRepository
from repositories.document_counter_repository import SupabaseDocumentCounterStore
from repositories.protocols import SalesRepositories
from repositories.sales_document_repository import SupabaseSalesDocumentRepository
from repositories.storage_repository import SupabaseSignedUrlIssuer
from repositories.vehicle_repository import SupabaseVehicleRepository
from services.deal_lifecycle_service import DealLifecycleService
from services.deposit_service import DepositService
from services.invoice_service import InvoiceService
from services.payment_service import PaymentService
from services.settings import EngineSettings


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings.from_env()


@lru_cache(maxsize=1)
def get_repositories() -> SalesRepositories:
    return SalesRepositories(
        deals=SupabaseDealRepository(),
        vehicles=SupabaseVehicleRepository(),
        contacts=SupabaseContactRepository(),
        dealers=SupabaseDealerRepository(),
        documents=SupabaseSalesDocumentRepository(),
        counters=SupabaseDocumentCounterStore(),
        signed_urls=SupabaseSignedUrlIssuer(),
    )


def get_invoice_service(
    repos: SalesRepositories = Depends(get_repositories),
    settings: EngineSettings = Depends(get_settings),
) -> InvoiceService:
    return InvoiceService(repos, settings)


def get_deposit_service(
    repos: SalesRepositories = Depends(get_repositories),
    settings: EngineSettings = Depends(get_settings),
) -> DepositService:
    return DepositService(repos, settings)


def get_lifecycle_service(repos: SalesRepositories = Depends(get_repositories)) -> DealLifecycleService:
    return DealLifecycleService(repos.deals, vehicles=repos.vehicles)


def get_payment_service(
    repos: SalesRepositories = Depends(get_repositories),
    settings: EngineSettings = Depends(get_settings),
) -> PaymentService:
    return PaymentService(repos, settings)
