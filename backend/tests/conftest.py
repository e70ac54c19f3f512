"""
Pytest configuration and fixtures for the document engine tests.

Tutti i servizi usano lo storage in memoria e un orologio fisso,
quindi numeri, date e timestamp sono deterministici.
"""

import datetime
from decimal import Decimal

import pytest

from document_engine.core.config import Settings
from document_engine.core.storage import InMemoryKeyValueStore, JsonStorage
from document_engine.schemas.document import (
    Company,
    Customer,
    Invoice,
    LineItem,
    Quote,
    TaxSettings,
    TaxType,
)
from document_engine.services.auto_numbering_service import AutoNumberingService
from document_engine.services.company_profile_service import CompanyProfileService
from document_engine.services.customization_service import CustomizationResolver
from document_engine.services.document_renderer import DocumentRenderer
from document_engine.services.document_store import DocumentStore
from document_engine.services.document_workflow_service import DocumentWorkflow

FIXED_NOW = datetime.datetime(2025, 3, 15, 10, 30, 0)


# ============================================================
# Fixtures per configurazione e storage
# ============================================================


@pytest.fixture
def app_settings(tmp_path):
    """Settings di test: storage in memoria, export in una cartella temporanea."""
    return Settings(
        app_env="testing",
        storage_backend="memory",
        export_dir=str(tmp_path / "exports"),
        company_name="Acme Trading Ltd.",
        company_city="Nairobi",
        company_country="Kenya",
        company_phone="+254 700 000000",
        company_email="info@acme.example",
    )


@pytest.fixture
def clock():
    """Orologio fisso: 15/03/2025 10:30."""
    return lambda: FIXED_NOW


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def storage(kv_store):
    return JsonStorage(kv_store)


# ============================================================
# Fixtures per i servizi
# ============================================================


@pytest.fixture
def numbering(storage, app_settings, clock):
    return AutoNumberingService(storage, settings=app_settings, clock=clock)


@pytest.fixture
def document_store(storage, numbering, clock):
    return DocumentStore(storage, numbering=numbering, clock=clock)


@pytest.fixture
def workflow(document_store, numbering, app_settings, clock):
    return DocumentWorkflow(document_store, numbering, settings=app_settings, clock=clock)


@pytest.fixture
def company_profiles(storage, app_settings):
    return CompanyProfileService(storage, settings=app_settings)


@pytest.fixture
def customization(storage, company_profiles, app_settings, clock):
    return CustomizationResolver(
        storage,
        company_profiles=company_profiles,
        settings=app_settings,
        clock=clock,
    )


@pytest.fixture
def renderer(clock):
    return DocumentRenderer(clock=clock)


# ============================================================
# Fixtures per documenti di esempio
# ============================================================


@pytest.fixture
def company():
    return Company(
        name="Acme Trading Ltd.",
        address="Moi Avenue 12",
        city="Nairobi",
        country="Kenya",
        phone="+254 700 000000",
        email="info@acme.example",
        tax_id="P051234567X",
    )


@pytest.fixture
def customer():
    return Customer(
        id="cust-1",
        name="Jane Wanjiku",
        company="Wanjiku Stores",
        address="Kenyatta Road 5",
        city="Nakuru",
        phone="+254 711 111111",
        email="jane@wanjiku.example",
    )


@pytest.fixture
def exclusive_16():
    return TaxSettings(type=TaxType.EXCLUSIVE, default_rate=Decimal("16"))


@pytest.fixture
def sample_items():
    """Due righe: 2 x 100 e 1 x 50 (subtotale 250)."""
    return [
        LineItem(item_code="WID-01", description="Widget", quantity=Decimal("2"), unit_price=Decimal("100")),
        LineItem(item_code="GAD-02", description="Gadget", quantity=Decimal("1"), unit_price=Decimal("50")),
    ]


@pytest.fixture
def sample_quote(company, customer, sample_items, exclusive_16):
    """Preventivo accettato non ancora salvato."""
    return Quote(
        document_number="QT-2025-0001",
        date=datetime.date(2025, 3, 1),
        company=company,
        customer=customer,
        items=sample_items,
        tax_settings=exclusive_16,
        status="accepted",
        currency="KES",
    )


@pytest.fixture
def saved_quote(document_store, sample_quote):
    return document_store.save("quote", sample_quote)


@pytest.fixture
def saved_invoice(document_store, company, customer, sample_items, exclusive_16):
    """Fattura pending da 290.00 salvata."""
    return document_store.save(
        "invoice",
        Invoice(
            company=company,
            customer=customer,
            items=sample_items,
            tax_settings=exclusive_16,
            status="pending",
            currency="KES",
        ),
    )
