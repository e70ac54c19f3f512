"""
Tests for AutoNumberingService.

L'orologio è fisso al 15/03/2025, quindi i numeri generati sono
deterministici (INV-2025-0001, ...).
"""

import datetime
from concurrent.futures import ThreadPoolExecutor

import pytest

from document_engine.core.config import Settings
from document_engine.core.exceptions import BusinessValidationError, NotFoundError, StorageError
from document_engine.core.storage import InMemoryKeyValueStore, JsonStorage
from document_engine.schemas.numbering import CounterUpdate, ResetPeriod
from document_engine.services.auto_numbering_service import (
    COUNTERS_KEY,
    AutoNumberingService,
)


class FlakyKeyValueStore(InMemoryKeyValueStore):
    """Backend che fallisce la prossima lettura quando richiesto."""

    def __init__(self):
        super().__init__()
        self.fail_next_get = False

    def get(self, key):
        if self.fail_next_get:
            self.fail_next_get = False
            raise StorageError("backend offline")
        return super().get(key)


class MutableClock:
    """Orologio spostabile in avanti dai test."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


# ============================================================
# Tests for next()
# ============================================================


class TestNext:
    """Tests for number generation."""

    def test_sequential_invoice_numbers(self, numbering):
        """Test tre richieste consecutive danno 0001, 0002, 0003."""
        numbers = [numbering.next("invoice").number for _ in range(3)]

        assert numbers == ["INV-2025-0001", "INV-2025-0002", "INV-2025-0003"]

    def test_counters_are_independent(self, numbering):
        """Test ogni tipo documento ha il proprio contatore."""
        numbering.next("invoice")

        assert numbering.next("quote").number == "QT-2025-0001"
        assert numbering.next("sales-order").number == "SO-2025-0001"
        assert numbering.next("invoice").number == "INV-2025-0002"

    def test_key_aliases(self, numbering):
        """Test alias e underscore puntano allo stesso contatore."""
        numbering.next("sales_order")

        assert numbering.next("sales-order").number == "SO-2025-0002"
        assert numbering.next("receipt").number == "RCT-2025-0001"

    def test_entity_counters(self, numbering):
        """Test contatori di clienti, fornitori e articoli."""
        assert numbering.next("customer").number == "CUST-10001"
        assert numbering.next("vendors").number == "VEN-10001"
        assert numbering.next("item").number == "PROD-100001"

    def test_counter_is_persisted(self, storage, numbering):
        """Test il contatore salvato registra l'ultimo numero emesso."""
        numbering.next("invoice")
        numbering.next("invoice")

        stored = storage.read_json(COUNTERS_KEY, {}).value["invoice"]

        assert stored["current"] == 2
        assert stored["prefix"] == "INV"

    def test_unknown_key_falls_back(self, numbering):
        """Test chiave non configurata: numero di fallback non autorevole."""
        result = numbering.next("widget")

        assert result.authoritative is False
        assert result.number.startswith("WIDGET-")
        assert result.number.split("-")[1].isdigit()

    def test_malformed_counters_fall_back(self, kv_store, numbering):
        """Test contatori illeggibili: fallback senza eccezioni."""
        kv_store.set(COUNTERS_KEY, "{not json")

        result = numbering.next("invoice")

        assert result.authoritative is False
        assert result.number.startswith("INVOICE-")

    def test_disabled_counter_falls_back(self, numbering):
        """Test contatore disabilitato: fallback."""
        numbering.configure("invoice", CounterUpdate(enabled=False))

        assert numbering.next("invoice").authoritative is False

    def test_seed_defaults_disabled(self, storage, clock):
        """Test senza contatori di default ogni chiave non configurata usa il fallback."""
        settings = Settings(app_env="testing", storage_backend="memory", numbering_seed_defaults=False)
        service = AutoNumberingService(storage, settings=settings, clock=clock)

        assert service.next("invoice").authoritative is False

        service.configure("invoice", {"prefix": "F", "format": "{prefix}/{number}"})

        assert service.next("invoice").number == "F/0001"

    def test_monotonic_under_concurrency(self, numbering):
        """Test richieste concorrenti non producono duplicati."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            numbers = list(pool.map(lambda _: numbering.next("invoice").number, range(40)))

        assert len(set(numbers)) == 40
        assert max(numbers) == "INV-2025-0040"


# ============================================================
# Tests for reset periods
# ============================================================


class TestResetPeriod:
    """Tests for yearly and monthly resets."""

    def test_yearly_reset_on_new_year(self, storage, app_settings):
        """Test il cambio d'anno riparte da start_from con il nuovo anno."""
        clock = MutableClock(datetime.datetime(2025, 12, 31, 23, 59))
        service = AutoNumberingService(storage, settings=app_settings, clock=clock)

        assert service.next("invoice").number == "INV-2025-0001"
        assert service.next("invoice").number == "INV-2025-0002"

        clock.now = datetime.datetime(2026, 1, 1, 0, 1)

        assert service.next("invoice").number == "INV-2026-0001"

    def test_no_reset_within_year(self, storage, app_settings):
        """Test nessun reset all'interno dello stesso anno."""
        clock = MutableClock(datetime.datetime(2025, 1, 10))
        service = AutoNumberingService(storage, settings=app_settings, clock=clock)
        service.next("invoice")

        clock.now = datetime.datetime(2025, 11, 10)

        assert service.next("invoice").number == "INV-2025-0002"

    def test_monthly_reset(self, storage, app_settings):
        """Test reset mensile al cambio mese."""
        clock = MutableClock(datetime.datetime(2025, 3, 31))
        service = AutoNumberingService(storage, settings=app_settings, clock=clock)
        service.configure(
            "invoice",
            CounterUpdate(format="{prefix}{year}{month}-{number:000}", reset_period=ResetPeriod.MONTHLY),
        )

        assert service.next("invoice").number == "INV202503-001"

        clock.now = datetime.datetime(2025, 4, 1)

        assert service.next("invoice").number == "INV202504-001"

    def test_never_reset_for_entities(self, storage, app_settings):
        """Test i contatori delle entità non si azzerano a fine anno."""
        clock = MutableClock(datetime.datetime(2025, 12, 31))
        service = AutoNumberingService(storage, settings=app_settings, clock=clock)
        service.next("customer")

        clock.now = datetime.datetime(2026, 1, 2)

        assert service.next("customer").number == "CUST-10002"


# ============================================================
# Tests for preview, validation and configuration
# ============================================================


class TestPreviewAndValidation:
    """Tests for preview() and validate_number()."""

    def test_preview_has_no_side_effects(self, numbering):
        """Test preview non consuma numeri."""
        assert numbering.preview("invoice").number == "INV-2025-0001"
        assert numbering.preview("invoice").number == "INV-2025-0001"
        assert numbering.next("invoice").number == "INV-2025-0001"
        assert numbering.preview("invoice").number == "INV-2025-0002"

    def test_preview_unknown_key(self, numbering):
        """Test preview di una chiave non configurata."""
        assert numbering.preview("widget").authoritative is False

    @pytest.mark.parametrize(
        "number, expected",
        [
            ("INV-2025-0001", True),
            ("INV-2025-12345", True),
            ("INV-25-0001", False),
            ("QT-2025-0001", False),
            ("", False),
        ],
    )
    def test_validate_number(self, numbering, number, expected):
        """Test verifica del formato di un numero."""
        assert numbering.validate_number("invoice", number) is expected

    def test_validate_unknown_key(self, numbering):
        """Test chiave senza numerazione: nessun numero è valido."""
        assert numbering.validate_number("widget", "WIDGET-1") is False


class TestConfiguration:
    """Tests for configure(), reset() and get_counters()."""

    def test_configure_next_number(self, numbering):
        """Test next_number imposta il prossimo numero emesso."""
        counter = numbering.configure("invoice", CounterUpdate(next_number=50))

        assert counter.current == 49
        assert numbering.next("invoice").number == "INV-2025-0050"

    def test_configure_prefix_and_increment(self, numbering):
        """Test modifica di prefisso e passo."""
        numbering.configure("invoice", {"prefix": "FT", "increment": 10})

        assert numbering.next("invoice").number == "FT-2025-0010"
        assert numbering.next("invoice").number == "FT-2025-0020"

    def test_configure_invalid_format(self, numbering):
        """Test formato senza segnaposto del numero: errore di validazione."""
        with pytest.raises(BusinessValidationError):
            numbering.configure("invoice", CounterUpdate(format="{prefix}-{year}"))

    def test_reset_restarts_from_start(self, numbering):
        """Test reset: il prossimo numero è start_from."""
        for _ in range(3):
            numbering.next("invoice")

        counter = numbering.reset("invoice")

        assert counter.current == 0
        assert numbering.next("invoice").number == "INV-2025-0001"

    def test_reset_unknown_key(self, numbering):
        """Test reset di una chiave senza numerazione."""
        with pytest.raises(NotFoundError):
            numbering.reset("widget")

    def test_get_counters_includes_defaults(self, numbering):
        """Test l'elenco comprende i contatori di default non ancora usati."""
        keys = {counter.key for counter in numbering.get_counters()}

        assert {"quote", "invoice", "delivery-note", "customer", "item"} <= keys

    def test_counters_survive_new_service(self, kv_store, app_settings, clock):
        """Test un nuovo servizio sullo stesso storage continua la sequenza."""
        AutoNumberingService(JsonStorage(kv_store), settings=app_settings, clock=clock).next("invoice")

        service = AutoNumberingService(JsonStorage(kv_store), settings=app_settings, clock=clock)

        assert service.next("invoice").number == "INV-2025-0002"

    def test_configure_keeps_counters_when_unreadable(self, app_settings, clock):
        """Test configurazione con contatori non leggibili: nessuna sovrascrittura."""
        flaky_store = FlakyKeyValueStore()
        service = AutoNumberingService(JsonStorage(flaky_store), settings=app_settings, clock=clock)
        service.next("invoice")
        service.next("quote")
        flaky_store.fail_next_get = True

        with pytest.raises(StorageError):
            service.configure("invoice", {"prefix": "FT"})

        assert service.next("invoice").number == "INV-2025-0002"
        assert service.next("quote").number == "QT-2025-0002"
