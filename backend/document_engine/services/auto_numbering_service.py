"""
Service per la numerazione automatica
Progetto: Document Engine (Gestionale Documenti)

Un contatore per tipo documento o entità (cliente, fornitore, articolo),
persistito nello storage chiave/valore sotto la chiave document_counters.

La sequenza leggi-azzera-incrementa-scrivi è eseguita sotto il lock della
chiave dei contatori: all'interno del processo non vengono emessi numeri
duplicati.
"""

import datetime
import logging
import re
import time
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from document_engine.core.config import Settings, get_settings
from document_engine.core.exceptions import BusinessValidationError, NotFoundError, StorageError
from document_engine.core.storage import JsonStorage
from document_engine.schemas.document import DocumentType
from document_engine.schemas.numbering import (
    Counter,
    CounterUpdate,
    NumberResult,
    ResetPeriod,
)

logger = logging.getLogger(__name__)

COUNTERS_KEY = "document_counters"

NUMBER_PLACEHOLDER_RE = re.compile(r"\{number(?::(0+))?\}")

DOCUMENT_NUMBER_FORMAT = "{prefix}-{year}-{number:0000}"

# Contatori creati alla prima richiesta se numbering_seed_defaults è attivo
DEFAULT_COUNTERS: dict[str, dict[str, Any]] = {
    DocumentType.QUOTE.value: {"prefix": "QT"},
    DocumentType.SALES_ORDER.value: {"prefix": "SO"},
    DocumentType.INVOICE.value: {"prefix": "INV"},
    DocumentType.PURCHASE_ORDER.value: {"prefix": "PO"},
    DocumentType.DELIVERY_NOTE.value: {"prefix": "DN"},
    DocumentType.PAYMENT_RECEIPT.value: {"prefix": "RCT"},
    DocumentType.GOODS_RECEIVING_VOUCHER.value: {"prefix": "GRN"},
    DocumentType.FINANCIAL_REPORT.value: {"prefix": "FR"},
    "customer": {
        "prefix": "CUST",
        "start_from": 10001,
        "format": "{prefix}-{number:0000}",
        "reset_period": ResetPeriod.NEVER,
    },
    "vendor": {
        "prefix": "VEN",
        "start_from": 10001,
        "format": "{prefix}-{number:0000}",
        "reset_period": ResetPeriod.NEVER,
    },
    "item": {
        "prefix": "PROD",
        "start_from": 100001,
        "format": "{prefix}-{number:00000}",
        "reset_period": ResetPeriod.NEVER,
    },
}

_ENTITY_ALIASES = {
    "customers": "customer",
    "vendors": "vendor",
    "items": "item",
    "products": "item",
}


def normalize_counter_key(key: Union[str, DocumentType]) -> str:
    """Chiave canonica: valore del DocumentType oppure nome entità al singolare."""
    if isinstance(key, DocumentType):
        return key.value
    raw = str(key or "").strip().lower()
    if raw in _ENTITY_ALIASES or raw in DEFAULT_COUNTERS:
        return _ENTITY_ALIASES.get(raw, raw)
    try:
        return DocumentType.parse(raw).value
    except BusinessValidationError:
        return raw


def format_number(counter: Counter, number: int, now: datetime.datetime) -> str:
    """
    Applica il formato del contatore.

    {number:0000} è riempito di zeri alla larghezza letterale indicata,
    {number} alla larghezza number_length del contatore.
    """
    def _replace_number(match: re.Match) -> str:
        width = len(match.group(1)) if match.group(1) else counter.number_length
        return str(number).zfill(width)

    text = (
        counter.format.replace("{prefix}", counter.prefix)
        .replace("{year}", f"{now.year:04d}")
        .replace("{month}", f"{now.month:02d}")
    )
    return NUMBER_PLACEHOLDER_RE.sub(_replace_number, text)


def _number_pattern(counter: Counter) -> re.Pattern:
    pattern = re.escape(counter.format)
    pattern = pattern.replace(re.escape("{prefix}"), re.escape(counter.prefix))
    pattern = pattern.replace(re.escape("{year}"), r"\d{4}")
    pattern = pattern.replace(re.escape("{month}"), r"(0[1-9]|1[0-2])")

    def _replace_number(match: re.Match) -> str:
        width = len(match.group(1)) if match.group(1) else counter.number_length
        return r"\d{%d,}" % max(width, 1)

    escaped_placeholder = re.compile(r"\\\{number(?::(0+))?\\\}")
    pattern = escaped_placeholder.sub(_replace_number, pattern)
    return re.compile(f"^{pattern}$")


class AutoNumberingService:
    """
    Generatore di numeri progressivi formattati.

    Uso:
        numbering = AutoNumberingService(storage)
        result = numbering.next("invoice")   # NumberResult
        result.number                          # 'INV-2025-0001'
    """

    def __init__(
        self,
        storage: JsonStorage,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or get_settings()
        self._clock = clock or datetime.datetime.now

    # -------------------------------------------------------------------
    # Generazione
    # -------------------------------------------------------------------

    def next(self, key: Union[str, DocumentType]) -> NumberResult:
        """
        Genera il prossimo numero per la chiave e lo rende persistente.

        Steps:
        1. Carica i contatori (sotto lock)
        2. Crea il contatore se assente e ci sono default per la chiave
        3. Applica l'eventuale reset di periodo
        4. Incrementa, formatta e salva

        Se la chiave non è configurata, il contatore è disabilitato o lo
        storage non è utilizzabile, restituisce {KEY}-{millis} con
        authoritative=False invece di sollevare.

        Args:
            key: Tipo documento o entità (invoice, sales-order, customer, ...)

        Returns:
            NumberResult: Numero generato
        """
        key = normalize_counter_key(key)

        with self.storage.lock(COUNTERS_KEY):
            loaded = self.storage.read_json(COUNTERS_KEY, {})
            if loaded.is_fallback:
                return self._fallback(key, f"contatori non leggibili: {loaded.reason}")

            counters = loaded.value
            counter = self._counter_from(key, counters.get(key))
            if counter is None:
                return self._fallback(key, "nessuna numerazione configurata")
            if not counter.enabled:
                return self._fallback(key, "numerazione disabilitata")

            now = self._clock()
            counter = self._apply_reset(counter, now)
            counter = counter.model_copy(update={"current": counter.next_number})
            number = format_number(counter, counter.current, now)

            counters[key] = counter.model_dump(mode="json", by_alias=True)
            try:
                self.storage.write_json(COUNTERS_KEY, counters)
            except StorageError as e:
                return self._fallback(key, f"salvataggio contatore fallito: {e.detail}")

        logger.info("Numero %s generato per '%s'", number, key)
        return NumberResult(key=key, number=number)

    def preview(self, key: Union[str, DocumentType]) -> NumberResult:
        """Numero che sarebbe generato ora, senza modificare il contatore."""
        key = normalize_counter_key(key)
        loaded = self.storage.read_json(COUNTERS_KEY, {})
        counter = None if loaded.is_fallback else self._counter_from(key, loaded.value.get(key))
        if counter is None or not counter.enabled:
            return NumberResult(
                key=key,
                number=f"{key.upper()}-{self._millis()}",
                authoritative=False,
                reason="nessuna numerazione configurata",
            )

        now = self._clock()
        counter = self._apply_reset(counter, now)
        return NumberResult(key=key, number=format_number(counter, counter.next_number, now))

    def validate_number(self, key: Union[str, DocumentType], number: str) -> bool:
        """Verifica che il numero rispetti il formato configurato per la chiave."""
        counter = self.get_counter(key)
        if counter is None or not number:
            return False
        return bool(_number_pattern(counter).match(number.strip()))

    # -------------------------------------------------------------------
    # Configurazione
    # -------------------------------------------------------------------

    def get_counter(self, key: Union[str, DocumentType]) -> Optional[Counter]:
        """Contatore configurato (o di default) per la chiave, None se assente."""
        key = normalize_counter_key(key)
        loaded = self.storage.read_json(COUNTERS_KEY, {})
        return self._counter_from(key, loaded.value.get(key))

    def get_counters(self) -> list[Counter]:
        """Tutti i contatori: quelli salvati più i default non ancora creati."""
        loaded = self.storage.read_json(COUNTERS_KEY, {})
        keys = list(dict.fromkeys([*loaded.value.keys(), *self._seed_keys()]))
        counters = []
        for key in keys:
            counter = self._counter_from(key, loaded.value.get(key))
            if counter is not None:
                counters.append(counter)
        return counters

    def configure(
        self,
        key: Union[str, DocumentType],
        update: Union[CounterUpdate, dict[str, Any]],
    ) -> Counter:
        """
        Crea o modifica la configurazione di un contatore.

        next_number imposta il prossimo numero emesso.

        Raises:
            BusinessValidationError: Se la configurazione risultante non è valida
            StorageError: Se i contatori non sono leggibili
        """
        key = normalize_counter_key(key)
        if isinstance(update, dict):
            update = CounterUpdate.model_validate(update)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)

        with self.storage.lock(COUNTERS_KEY):
            counters = self.storage.read_json_for_update(COUNTERS_KEY, {})
            counter = self._counter_from(key, counters.get(key)) or Counter(key=key)

            data = counter.model_dump()
            next_number = changes.pop("next_number", None)
            data.update(changes)
            if next_number is not None:
                data["current"] = next_number - data["increment"]

            try:
                counter = Counter.model_validate(data)
            except PydanticValidationError as e:
                raise BusinessValidationError(
                    f"Configurazione numerazione non valida per '{key}'",
                    extra={"errors": e.errors(include_url=False, include_context=False)},
                )

            counters[key] = counter.model_dump(mode="json", by_alias=True)
            self.storage.write_json(COUNTERS_KEY, counters)

        logger.info("Numerazione '%s' configurata: %s", key, changes)
        return counter

    def reset(self, key: Union[str, DocumentType]) -> Counter:
        """
        Azzera il contatore: il prossimo numero sarà start_from.

        Raises:
            NotFoundError: Se la chiave non ha numerazione
            StorageError: Se i contatori non sono leggibili
        """
        key = normalize_counter_key(key)
        with self.storage.lock(COUNTERS_KEY):
            counters = self.storage.read_json_for_update(COUNTERS_KEY, {})
            counter = self._counter_from(key, counters.get(key))
            if counter is None:
                raise NotFoundError(f"Nessuna numerazione configurata per '{key}'")
            counter = counter.model_copy(
                update={
                    "current": counter.start_from - counter.increment,
                    "last_reset": self._clock(),
                }
            )
            counters[key] = counter.model_dump(mode="json", by_alias=True)
            self.storage.write_json(COUNTERS_KEY, counters)

        logger.info("Contatore '%s' azzerato", key)
        return counter

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _seed_keys(self) -> list[str]:
        return list(DEFAULT_COUNTERS) if self.settings.numbering_seed_defaults else []

    def _counter_from(self, key: str, stored: Optional[dict[str, Any]]) -> Optional[Counter]:
        if stored is not None:
            try:
                return Counter.model_validate(stored)
            except PydanticValidationError as e:
                logger.warning("Contatore '%s' non valido, uso il default: %s", key, e)

        if key not in self._seed_keys():
            return None

        defaults = {"format": DOCUMENT_NUMBER_FORMAT, "reset_period": ResetPeriod.YEARLY}
        defaults.update(DEFAULT_COUNTERS[key])
        counter = Counter(key=key, **defaults)
        return counter.model_copy(
            update={"current": counter.start_from - counter.increment, "last_reset": None}
        )

    def _apply_reset(self, counter: Counter, now: datetime.datetime) -> Counter:
        last_reset = counter.last_reset
        if last_reset is None:
            return counter.model_copy(update={"last_reset": now})

        if counter.reset_period == ResetPeriod.YEARLY:
            crossed = now.year > last_reset.year
        elif counter.reset_period == ResetPeriod.MONTHLY:
            crossed = (now.year, now.month) > (last_reset.year, last_reset.month)
        else:
            crossed = False

        if not crossed:
            return counter

        logger.info("Reset %s del contatore '%s'", counter.reset_period.value, counter.key)
        return counter.model_copy(
            update={"current": counter.start_from - counter.increment, "last_reset": now}
        )

    def _millis(self) -> int:
        return time.time_ns() // 1_000_000

    def _fallback(self, key: str, reason: str) -> NumberResult:
        number = f"{key.upper()}-{self._millis()}"
        logger.warning("Numero di fallback %s per '%s': %s", number, key, reason)
        return NumberResult(key=key, number=number, authoritative=False, reason=reason)
