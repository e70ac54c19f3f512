"""
Service per l'archivio documenti
Progetto: Document Engine (Gestionale Documenti)

Ogni tipo documento è salvato come un'unica lista JSON nello storage
chiave/valore (business_documents_<tipo>). Tutte le operazioni leggono e
riscrivono l'intera lista; le scritture sulla stessa lista sono serializzate
dal lock della chiave.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any, Callable, Optional, Union

from document_engine.core.exceptions import BusinessValidationError, NotFoundError
from document_engine.core.storage import JsonStorage
from document_engine.schemas.document import (
    BaseDocument,
    DocumentType,
    normalize_status,
    parse_document,
)
from document_engine.services.tax_calculator import apply_totals

logger = logging.getLogger(__name__)

STORAGE_KEYS: dict[DocumentType, str] = {
    DocumentType.QUOTE: "business_documents_quotes",
    DocumentType.SALES_ORDER: "business_documents_sales_orders",
    DocumentType.INVOICE: "business_documents_invoices",
    DocumentType.PURCHASE_ORDER: "business_documents_purchase_orders",
    DocumentType.DELIVERY_NOTE: "business_documents_delivery_notes",
    DocumentType.PAYMENT_RECEIPT: "business_documents_payment_receipts",
    DocumentType.GOODS_RECEIVING_VOUCHER: "business_documents_grv",
    DocumentType.FINANCIAL_REPORT: "business_documents_financial_reports",
}

BACKUP_VERSION = "1.0"

DocumentInput = Union[BaseDocument, dict[str, Any]]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return None


class DocumentStore:
    """
    CRUD e ricerca sui documenti, per tipo.

    Se viene fornito un AutoNumberingService, i documenti nuovi senza
    numero ricevono il prossimo numero del loro tipo.
    """

    def __init__(
        self,
        storage: JsonStorage,
        numbering: Optional[Any] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.storage = storage
        self.numbering = numbering
        self._clock = clock or _utcnow

    # -------------------------------------------------------------------
    # Lettura
    # -------------------------------------------------------------------

    def list(self, document_type: Union[str, DocumentType]) -> list[BaseDocument]:
        """
        Restituisce tutti i documenti del tipo.

        I record non validi sono saltati e registrati nel log, ma restano
        nello storage.
        """
        document_type = DocumentType.parse(document_type)
        documents = []
        for raw in self._load(document_type):
            try:
                documents.append(parse_document(document_type, raw))
            except BusinessValidationError as e:
                logger.warning(
                    "Documento %s '%s' non valido ignorato: %s",
                    document_type.value,
                    raw.get("id") if isinstance(raw, dict) else "?",
                    e.detail,
                )
        return documents

    def get(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
    ) -> Optional[BaseDocument]:
        """Restituisce il documento con l'id indicato, None se assente."""
        for document in self.list(document_type):
            if document.id == document_id:
                return document
        return None

    def get_required(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
    ) -> BaseDocument:
        """
        Come get, ma solleva se il documento non esiste.

        Raises:
            NotFoundError: Se il documento non esiste
        """
        document = self.get(document_type, document_id)
        if document is None:
            raise NotFoundError(
                f"Documento {DocumentType.parse(document_type).value} {document_id} non trovato"
            )
        return document

    def search(self, document_type: Union[str, DocumentType], term: str) -> list[BaseDocument]:
        """
        Ricerca case-insensitive per sottostringa su numero documento,
        note e nome della controparte (cliente o fornitore).
        """
        needle = (term or "").strip().lower()
        documents = self.list(document_type)
        if not needle:
            return documents

        def _matches(document: BaseDocument) -> bool:
            party = document.party
            haystack = [document.document_number, document.notes, party.name if party else None]
            return any(needle in value.lower() for value in haystack if value)

        return [document for document in documents if _matches(document)]

    def list_by_status(
        self,
        document_type: Union[str, DocumentType],
        status: str,
    ) -> list[BaseDocument]:
        """Documenti con lo stato indicato (confronto normalizzato)."""
        wanted = normalize_status(status)
        return [d for d in self.list(document_type) if d.normalized_status == wanted]

    # -------------------------------------------------------------------
    # Scrittura
    # -------------------------------------------------------------------

    def save(
        self,
        document_type: Union[str, DocumentType],
        document: DocumentInput,
    ) -> BaseDocument:
        """
        Crea o aggiorna un documento.

        Steps:
        1. Valida il payload (campi obbligatori mancanti -> ValidationError)
        2. Ricalcola righe e totali
        3. Senza id: nuovo id e created_at; id esistente: sostituzione
           e updated_at; id sconosciuto: nuovo record con l'id fornito
        4. Riscrive la lista del tipo

        Args:
            document_type: Tipo documento
            document: Documento o dizionario (camelCase o snake_case)

        Returns:
            BaseDocument: Documento salvato

        Raises:
            BusinessValidationError: Se il documento non è valido
            StorageError: Se lo storage non è leggibile o non accetta la scrittura
        """
        document_type = DocumentType.parse(document_type)
        parsed = apply_totals(parse_document(document_type, document))
        key = STORAGE_KEYS[document_type]
        now = self._clock()

        with self.storage.lock(key):
            records = self.storage.read_json_for_update(key, [])
            index = self._index_of(records, parsed.id) if parsed.id else None

            if index is not None:
                created_at = parsed.created_at or _parse_timestamp(records[index].get("createdAt"))
                saved = parsed.model_copy(update={"created_at": created_at, "updated_at": now})
                records[index] = saved.to_storage()
                action = "aggiornato"
            else:
                update = {
                    "id": parsed.id or uuid.uuid4().hex,
                    "created_at": now,
                    "updated_at": now,
                }
                if not parsed.document_number and self.numbering is not None:
                    update["document_number"] = self.numbering.next(document_type).number
                saved = parsed.model_copy(update=update)
                records.append(saved.to_storage())
                action = "creato"

            self.storage.write_json(key, records)

        logger.info(
            "Documento %s %s %s (%s)",
            document_type.value,
            saved.document_number,
            action,
            saved.id,
        )
        return saved

    def delete(self, document_type: Union[str, DocumentType], document_id: str) -> bool:
        """
        Elimina il documento. Restituisce False se non esiste.

        Raises:
            StorageError: Se lo storage non è leggibile
        """
        document_type = DocumentType.parse(document_type)
        key = STORAGE_KEYS[document_type]

        with self.storage.lock(key):
            records = self.storage.read_json_for_update(key, [])
            remaining = [r for r in records if not (isinstance(r, dict) and r.get("id") == document_id)]
            if len(remaining) == len(records):
                return False
            self.storage.write_json(key, remaining)

        logger.info("Documento %s %s eliminato", document_type.value, document_id)
        return True

    def update_status(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
        status: str,
    ) -> BaseDocument:
        """
        Aggiorna lo stato del documento senza validare la transizione.

        La validazione delle transizioni è compito di DocumentWorkflow.

        Raises:
            NotFoundError: Se il documento non esiste
            StorageError: Se lo storage non è leggibile
        """
        document_type = DocumentType.parse(document_type)
        key = STORAGE_KEYS[document_type]

        with self.storage.lock(key):
            records = self.storage.read_json_for_update(key, [])
            index = self._index_of(records, document_id)
            if index is None:
                raise NotFoundError(
                    f"Documento {document_type.value} {document_id} non trovato"
                )
            document = parse_document(document_type, records[index])
            return self.save(document_type, document.model_copy(update={"status": status}))

    # -------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------

    def export_all(self) -> dict[str, Any]:
        """Esporta tutte le liste: {exportDate, version, data: {tipo: [documenti]}}."""
        return {
            "exportDate": self._clock().isoformat(),
            "version": BACKUP_VERSION,
            "data": {
                document_type.value: self._load(document_type)
                for document_type in STORAGE_KEYS
            },
        }

    def import_documents(self, payload: dict[str, Any]) -> dict[str, int]:
        """
        Ripristina le liste da un export. I tipi presenti sostituiscono
        quelli salvati; tipi sconosciuti o valori non lista sono ignorati.

        Returns:
            dict: Numero di documenti importati per tipo

        Raises:
            BusinessValidationError: Se il payload non contiene la sezione data
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise BusinessValidationError(
                "Formato di import non valido: sezione 'data' mancante",
                error_code="INVALID_BACKUP_FORMAT",
            )

        imported = {}
        for raw_type, documents in data.items():
            try:
                document_type = DocumentType.parse(raw_type)
            except BusinessValidationError:
                logger.warning("Tipo '%s' ignorato durante l'import", raw_type)
                continue
            if not isinstance(documents, list):
                logger.warning("Valore non lista per '%s' ignorato durante l'import", raw_type)
                continue
            key = STORAGE_KEYS[document_type]
            with self.storage.lock(key):
                self.storage.write_json(key, documents)
            imported[document_type.value] = len(documents)

        logger.info("Import documenti completato: %s", imported)
        return imported

    def clear_all(self) -> None:
        """Elimina tutte le liste di documenti."""
        for document_type, key in STORAGE_KEYS.items():
            with self.storage.lock(key):
                self.storage.delete(key)
        logger.warning("Tutti i documenti sono stati eliminati")

    def get_storage_stats(self) -> dict[str, int]:
        """Numero di documenti salvati per tipo."""
        return {
            document_type.value: len(self._load(document_type))
            for document_type in STORAGE_KEYS
        }

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _load(self, document_type: DocumentType) -> list[Any]:
        return self.storage.read_json(STORAGE_KEYS[document_type], []).value

    @staticmethod
    def _index_of(records: list[Any], document_id: str) -> Optional[int]:
        for index, record in enumerate(records):
            if isinstance(record, dict) and record.get("id") == document_id:
                return index
        return None
