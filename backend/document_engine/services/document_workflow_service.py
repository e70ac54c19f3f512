"""
Service per il Workflow documentale
Progetto: Document Engine (Gestionale Documenti)

Gestisce:
- la tabella delle conversioni tra tipi documento
  (Preventivo -> Ordine -> Fattura/Bolla -> Ricevuta)
- la tabella delle transizioni di stato per tipo documento
- la registrazione dei pagamenti su fattura

Gli stati sono confrontati sempre normalizzati (strip + minuscolo):
i dati in ingresso non sono garantiti puliti.
"""

import datetime
import logging
from decimal import Decimal
from typing import Any, Callable, NamedTuple, Optional, Protocol, Union

from document_engine.core.config import Settings, get_settings
from document_engine.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from document_engine.schemas.document import (
    BaseDocument,
    DeliveryNote,
    DeliveryNoteStatus,
    DocumentType,
    GoodsReceivingStatus,
    Invoice,
    InvoiceStatus,
    LineItem,
    PaymentReceipt,
    PaymentReceiptStatus,
    PurchaseOrderStatus,
    QuoteStatus,
    SalesOrder,
    SalesOrderStatus,
    TaxSettings,
    TaxType,
    model_for,
    normalize_status,
    parse_document,
)
from document_engine.schemas.workflow import (
    PaymentRecordResult,
    StatusChangeResult,
    WorkflowAction,
)
from document_engine.services.auto_numbering_service import AutoNumberingService
from document_engine.services.document_store import DocumentStore
from document_engine.services.tax_calculator import apply_totals

logger = logging.getLogger(__name__)


class RemoteDocumentSource(Protocol):
    """Sorgente remota in sola lettura per documenti non ancora migrati."""

    def fetch(self, document_type: DocumentType, document_id: str) -> Optional[dict[str, Any]]:
        ...


class ConversionRule(NamedTuple):
    """Regola di conversione tra due tipi documento."""
    source: DocumentType
    target: DocumentType
    allowed_statuses: frozenset[str]
    action: str
    label: str
    short_label: str
    # Stato assegnato al documento sorgente dopo la conversione
    marks_source_as: Optional[str]


CONVERSION_RULES: tuple[ConversionRule, ...] = (
    ConversionRule(
        source=DocumentType.QUOTE,
        target=DocumentType.SALES_ORDER,
        allowed_statuses=frozenset({QuoteStatus.ACCEPTED.value}),
        action="convert_to_sales_order",
        label="Convert to Sales Order",
        short_label="Make Sale Order",
        marks_source_as=QuoteStatus.CONVERTED.value,
    ),
    ConversionRule(
        source=DocumentType.SALES_ORDER,
        target=DocumentType.INVOICE,
        allowed_statuses=frozenset({SalesOrderStatus.CONFIRMED.value}),
        action="convert_to_invoice",
        label="Convert to Invoice",
        short_label="Make Invoice",
        marks_source_as=SalesOrderStatus.INVOICED.value,
    ),
    ConversionRule(
        source=DocumentType.SALES_ORDER,
        target=DocumentType.DELIVERY_NOTE,
        allowed_statuses=frozenset(
            {SalesOrderStatus.CONFIRMED.value, SalesOrderStatus.INVOICED.value}
        ),
        action="create_delivery_note",
        label="Create Delivery Note",
        short_label="Create DNote",
        marks_source_as=None,
    ),
    ConversionRule(
        source=DocumentType.INVOICE,
        target=DocumentType.PAYMENT_RECEIPT,
        allowed_statuses=frozenset(
            {
                InvoiceStatus.SENT.value,
                InvoiceStatus.PENDING.value,
                InvoiceStatus.PARTIAL.value,
                InvoiceStatus.OVERDUE.value,
            }
        ),
        action="record_payment",
        label="Record Payment Receipt",
        short_label="Make Receipt",
        marks_source_as=None,
    ),
)

# Transizioni di stato ammesse: stato corrente -> stati raggiungibili.
# Un tipo con tabella vuota accetta qualsiasi transizione.
STATUS_TRANSITIONS: dict[DocumentType, dict[str, frozenset[str]]] = {
    DocumentType.QUOTE: {
        "draft": frozenset({"sent", "cancelled"}),
        "sent": frozenset({"accepted", "rejected", "expired"}),
        "accepted": frozenset({"converted", "cancelled"}),
        "expired": frozenset({"sent"}),
        "rejected": frozenset(),
        "cancelled": frozenset(),
        "converted": frozenset(),
    },
    DocumentType.SALES_ORDER: {
        "draft": frozenset({"pending", "confirmed", "cancelled"}),
        "pending": frozenset({"confirmed", "cancelled"}),
        "confirmed": frozenset({"processing", "shipped", "invoiced", "cancelled"}),
        "processing": frozenset({"shipped", "cancelled"}),
        "shipped": frozenset({"delivered"}),
        "invoiced": frozenset({"processing", "shipped", "delivered"}),
        "delivered": frozenset(),
        "cancelled": frozenset(),
    },
    DocumentType.INVOICE: {
        "draft": frozenset({"sent", "pending", "cancelled"}),
        "sent": frozenset({"pending", "partial", "paid", "overdue"}),
        "pending": frozenset({"partial", "paid", "overdue", "cancelled"}),
        "partial": frozenset({"paid", "overdue"}),
        "overdue": frozenset({"partial", "paid"}),
        "paid": frozenset(),
        "cancelled": frozenset(),
    },
    DocumentType.PAYMENT_RECEIPT: {
        "pending": frozenset({"confirmed"}),
        "confirmed": frozenset({"processed"}),
        "processed": frozenset(),
    },
    DocumentType.PURCHASE_ORDER: {
        "draft": frozenset({"pending", "approved"}),
        "pending": frozenset({"approved"}),
        "approved": frozenset({"authorized"}),
        "authorized": frozenset(),
    },
    DocumentType.DELIVERY_NOTE: {
        "pending": frozenset({"dispatched", "delivered"}),
        "dispatched": frozenset({"delivered"}),
        "delivered": frozenset(),
    },
    DocumentType.GOODS_RECEIVING_VOUCHER: {
        "pending": frozenset({"approved"}),
        "approved": frozenset({"completed"}),
        "completed": frozenset(),
    },
    DocumentType.FINANCIAL_REPORT: {},
}

# Stati conosciuti per tipo (per la validazione dei nuovi stati)
KNOWN_STATUSES: dict[DocumentType, frozenset[str]] = {
    DocumentType.QUOTE: frozenset(s.value for s in QuoteStatus),
    DocumentType.SALES_ORDER: frozenset(s.value for s in SalesOrderStatus),
    DocumentType.INVOICE: frozenset(s.value for s in InvoiceStatus),
    DocumentType.PAYMENT_RECEIPT: frozenset(s.value for s in PaymentReceiptStatus),
    DocumentType.PURCHASE_ORDER: frozenset(s.value for s in PurchaseOrderStatus),
    DocumentType.DELIVERY_NOTE: frozenset(s.value for s in DeliveryNoteStatus),
    DocumentType.GOODS_RECEIVING_VOUCHER: frozenset(s.value for s in GoodsReceivingStatus),
    DocumentType.FINANCIAL_REPORT: frozenset(),
}

SOURCE_LABELS: dict[DocumentType, str] = {
    DocumentType.QUOTE: "quotation",
    DocumentType.SALES_ORDER: "sales order",
    DocumentType.INVOICE: "invoice",
    DocumentType.PURCHASE_ORDER: "purchase order",
    DocumentType.DELIVERY_NOTE: "delivery note",
    DocumentType.PAYMENT_RECEIPT: "payment receipt",
    DocumentType.GOODS_RECEIVING_VOUCHER: "goods receiving voucher",
    DocumentType.FINANCIAL_REPORT: "financial report",
}


def find_rule(
    source_type: Union[str, DocumentType],
    target_type: Union[str, DocumentType],
) -> Optional[ConversionRule]:
    """Regola di conversione tra i due tipi, None se non prevista."""
    source_type = DocumentType.parse(source_type)
    target_type = DocumentType.parse(target_type)
    for rule in CONVERSION_RULES:
        if rule.source == source_type and rule.target == target_type:
            return rule
    return None


class DocumentWorkflow:
    """
    Macchina a stati e conversioni tra documenti.

    Politica di riconversione (settings.workflow_allow_reconversion):
    - True: convertire di nuovo un documento già convertito è consentito
      e registrato come warning (permette di correggere errori)
    - False: la riconversione è rifiutata con ConflictError
    """

    def __init__(
        self,
        store: DocumentStore,
        numbering: AutoNumberingService,
        remote_source: Optional[RemoteDocumentSource] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.store = store
        self.numbering = numbering
        self.remote_source = remote_source
        self.settings = settings or get_settings()
        self._clock = clock or datetime.datetime.now

    # -------------------------------------------------------------------
    # Lookup sulla tabella delle conversioni
    # -------------------------------------------------------------------

    def can_convert(
        self,
        from_type: Union[str, DocumentType],
        to_type: Union[str, DocumentType],
        status: Any,
    ) -> bool:
        """True se un documento from_type nello stato indicato è convertibile in to_type."""
        try:
            rule = find_rule(from_type, to_type)
        except BusinessValidationError:
            return False
        return rule is not None and normalize_status(status) in rule.allowed_statuses

    def get_available_actions(
        self,
        document_type: Union[str, DocumentType],
        status: Any,
    ) -> list[WorkflowAction]:
        """Azioni di conversione disponibili per tipo e stato."""
        document_type = DocumentType.parse(document_type)
        normalized = normalize_status(status)
        return [
            WorkflowAction(
                action=rule.action,
                label=rule.label,
                short_label=rule.short_label,
                target_type=rule.target,
            )
            for rule in CONVERSION_RULES
            if rule.source == document_type and normalized in rule.allowed_statuses
        ]

    def get_next_document_types(
        self,
        document_type: Union[str, DocumentType],
        status: Any,
    ) -> list[DocumentType]:
        """Tipi documento producibili dal documento nello stato indicato."""
        return [action.target_type for action in self.get_available_actions(document_type, status)]

    def get_workflow_status_message(
        self,
        document_type: Union[str, DocumentType],
        status: Any,
    ) -> str:
        """Messaggio per la UI sullo stato del workflow."""
        document_type = DocumentType.parse(document_type)
        ready = bool(self.get_available_actions(document_type, status))

        if document_type == DocumentType.QUOTE:
            return (
                "Ready to convert to Sales Order"
                if ready
                else "Accept quotation to enable conversion"
            )
        if document_type == DocumentType.SALES_ORDER:
            return (
                "Ready to create Invoice and Delivery Note"
                if ready
                else "Confirm sales order to enable conversions"
            )
        if document_type == DocumentType.INVOICE:
            return "Ready to record payment" if ready else ""
        return ""

    # -------------------------------------------------------------------
    # Transizioni di stato
    # -------------------------------------------------------------------

    def is_valid_status_transition(
        self,
        document_type: Union[str, DocumentType],
        current_status: Any,
        new_status: Any,
    ) -> bool:
        """
        Verifica una transizione di stato sulla tabella del tipo.

        Uno stato corrente sconosciuto consente il passaggio a qualsiasi
        stato noto del tipo.
        """
        document_type = DocumentType.parse(document_type)
        table = STATUS_TRANSITIONS[document_type]
        current = normalize_status(current_status)
        target = normalize_status(new_status)

        if not target:
            return False
        if not table:
            return True
        if current == target:
            return True
        if current not in table:
            logger.warning(
                "Stato corrente sconosciuto '%s' per %s", current_status, document_type.value
            )
            return target in KNOWN_STATUSES[document_type]
        return target in table[current]

    def update_status(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
        new_status: str,
    ) -> StatusChangeResult:
        """
        Aggiorna lo stato di un documento validando la transizione.

        Returns:
            StatusChangeResult: documento aggiornato e azioni ora disponibili

        Raises:
            NotFoundError: Se il documento non esiste
            InvalidStateError: Se la transizione non è ammessa
        """
        document_type = DocumentType.parse(document_type)
        document = self.store.get_required(document_type, document_id)
        previous = document.status

        if not self.is_valid_status_transition(document_type, previous, new_status):
            raise InvalidStateError(
                f"Transizione di stato non consentita per {document_type.value} "
                f"{document.document_number}: '{previous}' -> '{new_status}'",
                status=previous,
                extra={"requested": new_status},
            )

        updated = self.store.update_status(document_type, document_id, normalize_status(new_status))
        actions = self.get_available_actions(document_type, updated.status)
        if actions:
            logger.info(
                "Documento %s ora convertibile: %s",
                updated.document_number,
                ", ".join(a.action for a in actions),
            )
        return StatusChangeResult(
            document=updated,
            previous_status=previous,
            available_actions=actions,
        )

    # -------------------------------------------------------------------
    # Conversioni
    # -------------------------------------------------------------------

    def convert(
        self,
        source_id: str,
        source_type: Union[str, DocumentType],
        target_type: Union[str, DocumentType],
    ) -> BaseDocument:
        """
        Converte un documento in un nuovo documento di un altro tipo.

        Steps:
        1. Carica la sorgente (storage locale, poi sorgente remota)
        2. Verifica la regola di conversione e lo stato normalizzato
        3. Costruisce il documento destinazione con numero nuovo
        4. Salva il nuovo documento
        5. Marca la sorgente (solo se locale)

        Args:
            source_id: Id del documento sorgente
            source_type: Tipo del documento sorgente
            target_type: Tipo del documento da produrre

        Returns:
            BaseDocument: Documento creato

        Raises:
            NotFoundError: Se la sorgente non esiste né in locale né in remoto
            BusinessValidationError: Se la conversione tra i tipi non è prevista
            InvalidStateError: Se lo stato della sorgente non consente la conversione
            ConflictError: Se la riconversione è disabilitata e la sorgente è già convertita
        """
        source_type = DocumentType.parse(source_type)
        target_type = DocumentType.parse(target_type)

        rule = find_rule(source_type, target_type)
        if rule is None:
            raise BusinessValidationError(
                f"Conversione da {source_type.value} a {target_type.value} non supportata",
                error_code="UNSUPPORTED_CONVERSION",
            )

        source, is_local = self._load_source(source_type, source_id)
        self._check_convertible(rule, source)

        if rule.target == DocumentType.PAYMENT_RECEIPT:
            result = self.record_payment(
                source.id,
                amount=source.balance_amount,
                payment_method="cash",
                reference="",
                invoice=source,
            )
            return result.receipt

        target = self._build_target(rule, source)
        saved = self.store.save(target_type, target)

        if is_local and rule.marks_source_as:
            self.store.update_status(source_type, source.id, rule.marks_source_as)

        logger.info(
            "Convertito %s %s in %s %s",
            source_type.value,
            source.document_number,
            target_type.value,
            saved.document_number,
        )
        return saved

    def record_payment(
        self,
        invoice_id: str,
        amount: Decimal,
        payment_method: str = "cash",
        reference: str = "",
        invoice: Optional[Invoice] = None,
    ) -> PaymentRecordResult:
        """
        Registra un pagamento su fattura.

        Crea una ricevuta in stato pending e aggiorna importo pagato,
        saldo e stato della fattura (paid se saldata, altrimenti partial).

        Raises:
            NotFoundError: Se la fattura non esiste
            BusinessValidationError: Se l'importo non è positivo
            InvalidStateError: Se la fattura non accetta pagamenti
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise BusinessValidationError("L'importo del pagamento deve essere positivo")

        if invoice is None:
            invoice, _ = self._load_source(DocumentType.INVOICE, invoice_id)
        payable = find_rule(DocumentType.INVOICE, DocumentType.PAYMENT_RECEIPT).allowed_statuses
        if invoice.normalized_status not in payable:
            raise InvalidStateError(
                f"La fattura {invoice.document_number} non accetta pagamenti "
                f"(stato: '{invoice.status}')",
                status=invoice.status,
            )

        receipt = PaymentReceipt(
            document_number=self.numbering.next(DocumentType.PAYMENT_RECEIPT).number,
            date=self._today(),
            company=invoice.company.model_copy(deep=True),
            customer=invoice.customer.model_copy(deep=True),
            currency=invoice.currency,
            tax_settings=invoice.tax_settings.model_copy(deep=True),
            payment_method=payment_method,
            reference=reference,
            amount_paid=amount,
            invoice_total=invoice.total,
            related_invoice=invoice.document_number,
            status=PaymentReceiptStatus.PENDING.value,
            notes=f"Payment for Invoice {invoice.document_number}",
            source_document_id=invoice.id,
            source_document_type=DocumentType.INVOICE.value,
        )
        receipt = self.store.save(DocumentType.PAYMENT_RECEIPT, receipt)

        paid_amount = invoice.paid_amount + amount
        status = InvoiceStatus.PAID if paid_amount >= invoice.total else InvoiceStatus.PARTIAL
        updated_invoice = self.store.save(
            DocumentType.INVOICE,
            invoice.model_copy(update={"paid_amount": paid_amount, "status": status.value}),
        )

        logger.info(
            "Pagamento di %s registrato su fattura %s (ricevuta %s, stato %s)",
            amount,
            invoice.document_number,
            receipt.document_number,
            status.value,
        )
        return PaymentRecordResult(receipt=receipt, invoice=updated_invoice)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _today(self) -> datetime.date:
        return self._clock().date()

    def _load_source(
        self,
        document_type: DocumentType,
        document_id: str,
    ) -> tuple[BaseDocument, bool]:
        document = self.store.get(document_type, document_id)
        if document is not None:
            return document, True

        if self.remote_source is not None:
            raw = self.remote_source.fetch(document_type, document_id)
            if raw is not None:
                logger.info(
                    "Documento %s %s letto dalla sorgente remota", document_type.value, document_id
                )
                return apply_totals(parse_document(document_type, raw)), False

        raise NotFoundError(f"Documento {document_type.value} {document_id} non trovato")

    def _check_convertible(self, rule: ConversionRule, source: BaseDocument) -> None:
        status = source.normalized_status

        if rule.marks_source_as and status == rule.marks_source_as:
            if not self.settings.workflow_allow_reconversion:
                raise ConflictError(
                    f"{SOURCE_LABELS[rule.source].capitalize()} {source.document_number} "
                    f"già convertito",
                    error_code="ALREADY_CONVERTED",
                )
            logger.warning(
                "Riconversione di %s %s già convertito in %s",
                rule.source.value,
                source.document_number,
                rule.target.value,
            )
            return

        if status not in rule.allowed_statuses:
            raise InvalidStateError(
                f"Impossibile convertire {rule.source.value} {source.document_number} "
                f"in {rule.target.value}: stato attuale \"{source.status}\" "
                f"(normalizzato: \"{status}\"), richiesto: {', '.join(sorted(rule.allowed_statuses))}",
                status=source.status,
            )

    def _build_target(self, rule: ConversionRule, source: BaseDocument) -> BaseDocument:
        target_model = model_for(rule.target)
        zero_prices = rule.target == DocumentType.DELIVERY_NOTE
        party = source.party

        data: dict[str, Any] = {
            "document_number": self.numbering.next(rule.target).number,
            "date": self._today(),
            "company": source.company.model_copy(deep=True),
            "items": [self._copy_item(item, zero_prices) for item in source.items],
            "currency": source.currency,
            "tax_settings": (
                TaxSettings(type=TaxType.EXCLUSIVE, default_rate=Decimal("0"))
                if zero_prices
                else source.tax_settings.model_copy(deep=True)
            ),
            "terms": source.terms,
            "status": target_model.initial_status,
            "notes": f"Generated from {SOURCE_LABELS[rule.source]} {source.document_number}",
            "source_document_id": source.id,
            "source_document_type": rule.source.value,
        }
        if party is not None:
            data["customer"] = party.model_copy(deep=True)
        if not zero_prices:
            data["discount"] = source.discount

        if rule.target == DocumentType.INVOICE:
            data["due_date"] = self._today() + datetime.timedelta(days=self.settings.invoice_due_days)
            data["paid_amount"] = Decimal("0")
        elif rule.target == DocumentType.DELIVERY_NOTE:
            data["delivery_address"] = self._delivery_address(source)
            data["related_order"] = source.document_number
        elif rule.target == DocumentType.SALES_ORDER:
            data["delivery_address"] = self._delivery_address(source) or None

        return apply_totals(target_model(**data))

    @staticmethod
    def _copy_item(item: LineItem, zero_prices: bool) -> LineItem:
        data = item.model_dump(exclude={"id", "total", "tax_amount"})
        if zero_prices:
            data.update({"unit_price": Decimal("0"), "tax_rate": Decimal("0")})
        return LineItem(**data)

    @staticmethod
    def _delivery_address(source: BaseDocument) -> str:
        if isinstance(source, (SalesOrder, DeliveryNote)) and source.delivery_address:
            return source.delivery_address
        party = source.party
        if party is None:
            return ""
        return ", ".join(part for part in (party.address, party.city, party.state, party.zip) if part)
