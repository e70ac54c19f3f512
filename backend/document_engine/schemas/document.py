"""
Schemas Pydantic per i Documenti Commerciali
Progetto: Document Engine (Gestionale Documenti)

Contiene:
- Enums: DocumentType, TaxType, stati per tipo documento
- Value object: LineItem, TaxSettings, Company, Customer, Vendor, SignatureRef
- BaseDocument e varianti (Quote, SalesOrder, Invoice, PaymentReceipt,
  PurchaseOrder, DeliveryNote, GoodsReceivingVoucher, FinancialReport)
- parse_document: validazione di un payload in base al tipo documento

I documenti sono serializzati in camelCase (by_alias=True) nello storage.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from document_engine.core.config import settings
from document_engine.core.exceptions import BusinessValidationError


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class DocumentType(str, Enum):
    """Tipi di documento commerciale gestiti dal motore."""
    QUOTE = "quote"
    SALES_ORDER = "sales-order"
    INVOICE = "invoice"
    PURCHASE_ORDER = "purchase-order"
    DELIVERY_NOTE = "delivery-note"
    PAYMENT_RECEIPT = "payment-receipt"
    GOODS_RECEIVING_VOUCHER = "goods-receiving-voucher"
    FINANCIAL_REPORT = "financial-report"

    @classmethod
    def parse(cls, value: Union[str, "DocumentType"]) -> "DocumentType":
        """
        Converte una stringa in DocumentType.

        Accetta anche le varianti con underscore e gli alias storici
        (quotation, sales_order, grv, receipt).

        Raises:
            BusinessValidationError: Se il tipo non è riconosciuto
        """
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower().replace("_", "-")
        normalized = _DOCUMENT_TYPE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise BusinessValidationError(
                f"Tipo documento non supportato: '{value}'",
                error_code="UNKNOWN_DOCUMENT_TYPE",
            )


_DOCUMENT_TYPE_ALIASES = {
    "quotation": "quote",
    "sales-orders": "sales-order",
    "grv": "goods-receiving-voucher",
    "receipt": "payment-receipt",
}


class TaxType(str, Enum):
    """Modalità di calcolo dell'imposta."""
    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"
    PER_ITEM = "per_item"
    OVERALL = "overall"


class QuoteStatus(str, Enum):
    """Stati di un preventivo."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    CONVERTED = "converted"


class SalesOrderStatus(str, Enum):
    """Stati di un ordine di vendita."""
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    """Stati di una fattura."""
    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentReceiptStatus(str, Enum):
    """Stati di una ricevuta di pagamento."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSED = "processed"


class PurchaseOrderStatus(str, Enum):
    """Stati di un ordine di acquisto."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    AUTHORIZED = "authorized"


class ApprovalStatus(str, Enum):
    """Esito dell'approvazione di un ordine di acquisto."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeliveryNoteStatus(str, Enum):
    """Stati di una bolla di consegna."""
    PENDING = "pending"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"


class GoodsReceivingStatus(str, Enum):
    """Stati di un buono di ricevimento merci."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"


def normalize_status(value: Any) -> str:
    """Normalizza uno stato: stringa, senza spazi, minuscola."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().lower()


# -------------------------------------------------------------------
# Base model
# -------------------------------------------------------------------

class DocumentModel(BaseModel):
    """Base comune: alias camelCase in ingresso e in uscita."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_storage(self) -> dict[str, Any]:
        """Dizionario JSON-compatibile in camelCase, come salvato nello storage."""
        return self.model_dump(mode="json", by_alias=True)


def default_tax_settings() -> "TaxSettings":
    return TaxSettings(
        type=TaxType(settings.default_tax_type),
        default_rate=settings.default_tax_rate,
    )


# -------------------------------------------------------------------
# Value object
# -------------------------------------------------------------------

class TaxSettings(DocumentModel):
    """Impostazioni fiscali applicate al documento alla creazione."""

    type: TaxType = Field(
        default=TaxType.EXCLUSIVE,
        description="Modalità di calcolo imposta",
    )
    default_rate: Decimal = Field(
        default=Decimal("16"),
        ge=0,
        le=100,
        description="Aliquota di default in percentuale",
    )
    custom_rates: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Aliquote per categoria di articolo",
    )


class LineItem(DocumentModel):
    """
    Riga del documento.

    total e tax_amount sono derivati: vengono ricalcolati dal
    TaxCalculator a ogni salvataggio o conversione.
    """

    id: str = Field(
        default_factory=lambda: f"item-{uuid.uuid4().hex[:12]}",
        description="Identificativo riga",
    )
    product_id: Optional[str] = Field(None, description="Riferimento articolo a catalogo")
    item_code: str = Field("", description="Codice articolo")
    description: str = Field(..., min_length=1, description="Descrizione della riga")
    quantity: Decimal = Field(..., ge=0, description="Quantità")
    unit_price: Decimal = Field(Decimal("0"), description="Prezzo unitario")
    total: Decimal = Field(Decimal("0"), description="Totale riga (derivato)")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Aliquota riga")
    tax_amount: Optional[Decimal] = Field(None, description="Imposta riga (derivata)")
    unit: Optional[str] = Field(None, description="Unità di misura")
    category: Optional[str] = Field(None, description="Categoria per aliquote personalizzate")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """La descrizione non può essere vuota."""
        if not v.strip():
            raise ValueError("La descrizione della riga è obbligatoria")
        return v.strip()


class Company(DocumentModel):
    """Dati aziendali copiati nel documento al momento della creazione."""

    name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""
    email: str = ""
    tax_id: str = ""
    logo: Optional[str] = None
    website: Optional[str] = None
    registration_number: Optional[str] = None


class Customer(DocumentModel):
    """Dati del cliente copiati nel documento."""

    id: Optional[str] = None
    name: str = ""
    company: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    phone: str = ""
    email: str = ""
    tax_id: str = ""
    payment_terms: str = ""
    credit_limit: Decimal = Decimal("0")
    industry: Optional[str] = None


class Vendor(Customer):
    """Dati del fornitore copiati nel documento."""

    expected_delivery: Optional[datetime.date] = None


class SignatureRef(DocumentModel):
    """Riferimento alla firma autorizzata da stampare sul documento."""

    enabled: bool = False
    signature_id: Optional[str] = None
    document_type: Optional[str] = None
    signer_name: Optional[str] = None
    signer_title: Optional[str] = None


# -------------------------------------------------------------------
# Documenti
# -------------------------------------------------------------------

class BaseDocument(DocumentModel):
    """
    Campi comuni a tutti i documenti.

    Invarianti:
    - subtotal = somma(quantity x unit_price)
    - total e tax_amount coerenti con tax_settings.type, al netto di discount
    """

    document_type: ClassVar[DocumentType]
    has_line_items: ClassVar[bool] = True
    initial_status: ClassVar[str] = "draft"

    id: Optional[str] = Field(None, description="Identificativo opaco")
    document_number: str = Field("", description="Numero progressivo formattato")
    date: datetime.date = Field(default_factory=datetime.date.today)
    company: Company = Field(default_factory=Company)
    items: list[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    discount: Decimal = Field(Decimal("0"), ge=0, description="Sconto sul totale documento")
    currency: str = Field(default_factory=lambda: settings.default_currency)
    tax_settings: TaxSettings = Field(default_factory=default_tax_settings)
    notes: Optional[str] = None
    terms: Optional[str] = None
    signature: Optional[SignatureRef] = None
    status: str = "draft"
    source_document_id: Optional[str] = None
    source_document_type: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @property
    def party(self) -> Optional[Customer]:
        """Controparte del documento (cliente o fornitore)."""
        return getattr(self, "customer", None) or getattr(self, "vendor", None)

    @property
    def normalized_status(self) -> str:
        return normalize_status(self.status)


class Quote(BaseDocument):
    """Preventivo."""

    document_type: ClassVar[DocumentType] = DocumentType.QUOTE

    customer: Customer = Field(default_factory=Customer)
    valid_until: Optional[datetime.date] = None


class SalesOrder(BaseDocument):
    """Ordine di vendita."""

    document_type: ClassVar[DocumentType] = DocumentType.SALES_ORDER
    initial_status: ClassVar[str] = SalesOrderStatus.PENDING.value

    customer: Customer = Field(default_factory=Customer)
    expected_delivery: Optional[datetime.date] = None
    delivery_address: Optional[str] = None


class Invoice(BaseDocument):
    """Fattura di vendita."""

    document_type: ClassVar[DocumentType] = DocumentType.INVOICE
    initial_status: ClassVar[str] = InvoiceStatus.PENDING.value

    customer: Customer = Field(default_factory=Customer)
    due_date: Optional[datetime.date] = None
    paid_amount: Decimal = Decimal("0")
    balance_amount: Decimal = Decimal("0")


class PaymentReceipt(BaseDocument):
    """Ricevuta di pagamento."""

    document_type: ClassVar[DocumentType] = DocumentType.PAYMENT_RECEIPT
    initial_status: ClassVar[str] = PaymentReceiptStatus.PENDING.value

    customer: Customer = Field(default_factory=Customer)
    payment_method: str = "cash"
    reference: str = ""
    amount_paid: Decimal = Decimal("0")
    invoice_total: Optional[Decimal] = None
    related_invoice: Optional[str] = None


class PurchaseOrder(BaseDocument):
    """Ordine di acquisto verso fornitore."""

    document_type: ClassVar[DocumentType] = DocumentType.PURCHASE_ORDER

    vendor: Vendor = Field(default_factory=Vendor)
    expected_delivery: Optional[datetime.date] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING


class DeliveryNote(BaseDocument):
    """Bolla di consegna: quantità senza prezzi."""

    document_type: ClassVar[DocumentType] = DocumentType.DELIVERY_NOTE
    initial_status: ClassVar[str] = DeliveryNoteStatus.PENDING.value

    customer: Customer = Field(default_factory=Customer)
    delivery_date: Optional[datetime.date] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_address: str = ""
    received_by: Optional[str] = None
    delivered_by: Optional[str] = None
    related_order: Optional[str] = None


class GoodsReceivingVoucher(BaseDocument):
    """Buono di ricevimento merci (GRV)."""

    document_type: ClassVar[DocumentType] = DocumentType.GOODS_RECEIVING_VOUCHER
    initial_status: ClassVar[str] = GoodsReceivingStatus.PENDING.value

    vendor: Vendor = Field(default_factory=Vendor)
    purchase_order_id: Optional[str] = None
    received_date: datetime.date = Field(default_factory=datetime.date.today)
    quality_check: Optional[str] = None


class ReportTransaction(DocumentModel):
    """Movimento riportato in un report finanziario."""

    date: datetime.date
    description: str
    type: str = Field("credit", pattern="^(credit|debit)$")
    amount: Decimal = Decimal("0")


class BudgetLine(DocumentModel):
    """Riga di analisi budget."""

    category: str
    budgeted: Decimal = Decimal("0")
    actual: Decimal = Decimal("0")
    variance: Decimal = Decimal("0")


class FinancialReport(BaseDocument):
    """Report finanziario: nessuna riga articolo, solo righe aggregate."""

    document_type: ClassVar[DocumentType] = DocumentType.FINANCIAL_REPORT
    has_line_items: ClassVar[bool] = False

    report_type: str = "profit-loss"
    period_start: Optional[datetime.date] = None
    period_end: Optional[datetime.date] = None
    total_revenue: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    cash_flow: Decimal = Decimal("0")
    transactions: list[ReportTransaction] = Field(default_factory=list)
    budget_analysis: list[BudgetLine] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def validate_no_items(cls, v: list[LineItem]) -> list[LineItem]:
        if v:
            raise ValueError("Un report finanziario non ha righe articolo")
        return v


# -------------------------------------------------------------------
# Dispatch per tipo
# -------------------------------------------------------------------

DOCUMENT_MODELS: dict[DocumentType, type[BaseDocument]] = {
    DocumentType.QUOTE: Quote,
    DocumentType.SALES_ORDER: SalesOrder,
    DocumentType.INVOICE: Invoice,
    DocumentType.PURCHASE_ORDER: PurchaseOrder,
    DocumentType.DELIVERY_NOTE: DeliveryNote,
    DocumentType.PAYMENT_RECEIPT: PaymentReceipt,
    DocumentType.GOODS_RECEIVING_VOUCHER: GoodsReceivingVoucher,
    DocumentType.FINANCIAL_REPORT: FinancialReport,
}


def model_for(document_type: Union[str, DocumentType]) -> type[BaseDocument]:
    """Restituisce la classe pydantic del tipo documento."""
    return DOCUMENT_MODELS[DocumentType.parse(document_type)]


def parse_document(
    document_type: Union[str, DocumentType],
    data: Union[dict[str, Any], BaseDocument],
) -> BaseDocument:
    """
    Valida un payload come documento del tipo indicato.

    Args:
        document_type: Tipo documento
        data: Dizionario (camelCase o snake_case) o documento già validato

    Returns:
        BaseDocument: Istanza della variante corretta

    Raises:
        BusinessValidationError: Se mancano campi obbligatori o i dati non sono validi
    """
    model = model_for(document_type)
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in errors)
        raise BusinessValidationError(
            f"Documento {model.document_type.value} non valido: {fields}",
            error_code="DOCUMENT_VALIDATION_ERROR",
            extra={"errors": errors},
        )


class StatusUpdate(BaseModel):
    """Payload per l'aggiornamento di stato."""

    status: str = Field(..., min_length=1, description="Nuovo stato")


class PaymentCreate(BaseModel):
    """Payload per la registrazione di un pagamento su fattura."""

    amount: Decimal = Field(..., gt=0, description="Importo incassato")
    payment_method: str = Field("cash", description="Metodo di pagamento")
    reference: str = Field("", description="Riferimento del pagamento")
