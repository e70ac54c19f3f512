"""
Service per il rendering HTML dei documenti con Jinja2
Progetto: Document Engine (Gestionale Documenti)

render() è una funzione pura di documento, tipo, impostazioni risolte e
profilo aziendale: nessun accesso allo storage e nessun ricalcolo di
imposte o numerazione. Le sezioni sono composte in base a
settings.elements.<sezione>.enabled.
"""

import datetime
import logging
import os
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from document_engine.schemas.company import CompanyProfile
from document_engine.schemas.customization import CustomizationSettings
from document_engine.schemas.document import (
    BaseDocument,
    DocumentType,
    TaxType,
)
from document_engine.services.formatting import (
    format_amount,
    format_currency,
    format_date,
    format_percent,
    format_quantity,
    number_to_words,
)

logger = logging.getLogger(__name__)

# Path alla cartella templates
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")


class RenderTarget(str, Enum):
    """Superficie di destinazione del markup."""
    SCREEN = "screen"
    PRINT = "print"


class DocumentPresentation(NamedTuple):
    """Etichette e template specifici di un tipo documento."""
    title: str
    number_label: str
    date_label: str
    party_label: str
    department: str
    signer_title: str
    body_template: str


PRESENTATION: dict[DocumentType, DocumentPresentation] = {
    DocumentType.QUOTE: DocumentPresentation(
        title="Quotation",
        number_label="Quote #:",
        date_label="Quote Date:",
        party_label="Customer Information",
        department="Sales",
        signer_title="Sales Manager",
        body_template="body_line_items.html",
    ),
    DocumentType.SALES_ORDER: DocumentPresentation(
        title="Sales Order",
        number_label="SO Number:",
        date_label="Order Date:",
        party_label="Customer Information",
        department="Sales",
        signer_title="Sales Manager",
        body_template="body_line_items.html",
    ),
    DocumentType.INVOICE: DocumentPresentation(
        title="Invoice",
        number_label="Invoice #:",
        date_label="Invoice Date:",
        party_label="Customer Information",
        department="Finance",
        signer_title="Accounts Manager",
        body_template="body_line_items.html",
    ),
    DocumentType.PURCHASE_ORDER: DocumentPresentation(
        title="Purchase Order",
        number_label="PO Number:",
        date_label="Order Date:",
        party_label="Vendor Information",
        department="Purchasing",
        signer_title="Procurement Manager",
        body_template="body_line_items.html",
    ),
    DocumentType.DELIVERY_NOTE: DocumentPresentation(
        title="Delivery Note",
        number_label="Delivery #:",
        date_label="Delivery Date:",
        party_label="Customer Information",
        department="Sales",
        signer_title="Dispatch Officer",
        body_template="body_delivery_note.html",
    ),
    DocumentType.PAYMENT_RECEIPT: DocumentPresentation(
        title="Payment Receipt",
        number_label="Receipt #:",
        date_label="Receipt Date:",
        party_label="Customer Information",
        department="Finance",
        signer_title="Finance Manager",
        body_template="body_payment_receipt.html",
    ),
    DocumentType.GOODS_RECEIVING_VOUCHER: DocumentPresentation(
        title="Goods Receiving Voucher",
        number_label="GRV Number:",
        date_label="Received Date:",
        party_label="Vendor Information",
        department="Purchasing",
        signer_title="Stores Manager",
        body_template="body_line_items.html",
    ),
    DocumentType.FINANCIAL_REPORT: DocumentPresentation(
        title="Financial Report",
        number_label="Report #:",
        date_label="Report Date:",
        party_label="",
        department="Finance",
        signer_title="Finance Manager",
        body_template="body_financial_report.html",
    ),
}

_missing_presentation = set(DocumentType) - set(PRESENTATION)
if _missing_presentation:
    raise RuntimeError(f"Presentazione mancante per: {sorted(t.value for t in _missing_presentation)}")

BANK_FIELD_LABELS = {
    "bank_name": "Bank",
    "account_name": "Account Name",
    "account_number": "Account Number",
    "branch_code": "Branch Code",
    "swift_code": "SWIFT Code",
}

MOBILE_MONEY_FIELD_LABELS = {
    "pay_bill_number": "Paybill",
    "till_number": "Till Number",
    "business_short_code": "Business Short Code",
    "account_reference": "Account Reference",
    "business_name": "Business Name",
}

# Documenti di vendita con clausola di proprietà e importo in lettere
SALES_DOCUMENTS = frozenset(
    {DocumentType.QUOTE, DocumentType.SALES_ORDER, DocumentType.INVOICE}
)
VENDOR_DOCUMENTS = frozenset(
    {DocumentType.PURCHASE_ORDER, DocumentType.GOODS_RECEIVING_VOUCHER}
)


class Cell(NamedTuple):
    value: str
    css_class: str = ""


class Row(NamedTuple):
    label: str
    value: str
    css_class: str = ""


class PaymentStatus(NamedTuple):
    """Stato di pagamento stampato sulla ricevuta."""
    label: str
    percentage: int
    overpaid: bool
    balance: Decimal
    credit: Decimal


def payment_status(amount_paid: Decimal, invoice_total: Optional[Decimal]) -> PaymentStatus:
    """
    Stato della ricevuta rispetto al totale fattura.

    Totale assente o zero vale PAID IN FULL; sopra il 100% (arrotondato)
    OVERPAID; altrimenti 'N% PAID'.
    """
    paid = amount_paid or Decimal("0")
    total = invoice_total or Decimal("0")
    remaining = total - paid
    balance = max(remaining, Decimal("0"))
    credit = max(-remaining, Decimal("0")) if total else Decimal("0")

    if total <= 0:
        return PaymentStatus("PAID IN FULL", 100, False, Decimal("0"), Decimal("0"))

    percentage = int((paid / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if percentage > 100:
        return PaymentStatus("OVERPAID", percentage, True, Decimal("0"), credit)
    if percentage == 100:
        return PaymentStatus("PAID IN FULL", 100, False, balance, Decimal("0"))
    return PaymentStatus(f"{percentage}% PAID", percentage, False, balance, Decimal("0"))


class DocumentRenderer:
    """
    Genera il markup HTML completo (foglio di stile incluso) di un documento.

    Le impostazioni devono essere già risolte dal CustomizationResolver:
    il renderer non applica default propri.
    """

    def __init__(
        self,
        templates_dir: str = TEMPLATES_DIR,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._clock = clock or datetime.datetime.now

    def render(
        self,
        document: BaseDocument,
        document_type: Union[str, DocumentType],
        settings: CustomizationSettings,
        target: RenderTarget = RenderTarget.SCREEN,
        company_profile: Optional[CompanyProfile] = None,
    ) -> str:
        """
        Genera l'HTML del documento.

        Args:
            document: Documento con totali già calcolati
            document_type: Tipo documento (seleziona etichette e corpo)
            settings: Impostazioni di personalizzazione risolte
            target: SCREEN o PRINT (direttive di stampa nel CSS)
            company_profile: Dati di pagamento e firmatari

        Returns:
            str: Documento HTML completo
        """
        document_type = DocumentType.parse(document_type)
        presentation = PRESENTATION[document_type]
        profile = company_profile or CompanyProfile()
        currency = document.currency
        now = self._clock()

        context = {
            "document": document,
            "document_type": document_type.value,
            "presentation": presentation,
            "title": presentation.title,
            "settings": settings,
            "elements": settings.elements,
            "styles": self.render_styles(settings, target),
            "company": self._company(document, profile),
            "party": document.party if presentation.party_label else None,
            "party_city_line": self._party_city_line(document),
            "info_rows": self._info_rows(document, document_type, settings),
            "columns": self._item_columns(document, settings),
            "rows": self._item_rows(document, settings),
            "totals_rows": self._totals_rows(document, settings),
            "payment": self._payment_block(document_type, settings, profile),
            "signature": self._signature_block(document, document_type, settings, profile),
            "amount_in_words": (
                f"{number_to_words(document.total)} {currency}"
                if document_type in SALES_DOCUMENTS | {DocumentType.PAYMENT_RECEIPT}
                else ""
            ),
            "receipt_status": (
                self._receipt_status(document)
                if document_type == DocumentType.PAYMENT_RECEIPT
                else None
            ),
            "show_qr": settings.elements.qr_code.enabled and document_type == DocumentType.INVOICE,
            "generated_at": f"{format_date(now)} {now.strftime('%H:%M')}",
            "print_date": format_date(now),
            "format_amount": format_amount,
            "format_quantity": format_quantity,
            "format_currency": lambda value: format_currency(value, currency),
            "format_date": format_date,
        }

        template = self.env.get_template("document.html")
        html = template.render(context)
        logger.debug(
            "Renderizzato %s %s (%d righe)",
            document_type.value,
            document.document_number,
            len(document.items),
        )
        return html

    def render_styles(
        self,
        settings: CustomizationSettings,
        target: RenderTarget = RenderTarget.SCREEN,
    ) -> str:
        """Foglio di stile derivato dalle impostazioni."""
        template = self.env.get_template("styles.css.j2")
        return template.render(
            settings=settings,
            elements=settings.elements,
            is_print=target == RenderTarget.PRINT,
            force_colors=target == RenderTarget.PRINT or settings.print_options.show_colors,
        )

    # -------------------------------------------------------------------
    # Sezioni
    # -------------------------------------------------------------------

    @staticmethod
    def _company(document: BaseDocument, profile: CompanyProfile):
        return document.company if document.company.name else profile.company

    @staticmethod
    def _party_city_line(document: BaseDocument) -> str:
        party = document.party
        if party is None:
            return ""
        return ", ".join(part for part in (party.city, party.state, party.zip) if part)

    @staticmethod
    def _info_rows(
        document: BaseDocument,
        document_type: DocumentType,
        settings: CustomizationSettings,
    ) -> list[Row]:
        info = settings.elements.document_info
        presentation = PRESENTATION[document_type]
        rows = []

        if info.show_document_number:
            rows.append(Row(presentation.number_label, document.document_number))
        if info.show_date:
            shown_date = getattr(document, "received_date", None) or document.date
            rows.append(Row(presentation.date_label, format_date(shown_date)))

        due_date = getattr(document, "due_date", None)
        if info.show_due_date and due_date:
            rows.append(Row("Due Date:", format_date(due_date)))
        valid_until = getattr(document, "valid_until", None)
        if info.show_valid_until and valid_until:
            rows.append(Row("Valid Until:", format_date(valid_until)))

        expected = getattr(document, "expected_delivery", None)
        if expected:
            rows.append(Row("Expected Delivery:", format_date(expected)))
        approval = getattr(document, "approval_status", None)
        if approval:
            rows.append(Row("Approval:", str(getattr(approval, "value", approval)).upper()))
        related_invoice = getattr(document, "related_invoice", None)
        if related_invoice:
            rows.append(Row("Invoice #:", related_invoice))
        delivery_address = getattr(document, "delivery_address", None)
        if document_type == DocumentType.DELIVERY_NOTE and delivery_address:
            rows.append(Row("Delivery To:", delivery_address))
        quality_check = getattr(document, "quality_check", None)
        if quality_check:
            rows.append(Row("Quality Check:", quality_check.upper()))
        if document_type == DocumentType.FINANCIAL_REPORT:
            rows.append(Row("Report Type:", document.report_type.upper()))
            if document.period_start and document.period_end:
                rows.append(
                    Row(
                        "Period:",
                        f"{format_date(document.period_start)} - {format_date(document.period_end)}",
                    )
                )

        if info.show_status:
            rows.append(Row("Status:", (document.status or "draft").upper()))
        if info.show_currency:
            rows.append(Row("Currency:", document.currency))
        return rows

    @staticmethod
    def _shows_tax_columns(document: BaseDocument, settings: CustomizationSettings) -> bool:
        return (
            settings.elements.items_table.show_tax_column
            and document.tax_settings.type == TaxType.PER_ITEM
        )

    def _item_columns(self, document: BaseDocument, settings: CustomizationSettings) -> list[Cell]:
        table = settings.elements.items_table
        columns = []
        if table.show_line_numbers:
            columns.append(Cell("Ln", "col-ln"))
        if table.show_item_codes:
            columns.append(Cell("Code", "col-code"))
        columns.append(Cell("Description", "col-description"))
        if table.show_categories:
            columns.append(Cell("Category", "col-category"))
        columns.append(Cell("Qty", "col-qty"))
        if table.show_units:
            columns.append(Cell("Unit", "col-unit"))
        columns.append(Cell("Unit Price", "col-price"))
        if self._shows_tax_columns(document, settings):
            columns.append(Cell("VAT Rate", "col-tax"))
            columns.append(Cell("Tax", "col-tax"))
        columns.append(Cell("Total", "col-total"))
        return columns

    def _item_rows(self, document: BaseDocument, settings: CustomizationSettings) -> list[list[Cell]]:
        table = settings.elements.items_table
        show_tax = self._shows_tax_columns(document, settings)
        rows = []
        for index, item in enumerate(document.items, start=1):
            cells = []
            if table.show_line_numbers:
                cells.append(Cell(str(index), "col-ln text-center"))
            if table.show_item_codes:
                cells.append(Cell(item.item_code, "col-code"))
            cells.append(Cell(item.description, "col-description"))
            if table.show_categories:
                cells.append(Cell(item.category or "", "col-category"))
            cells.append(Cell(format_quantity(item.quantity), "col-qty text-center"))
            if table.show_units:
                cells.append(Cell(item.unit or "ea", "col-unit text-center"))
            cells.append(Cell(format_amount(item.unit_price), "col-price text-right"))
            if show_tax:
                rate = (
                    item.tax_rate
                    if item.tax_rate is not None
                    else document.tax_settings.custom_rates.get(
                        item.category or "", document.tax_settings.default_rate
                    )
                )
                cells.append(Cell(f"{format_percent(rate)}%", "col-tax text-center"))
                cells.append(Cell(format_amount(item.tax_amount), "col-tax text-right"))
            cells.append(Cell(format_amount(item.total), "col-total text-right"))
            rows.append(cells)
        return rows

    @staticmethod
    def _totals_rows(document: BaseDocument, settings: CustomizationSettings) -> list[Row]:
        totals = settings.elements.totals_section
        tax_settings = document.tax_settings
        rate = tax_settings.default_rate
        currency = document.currency
        rows = []

        if totals.show_subtotal:
            rows.append(Row("Subtotal", format_currency(document.subtotal, currency)))

        if totals.show_tax:
            if tax_settings.type == TaxType.PER_ITEM:
                if document.tax_amount > 0:
                    rows.append(Row("VAT", format_currency(document.tax_amount, currency)))
            elif rate > 0:
                label = {
                    TaxType.EXCLUSIVE: f"VAT ({format_percent(rate)}%)",
                    TaxType.INCLUSIVE: f"VAT incl. ({format_percent(rate)}%)",
                    TaxType.OVERALL: f"Tax ({format_percent(rate)}%)",
                }[tax_settings.type]
                rows.append(Row(label, format_currency(document.tax_amount, currency)))

        if document.discount > 0 or totals.show_discount:
            rows.append(Row("Discount", f"- {format_currency(document.discount, currency)}"))

        rows.append(
            Row(
                f"TOTAL ({currency})",
                format_currency(document.total, currency),
                "total-final",
            )
        )
        return rows

    @staticmethod
    def _payment_block(
        document_type: DocumentType,
        settings: CustomizationSettings,
        profile: CompanyProfile,
    ) -> Optional[dict[str, Any]]:
        """Blocco pagamenti; None se disabilitato o senza alcun dato valido."""
        section = settings.elements.payment_section
        if not section.enabled or PRESENTATION[document_type].body_template != "body_line_items.html":
            return None
        if document_type in VENDOR_DOCUMENTS:
            return None

        bank = []
        if section.show_bank_details:
            bank = [
                Row(BANK_FIELD_LABELS[name], value)
                for name, value in profile.bank_details.valid_fields().items()
            ]
        mobile_money = []
        if section.show_mobile_money_details:
            mobile_money = [
                Row(MOBILE_MONEY_FIELD_LABELS[name], value)
                for name, value in profile.mobile_money_details.valid_fields().items()
            ]
        terms = ""
        if section.show_payment_terms and profile.payment_terms_text.strip():
            terms = profile.payment_terms_text.strip()
        ownership = ""
        if (
            section.show_ownership_clause
            and profile.show_ownership_clause
            and document_type in SALES_DOCUMENTS
        ):
            ownership = profile.ownership_clause

        if not (bank or mobile_money or terms or ownership):
            return None
        return {"bank": bank, "mobile_money": mobile_money, "terms": terms, "ownership": ownership}

    @staticmethod
    def _signature_block(
        document: BaseDocument,
        document_type: DocumentType,
        settings: CustomizationSettings,
        profile: CompanyProfile,
    ) -> Optional[dict[str, Any]]:
        section = settings.elements.signature_section
        if not section.enabled or document_type == DocumentType.DELIVERY_NOTE:
            return None

        presentation = PRESENTATION[document_type]
        signatory = next(
            (s for s in profile.signatories if s.department == presentation.department),
            None,
        )
        signer_title = presentation.signer_title
        signer_name = ""
        if signatory is not None:
            signer_title = signatory.title or signer_title
            signer_name = signatory.name
        if document.signature is not None and document.signature.enabled:
            signer_title = document.signature.signer_title or signer_title
            signer_name = document.signature.signer_name or signer_name

        return {
            "authorized": section.show_authorized_signature,
            "vendor": section.show_vendor_signature and document_type in VENDOR_DOCUMENTS,
            "customer": section.show_customer_signature and document_type in SALES_DOCUMENTS,
            "title": f"{signer_title} Signature",
            "signer_title": signer_title,
            "signer_name": signer_name,
            "department": f"{presentation.department} Department",
        }

    @staticmethod
    def _receipt_status(document: BaseDocument) -> PaymentStatus:
        return payment_status(document.amount_paid, document.invoice_total or document.total)
