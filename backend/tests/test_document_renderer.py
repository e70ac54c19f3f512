"""
Tests for DocumentRenderer.

Il renderer è una funzione pura: i documenti sono costruiti in memoria
e i totali calcolati con apply_totals.
"""

import datetime
import re
from decimal import Decimal

import pytest

from document_engine.schemas.company import BankDetails, CompanyProfile, MobileMoneyDetails
from document_engine.schemas.document import (
    DeliveryNote,
    FinancialReport,
    Invoice,
    PaymentReceipt,
    PurchaseOrder,
    Quote,
    TaxSettings,
    TaxType,
    Vendor,
)
from document_engine.services.customization_service import default_settings, merge_settings
from document_engine.services.document_renderer import (
    PRESENTATION,
    RenderTarget,
    payment_status,
)
from document_engine.services.tax_calculator import apply_totals

TOTAL_ROW_RE = re.compile(
    r'<tr class="totals-row total-final">\s*'
    r'<td class="totals-label">(?P<label>[^<]*)</td>\s*'
    r'<td class="totals-amount">(?P<amount>[^<]*)</td>'
)


@pytest.fixture
def invoice(company, customer, sample_items, exclusive_16):
    return apply_totals(
        Invoice(
            document_number="INV-2025-0001",
            date=datetime.date(2025, 3, 1),
            due_date=datetime.date(2025, 3, 31),
            company=company,
            customer=customer,
            items=sample_items,
            tax_settings=exclusive_16,
            status="pending",
            currency="KES",
            notes="Grazie per l'acquisto",
            terms="Pagamento a 30 giorni",
        )
    )


# ============================================================
# Tests for line item documents
# ============================================================


class TestInvoiceRendering:
    """Tests for invoices and other line item documents."""

    def test_one_row_per_item(self, renderer, invoice):
        """Test una riga di tabella per ogni riga del documento."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        assert html.count('class="item-row') == len(invoice.items) == 2
        assert "Widget" in html
        assert "Gadget" in html

    def test_total_row(self, renderer, invoice):
        """Test la riga totale finale riporta il totale calcolato."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        match = TOTAL_ROW_RE.search(html)
        assert match is not None
        assert match.group("label") == "TOTAL (KES)"
        assert match.group("amount") == "KES 290.00"
        assert "VAT (16%)" in html
        assert "KES 250.00" in html

    def test_dates_are_day_month_year(self, renderer, invoice):
        """Test le date sono gg/mm/aaaa."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        assert "01/03/2025" in html
        assert "Due Date:" in html and "31/03/2025" in html
        assert "Generated on 15/03/2025 10:30" in html

    def test_title_party_and_notes(self, renderer, invoice):
        """Test titolo, cliente, note e termini."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        assert "<title>Invoice - INV-2025-0001</title>" in html
        assert "INVOICE" in html
        assert "Jane Wanjiku" in html
        assert "Nakuru" in html
        assert "Grazie per l&#39;acquisto" in html
        assert "Pagamento a 30 giorni" in html

    def test_amount_in_words(self, renderer, invoice):
        """Test importo in lettere sui documenti di vendita."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        assert "Two Hundred Ninety KES" in html

    def test_qr_placeholder_only_on_invoice(self, renderer, invoice, sample_quote):
        """Test il segnaposto QR è presente solo sulle fatture."""
        invoice_html = renderer.render(invoice, "invoice", default_settings("invoice"))
        quote_html = renderer.render(apply_totals(sample_quote), "quote", default_settings("quote"))

        assert 'data-qr-content="INV-2025-0001"' in invoice_html
        assert "data-qr-content" not in quote_html

    def test_disabled_sections_are_omitted(self, renderer, invoice):
        """Test le sezioni disabilitate non sono renderizzate."""
        settings = merge_settings(
            default_settings("invoice"),
            {
                "footer": {"enabled": False},
                "elements": {
                    "totals_section": {"enabled": False},
                    "signature_section": {"enabled": False},
                    "watermark": {"enabled": True, "text": "COPIA"},
                },
            },
        )

        html = renderer.render(invoice, "invoice", settings)

        assert 'class="totals-table"' not in html
        assert 'class="signature-section"' not in html
        assert "Generated on" not in html
        assert '<div class="watermark">COPIA</div>' in html

    def test_item_columns(self, renderer, invoice):
        """Test colonne opzionali della tabella righe."""
        settings = merge_settings(
            default_settings("invoice"),
            {"elements": {"items_table": {"show_item_codes": False, "show_line_numbers": False}}},
        )

        html = renderer.render(invoice, "invoice", settings)

        assert "WID-01" not in html
        assert ">Ln<" not in html

    def test_quantities_without_trailing_zeros(self, renderer, invoice):
        """Test le quantità sono mostrate senza decimali superflui."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"))

        assert '<td class="col-qty text-center">2</td>' in html
        assert '<td class="col-qty text-center">2.00</td>' not in html

    def test_per_item_tax_columns(self, renderer, invoice):
        """Test le colonne imposta appaiono solo in modalità per_item."""
        per_item = apply_totals(
            invoice.model_copy(update={"tax_settings": TaxSettings(type=TaxType.PER_ITEM, default_rate=16)})
        )

        html = renderer.render(per_item, "invoice", default_settings("invoice"))

        assert "VAT Rate" in html
        assert "16%" in html

    def test_discount_row(self, renderer, invoice):
        """Test lo sconto appare tra i totali."""
        discounted = apply_totals(invoice.model_copy(update={"discount": Decimal("40")}))

        html = renderer.render(discounted, "invoice", default_settings("invoice"))

        assert "- KES 40.00" in html
        assert TOTAL_ROW_RE.search(html).group("amount") == "KES 250.00"

    def test_vendor_documents(self, renderer, company, sample_items, exclusive_16):
        """Test l'ordine di acquisto mostra il fornitore e la firma fornitore."""
        order = apply_totals(
            PurchaseOrder(
                document_number="PO-2025-0001",
                company=company,
                vendor=Vendor(name="Mombasa Imports"),
                items=sample_items,
                tax_settings=exclusive_16,
            )
        )

        html = renderer.render(order, "purchase-order", default_settings("purchase-order"))

        assert "Vendor Information" in html
        assert "Mombasa Imports" in html
        assert "Vendor Signature" in html
        assert "Customer Acceptance" not in html
        assert "Payment Information" not in html


# ============================================================
# Tests for the payment block
# ============================================================


class TestPaymentBlock:
    """Tests for payment details suppression."""

    def test_placeholder_values_are_hidden(self, renderer, invoice):
        """Test valori 'Not configured' o '-' non sono stampati."""
        profile = CompanyProfile(
            bank_details=BankDetails(bank_name="Not configured", account_number="-"),
            mobile_money_details=MobileMoneyDetails(pay_bill_number="undefined"),
            payment_terms_text="",
            show_ownership_clause=False,
        )

        html = renderer.render(invoice, "invoice", default_settings("invoice"), company_profile=profile)

        assert "Payment Information" not in html
        assert "Not configured" not in html

    def test_valid_values_are_printed(self, renderer, invoice):
        """Test solo i campi validi sono stampati."""
        profile = CompanyProfile(
            company={"name": "Acme Trading Ltd."},
            bank_details=BankDetails(bank_name="KCB", account_number="1234567890", swift_code="null"),
            mobile_money_details=MobileMoneyDetails(pay_bill_number="522522"),
        )

        html = renderer.render(invoice, "invoice", default_settings("invoice"), company_profile=profile)

        assert "Bank Details" in html
        assert "KCB" in html
        assert "1234567890" in html
        assert "SWIFT Code" not in html
        assert "Paybill:</strong> 522522" in html
        assert "Goods belong to Acme Trading Ltd. until completion of payments" in html

    def test_signatory_by_department(self, renderer, invoice):
        """Test il firmatario del reparto è stampato nella firma autorizzata."""
        profile = CompanyProfile(
            signatories=[
                {"id": "s1", "name": "Peter Mwangi", "title": "CFO", "department": "Finance"},
                {"id": "s2", "name": "Ann Njeri", "title": "Head of Sales", "department": "Sales"},
            ]
        )

        html = renderer.render(invoice, "invoice", default_settings("invoice"), company_profile=profile)

        assert "Peter Mwangi" in html
        assert "CFO Signature" in html
        assert "Ann Njeri" not in html


# ============================================================
# Tests for the other document bodies
# ============================================================


class TestOtherBodies:
    """Tests for delivery notes, receipts and financial reports."""

    def test_delivery_note_has_no_prices(self, renderer, company, customer, sample_items):
        """Test la bolla mostra quantità senza prezzi né totali."""
        note = apply_totals(
            DeliveryNote(
                document_number="DN-2025-0001",
                company=company,
                customer=customer,
                items=sample_items,
                carrier="G4S Courier",
                delivery_address="Kenyatta Road 5, Nakuru",
                terms="Non stampare",
            )
        )

        html = renderer.render(note, "delivery-note", default_settings("delivery-note"))

        assert html.count('class="item-row') == 2
        assert "Unit Price" not in html
        assert "TOTAL (" not in html
        assert "G4S Courier" in html
        assert "Received By" in html
        assert "Delivery To:" in html
        assert "Non stampare" not in html

    def _delivery_note(self, company, customer, sample_items):
        return apply_totals(
            DeliveryNote(
                document_number="DN-2025-0002",
                company=company,
                customer=customer,
                items=sample_items,
            )
        )

    def test_delivery_note_quantities(self, renderer, company, customer, sample_items):
        """Test quantità della bolla senza zeri superflui, con unità di default."""
        note = self._delivery_note(company, customer, sample_items)

        html = renderer.render(note, "delivery-note", default_settings("delivery-note"))

        assert '<td class="col-qty text-center">2 ea</td>' in html
        assert '<td class="col-qty text-center">2.00' not in html

    def test_delivery_note_signatures_disabled(self, renderer, company, customer, sample_items):
        """Test firme di consegna nascoste se la sezione firme è disabilitata."""
        note = self._delivery_note(company, customer, sample_items)
        settings = merge_settings(
            default_settings("delivery-note"),
            {"elements": {"signature_section": {"enabled": False}}},
        )

        html = renderer.render(note, "delivery-note", settings)

        assert "Sent By" not in html
        assert "Received By" not in html

    @pytest.mark.parametrize(
        "paid, invoice_total, label",
        [
            ("100", "290", "34% PAID"),
            ("290", "290", "PAID IN FULL"),
            ("300", "290", "OVERPAID"),
            ("100", None, "PAID IN FULL"),
        ],
    )
    def test_receipt_status(self, renderer, customer, paid, invoice_total, label):
        """Test lo stato di pagamento della ricevuta."""
        receipt = apply_totals(
            PaymentReceipt(
                document_number="RCT-2025-0001",
                customer=customer,
                amount_paid=Decimal(paid),
                invoice_total=Decimal(invoice_total) if invoice_total else None,
                related_invoice="INV-2025-0001",
                currency="KES",
            )
        )

        html = renderer.render(receipt, "payment-receipt", default_settings("payment-receipt"))

        assert f'<div class="receipt-status">{label}</div>' in html
        assert TOTAL_ROW_RE.search(html).group("amount") == label
        assert "Related Invoice: INV-2025-0001" in html

    def test_receipt_balance_and_credit(self, renderer):
        """Test saldo residuo e credito cliente."""
        partial = apply_totals(
            PaymentReceipt(amount_paid=Decimal("100"), invoice_total=Decimal("290"), currency="KES")
        )
        overpaid = apply_totals(
            PaymentReceipt(amount_paid=Decimal("300"), invoice_total=Decimal("290"), currency="KES")
        )
        settings = default_settings("payment-receipt")

        assert "KES 190.00" in renderer.render(partial, "payment-receipt", settings)
        overpaid_html = renderer.render(overpaid, "payment-receipt", settings)
        assert "Customer Credit" in overpaid_html
        assert "KES 10.00" in overpaid_html

    def test_financial_report(self, renderer):
        """Test il report finanziario mostra l'utile netto."""
        report = apply_totals(
            FinancialReport(
                document_number="FR-2025-0001",
                total_revenue=Decimal("5000"),
                total_expenses=Decimal("3200"),
                currency="KES",
                transactions=[
                    {"date": "2025-03-02", "description": "Vendita", "type": "credit", "amount": "5000"}
                ],
            )
        )

        html = renderer.render(report, "financial-report", default_settings("financial-report"))

        assert TOTAL_ROW_RE.search(html).group("amount") == "KES 1,800.00"
        assert "02/03/2025" in html
        assert "Customer Information" not in html


class TestPaymentStatus:
    """Tests for payment_status."""

    def test_rounding_to_full(self):
        """Test una percentuale arrotondata a 100 vale PAID IN FULL."""
        status = payment_status(Decimal("289.99"), Decimal("290"))

        assert status.label == "PAID IN FULL"
        assert status.balance == Decimal("0.01")

    def test_overpaid_credit(self):
        """Test il credito è l'eccedenza sul totale fattura."""
        status = payment_status(Decimal("300"), Decimal("290"))

        assert status.overpaid is True
        assert status.credit == Decimal("10")


# ============================================================
# Tests for styles
# ============================================================


class TestStyles:
    """Tests for the generated stylesheet."""

    def test_print_target_forces_colors(self, renderer):
        """Test il target di stampa forza la resa dei colori."""
        settings = default_settings("invoice")

        assert "print-color-adjust: exact" in renderer.render_styles(settings, RenderTarget.PRINT)
        assert "print-color-adjust: exact" not in renderer.render_styles(settings, RenderTarget.SCREEN)

    def test_page_format_and_colors(self, renderer):
        """Test formato pagina e colori dalle impostazioni."""
        settings = merge_settings(
            default_settings("invoice"),
            {"layout": {"page_format": "Letter", "orientation": "landscape"}, "colors": {"primary": "#abcdef"}},
        )

        styles = renderer.render_styles(settings)

        assert "size: Letter landscape;" in styles
        assert "#abcdef" in styles

    def test_styles_embedded_in_document(self, renderer, invoice):
        """Test il foglio di stile è incluso nel documento senza escape."""
        html = renderer.render(invoice, "invoice", default_settings("invoice"), target=RenderTarget.PRINT)

        assert "<style" in html
        assert "@page" in html
        assert "print-color-adjust: exact" in html
        assert "&gt;" not in html.split("</style>")[0]

    def test_every_type_has_presentation(self):
        """Test ogni tipo documento ha etichette e template."""
        assert len(PRESENTATION) == 8


def test_quote_renders_valid_until(renderer, sample_quote):
    """Test il preventivo mostra la data di validità."""
    quote = apply_totals(sample_quote.model_copy(update={"valid_until": datetime.date(2025, 4, 1)}))

    html = renderer.render(quote, "quote", default_settings("quote"))

    assert "Valid Until:" in html
    assert "01/04/2025" in html
    assert "Quote #:" in html


def test_renderer_does_not_recompute(renderer, sample_quote):
    """Test il renderer usa i totali del documento senza ricalcolarli."""
    stale = sample_quote.model_copy(update={"total": Decimal("999")})

    html = renderer.render(stale, "quote", default_settings("quote"))

    assert TOTAL_ROW_RE.search(html).group("amount") == "KES 999.00"


def test_minimal_document_renders(renderer):
    """Test un documento quasi vuoto è renderizzabile."""
    html = renderer.render(Quote(document_number="QT-1"), "quote", default_settings("quote"))

    assert "QUOTATION" in html
