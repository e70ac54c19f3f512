"""
Calcolo imposte e totali documento
Progetto: Document Engine (Gestionale Documenti)

Funzioni pure: nessun I/O, nessuno stato. Non sollevano eccezioni:
valori mancanti o non numerici valgono 0, aliquote mancanti valgono
l'aliquota di categoria o quella di default.

Modalità:
- exclusive: imposta = S x R / 100, totale = S + imposta
- inclusive: imposta = S x R / (100 + R), totale = S
- per_item:  imposta e totale sono la somma delle righe, ciascuna con la sua aliquota
- overall:   un'unica imposta sul subtotale con l'aliquota di default
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, NamedTuple, Optional

from document_engine.schemas.document import (
    BaseDocument,
    FinancialReport,
    Invoice,
    LineItem,
    PaymentReceipt,
    TaxSettings,
    TaxType,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

DEFAULT_WITHHOLDING_RATE = Decimal("5")


class LineAmounts(NamedTuple):
    """Importi derivati di una riga."""
    total: Decimal
    tax_amount: Decimal


class DocumentTotals(NamedTuple):
    """Totali derivati di un documento."""
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return ZERO
    return result if result.is_finite() else ZERO


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_rate(
    tax_settings: TaxSettings,
    tax_rate: Any = None,
    category: Optional[str] = None,
) -> Decimal:
    """
    Aliquota effettiva di una riga.

    Ordine: aliquota della riga, aliquota della categoria, aliquota di default.
    """
    if tax_rate is not None:
        return _to_decimal(tax_rate)
    if category and category in tax_settings.custom_rates:
        return _to_decimal(tax_settings.custom_rates[category])
    return _to_decimal(tax_settings.default_rate)


def _tax_on(amount: Decimal, rate: Decimal, tax_type: TaxType) -> Decimal:
    if rate <= 0:
        return ZERO
    if tax_type == TaxType.INCLUSIVE:
        return _money(amount * rate / (HUNDRED + rate))
    return _money(amount * rate / HUNDRED)


def compute_line_item(
    quantity: Any,
    unit_price: Any,
    tax_rate: Any,
    tax_settings: TaxSettings,
    category: Optional[str] = None,
) -> LineAmounts:
    """
    Calcola totale e imposta di una riga.

    In modalità per_item il totale riga include l'imposta della riga.
    Nelle altre modalità il totale riga è il netto (quantità x prezzo) e
    l'imposta è informativa; in overall è sempre 0 perché l'imposta è
    calcolata una sola volta sul subtotale.

    Args:
        quantity: Quantità (None = 0)
        unit_price: Prezzo unitario (None = 0)
        tax_rate: Aliquota della riga (None = categoria o default)
        tax_settings: Impostazioni fiscali del documento
        category: Categoria articolo per custom_rates

    Returns:
        LineAmounts: total e tax_amount arrotondati al centesimo
    """
    net = _money(_to_decimal(quantity) * _to_decimal(unit_price))
    tax_type = tax_settings.type

    if tax_type == TaxType.OVERALL:
        return LineAmounts(total=net, tax_amount=ZERO)

    rate = resolve_rate(tax_settings, tax_rate, category)
    tax = _tax_on(net, rate, tax_type)

    if tax_type == TaxType.PER_ITEM:
        return LineAmounts(total=net + tax, tax_amount=tax)
    return LineAmounts(total=net, tax_amount=tax)


def compute_document_totals(
    items: Iterable[Any],
    tax_settings: TaxSettings,
) -> DocumentTotals:
    """
    Calcola subtotale, imposta e totale del documento.

    Args:
        items: Righe (LineItem o dizionari con quantity/unitPrice/taxRate)
        tax_settings: Impostazioni fiscali del documento

    Returns:
        DocumentTotals: subtotal = somma(quantità x prezzo); tax_amount e
        total secondo tax_settings.type
    """
    subtotal = ZERO
    line_tax = ZERO
    line_total = ZERO

    for item in items:
        quantity, unit_price, tax_rate, category = _line_inputs(item)
        amounts = compute_line_item(quantity, unit_price, tax_rate, tax_settings, category)
        subtotal += _money(_to_decimal(quantity) * _to_decimal(unit_price))
        line_tax += amounts.tax_amount
        line_total += amounts.total

    tax_type = tax_settings.type
    rate = _to_decimal(tax_settings.default_rate)

    if tax_type == TaxType.PER_ITEM:
        return DocumentTotals(subtotal=subtotal, tax_amount=line_tax, total=line_total)

    tax = _tax_on(subtotal, rate, tax_type)
    if tax_type == TaxType.INCLUSIVE:
        return DocumentTotals(subtotal=subtotal, tax_amount=tax, total=subtotal)
    return DocumentTotals(subtotal=subtotal, tax_amount=tax, total=subtotal + tax)


def _line_inputs(item: Any) -> tuple[Any, Any, Any, Optional[str]]:
    if isinstance(item, LineItem):
        return item.quantity, item.unit_price, item.tax_rate, item.category
    if isinstance(item, dict):
        return (
            item.get("quantity"),
            item.get("unitPrice", item.get("unit_price")),
            item.get("taxRate", item.get("tax_rate")),
            item.get("category"),
        )
    return (
        getattr(item, "quantity", None),
        getattr(item, "unit_price", None),
        getattr(item, "tax_rate", None),
        getattr(item, "category", None),
    )


def recalculate_items(items: Iterable[LineItem], tax_settings: TaxSettings) -> list[LineItem]:
    """Restituisce copie delle righe con total e tax_amount ricalcolati."""
    recalculated = []
    for item in items:
        amounts = compute_line_item(
            item.quantity, item.unit_price, item.tax_rate, tax_settings, item.category
        )
        recalculated.append(
            item.model_copy(update={"total": amounts.total, "tax_amount": amounts.tax_amount})
        )
    return recalculated


def apply_totals(document: BaseDocument) -> BaseDocument:
    """
    Restituisce una copia del documento con righe e totali ricalcolati.

    Lo sconto del documento è sottratto dal totale (mai sotto zero).
    Per le fatture aggiorna anche il saldo residuo; per i report
    finanziari calcola l'utile netto al posto dei totali di riga; per le
    ricevute senza righe il totale è l'importo incassato.
    """
    if isinstance(document, FinancialReport):
        net_profit = _money(document.total_revenue - document.total_expenses)
        return document.model_copy(update={"net_profit": net_profit, "total": net_profit})

    if isinstance(document, PaymentReceipt) and not document.items:
        amount = _money(document.amount_paid)
        return document.model_copy(
            update={"subtotal": amount, "tax_amount": ZERO, "total": amount}
        )

    items = recalculate_items(document.items, document.tax_settings)
    totals = compute_document_totals(items, document.tax_settings)
    total = totals.total
    if document.discount > 0:
        total = max(_money(total - document.discount), ZERO)
    update = {
        "items": items,
        "subtotal": totals.subtotal,
        "tax_amount": totals.tax_amount,
        "total": total,
    }
    if isinstance(document, Invoice):
        update["balance_amount"] = _money(total - document.paid_amount)
    return document.model_copy(update=update)


def calculate_withholding_tax(amount: Any, rate: Any = DEFAULT_WITHHOLDING_RATE) -> Decimal:
    """Ritenuta d'acconto sull'importo (default 5%)."""
    return _money(_to_decimal(amount) * _to_decimal(rate) / HUNDRED)
