"""
Formattazione di importi, date e importi in lettere
Progetto: Document Engine (Gestionale Documenti)

Gli importi sono sempre resi con due decimali e separatore delle migliaia
(1,234.50); le date sempre come giorno/mese/anno (31/12/2025),
indipendentemente dalla locale del processo.
"""

import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Optional

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
_SCALES = ["", "Thousand", "Million", "Billion", "Trillion", "Quadrillion", "Quintillion"]


def _decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def format_amount(value: Any) -> str:
    """Importo con due decimali e separatore migliaia: 1234.5 -> '1,234.50'."""
    amount = _decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{amount:,.2f}"


def format_currency(value: Any, currency: Optional[str] = None) -> str:
    """Importo preceduto dal codice valuta: 'KES 1,234.50'."""
    formatted = format_amount(value)
    return f"{currency} {formatted}" if currency else formatted


def format_percent(value: Any) -> str:
    """Aliquota senza zeri superflui: 16.00 -> '16', 7.5 -> '7.5'."""
    rate = _decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{rate:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_quantity(value: Any) -> str:
    """Quantità senza zeri superflui, con separatore migliaia: 2.00 -> '2', 1250.5 -> '1,250.5'."""
    text = f"{_decimal(value):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_date(value: Any) -> str:
    """Data in formato gg/mm/aaaa. Accetta date, datetime o stringhe ISO."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        try:
            value = datetime.date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def _convert_hundreds(n: int) -> list[str]:
    words = []
    if n >= 100:
        words += [_ONES[n // 100], "Hundred"]
        n %= 100
    if n >= 20:
        words.append(_TENS[n // 10])
        n %= 10
    elif n >= 10:
        words.append(_TEENS[n - 10])
        return words
    if n > 0:
        words.append(_ONES[n])
    return words


def number_to_words(value: Any) -> str:
    """
    Importo in lettere (inglese), con i centesimi come frazione.

    Esempi:
        1250.5 -> 'One Thousand Two Hundred Fifty and 50/100'
        0 -> 'Zero'
    """
    amount = abs(_decimal(value))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    whole = int(amount)
    cents = int((amount - whole) * 100)
    if whole >= 1000 ** len(_SCALES):
        # oltre la scala più grande: cifre
        result = f"{whole:,}"
        return f"{result} and {cents:02d}/100" if cents else result

    chunks = []
    scale = 0
    while whole > 0:
        chunk = whole % 1000
        if chunk:
            words = _convert_hundreds(chunk)
            if _SCALES[scale]:
                words.append(_SCALES[scale])
            chunks.insert(0, " ".join(words))
        whole //= 1000
        scale += 1

    result = " ".join(chunks)
    if cents > 0:
        result = f"{result} and {cents:02d}/100" if result else f"Zero and {cents:02d}/100"
    return result or "Zero"
