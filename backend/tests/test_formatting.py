"""
Tests for amount, date and amount-in-words formatting.
"""

import datetime
from decimal import Decimal

import pytest

from document_engine.services.formatting import (
    format_amount,
    format_currency,
    format_date,
    format_percent,
    format_quantity,
    number_to_words,
)


class TestNumbers:
    """Tests for amounts and rates."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (1234.5, "1,234.50"),
            (Decimal("2.345"), "2.35"),
            ("1000000", "1,000,000.00"),
            (None, "0.00"),
            ("abc", "0.00"),
        ],
    )
    def test_format_amount(self, value, expected):
        """Test due decimali e separatore delle migliaia."""
        assert format_amount(value) == expected

    def test_format_currency(self):
        """Test codice valuta opzionale."""
        assert format_currency(5, "KES") == "KES 5.00"
        assert format_currency(5) == "5.00"

    @pytest.mark.parametrize(
        "value, expected",
        [(Decimal("16.00"), "16"), (7.5, "7.5"), (0, "0")],
    )
    def test_format_percent(self, value, expected):
        """Test aliquote senza zeri superflui."""
        assert format_percent(value) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            (2, "2"),
            (Decimal("2.00"), "2"),
            (Decimal("2.50"), "2.5"),
            (Decimal("0.125"), "0.125"),
            (1250, "1,250"),
            (None, "0"),
        ],
    )
    def test_format_quantity(self, value, expected):
        """Test quantità senza zeri superflui."""
        assert format_quantity(value) == expected


class TestDates:
    """Tests for dd/mm/yyyy dates."""

    def test_format_date(self):
        """Test date, datetime e stringhe ISO."""
        assert format_date(datetime.date(2025, 3, 5)) == "05/03/2025"
        assert format_date(datetime.datetime(2025, 12, 31, 23, 0)) == "31/12/2025"
        assert format_date("2025-03-15T10:00:00") == "15/03/2025"

    def test_unparseable_and_empty(self):
        """Test stringhe non ISO restituite invariate, vuoto per None."""
        assert format_date("next week") == "next week"
        assert format_date(None) == ""


class TestNumberToWords:
    """Tests for amounts in words."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, "Zero"),
            (115, "One Hundred Fifteen"),
            (1250.5, "One Thousand Two Hundred Fifty and 50/100"),
            (Decimal("0.75"), "Zero and 75/100"),
            (1000000, "One Million"),
            (2001013, "Two Million One Thousand Thirteen"),
            (-42, "Forty Two"),
            (10**15, "One Quadrillion"),
            (Decimal("2000000000000000000.25"), "Two Quintillion and 25/100"),
            (10**21, "1,000,000,000,000,000,000,000"),
            (Decimal("1E+30"), "1,000,000,000,000,000,000,000,000,000,000"),
        ],
    )
    def test_number_to_words(self, value, expected):
        """Test importi in lettere con i centesimi come frazione."""
        assert number_to_words(value) == expected
