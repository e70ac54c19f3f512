"""
Schemas Pydantic per il Profilo Aziendale
Progetto: Document Engine (Gestionale Documenti)

Il profilo contiene i dati azienda copiati nei nuovi documenti e i
dati di pagamento stampati nel blocco pagamenti (banca, mobile money).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from document_engine.schemas.document import Company

# Valori che nel blocco pagamenti equivalgono a "non configurato"
INVALID_PAYMENT_VALUES = frozenset({"not configured", "-", "", "undefined", "null"})


def is_valid_payment_value(value: Any) -> bool:
    """True se il valore è stampabile nel blocco pagamenti."""
    if value is None:
        return False
    return str(value).strip().lower() not in INVALID_PAYMENT_VALUES


class PaymentDetailsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def valid_fields(self) -> dict[str, str]:
        """Solo i campi con un valore utilizzabile, nell'ordine di dichiarazione."""
        return {
            name: str(value).strip()
            for name, value in self.model_dump().items()
            if is_valid_payment_value(value)
        }


class BankDetails(PaymentDetailsModel):
    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    branch_code: Optional[str] = None
    swift_code: Optional[str] = None


class MobileMoneyDetails(PaymentDetailsModel):
    pay_bill_number: Optional[str] = None
    till_number: Optional[str] = None
    business_short_code: Optional[str] = None
    account_reference: Optional[str] = None
    business_name: Optional[str] = None


class AuthorizedSignatory(BaseModel):
    """Firmatario autorizzato per reparto."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    title: str = ""
    department: str = ""


class CompanyProfile(BaseModel):
    """Profilo aziendale salvato nel dominio impostazioni 'company'."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    company: Company = Field(default_factory=Company)
    bank_details: BankDetails = Field(default_factory=BankDetails)
    mobile_money_details: MobileMoneyDetails = Field(default_factory=MobileMoneyDetails)
    payment_terms_text: str = "Payment due within 30 days of invoice date."
    show_ownership_clause: bool = True
    primary_color: Optional[str] = None
    font_family: Optional[str] = None
    show_logo: bool = True
    signatories: list[AuthorizedSignatory] = Field(default_factory=list)

    @property
    def ownership_clause(self) -> str:
        name = self.company.name or "the company"
        return f"Goods belong to {name} until completion of payments"
