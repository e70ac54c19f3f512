"""
Schemas Pydantic
Progetto: Document Engine (Gestionale Documenti)

Modelli di validazione e serializzazione per documenti, numerazione,
personalizzazione e profilo aziendale.
"""

from document_engine.schemas.document import (
    BaseDocument,
    Company,
    Customer,
    DeliveryNote,
    DocumentType,
    FinancialReport,
    GoodsReceivingVoucher,
    Invoice,
    LineItem,
    PaymentReceipt,
    PurchaseOrder,
    Quote,
    SalesOrder,
    TaxSettings,
    TaxType,
    Vendor,
    parse_document,
)
from document_engine.schemas.numbering import Counter, NumberResult, ResetPeriod
from document_engine.schemas.customization import CustomizationSettings, RenderContext
from document_engine.schemas.company import CompanyProfile

__all__ = [
    "BaseDocument",
    "Company",
    "CompanyProfile",
    "Counter",
    "CustomizationSettings",
    "Customer",
    "DeliveryNote",
    "DocumentType",
    "FinancialReport",
    "GoodsReceivingVoucher",
    "Invoice",
    "LineItem",
    "NumberResult",
    "PaymentReceipt",
    "PurchaseOrder",
    "Quote",
    "RenderContext",
    "ResetPeriod",
    "SalesOrder",
    "TaxSettings",
    "TaxType",
    "Vendor",
    "parse_document",
]
