"""
Schemas Pydantic per la Personalizzazione dei documenti
Progetto: Document Engine (Gestionale Documenti)

Le impostazioni sono composte da value object piccoli:
- LayoutConfig (Margins, Spacing), HeaderConfig, FooterConfig
- TypographyConfig, ColorPalette, PrintConfig
- ElementsConfig: una PerElementConfig per ogni sezione del documento

Tutti i campi hanno un default: un CustomizationSettings validato è
sempre completamente concreto.
"""

import datetime
import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class CustomizationModel(BaseModel):
    """Base comune: alias camelCase, campi sconosciuti ignorati."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def resolve_field(cls, key: str) -> Optional[str]:
        """Restituisce il nome del campo per un nome o alias, None se sconosciuto."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None


# -------------------------------------------------------------------
# Layout
# -------------------------------------------------------------------

class Margins(CustomizationModel):
    top: float = 20
    right: float = 20
    bottom: float = 20
    left: float = 20


class Spacing(CustomizationModel):
    line_height: float = 1.4
    paragraph_spacing: float = 8
    section_spacing: float = 16


class LayoutConfig(CustomizationModel):
    """Formato pagina, orientamento, margini e spaziature."""

    page_format: Literal["A4", "Letter", "Legal", "A3"] = "A4"
    orientation: Literal["portrait", "landscape"] = "portrait"
    margins: Margins = Field(default_factory=Margins)
    spacing: Spacing = Field(default_factory=Spacing)


class HeaderConfig(CustomizationModel):
    enabled: bool = True
    height: float = 80
    background_color: str = "#ffffff"
    border_color: str = "#e2e8f0"
    border_width: float = 1
    show_logo: bool = True
    show_company_name: bool = True
    show_company_details: bool = True
    show_document_info: bool = True
    logo_position: Literal["left", "center", "right"] = "left"
    logo_max_width: float = 150
    logo_max_height: float = 80
    custom_content: str = ""


class FooterConfig(CustomizationModel):
    enabled: bool = True
    height: float = 40
    background_color: str = "#ffffff"
    border_color: str = "#e2e8f0"
    border_width: float = 1
    show_generated_date: bool = True
    show_page_numbers: bool = True
    show_disclaimer: bool = True
    disclaimer_text: str = (
        "This is a computer-generated document and does not require "
        "a signature unless specified."
    )
    custom_content: str = ""
    position: Literal["left", "center", "right"] = "center"


# -------------------------------------------------------------------
# Tipografia e colori
# -------------------------------------------------------------------

class TypographyConfig(CustomizationModel):
    document_title_font: str = "Tahoma, sans-serif"
    body_font: str = "'Trebuchet MS', Tahoma, sans-serif"
    heading_font: str = "Tahoma, sans-serif"
    document_title_size: float = 19
    heading_size: float = 14
    body_font_size: float = 12
    small_font_size: float = 10
    line_height: float = 1.4
    document_title_color: str = "#1a202c"
    heading_color: str = "#2d3748"
    body_color: str = "#2d3748"
    accent_color: str = "#2b6cb0"


class ColorPalette(CustomizationModel):
    primary: str = "#2b6cb0"
    secondary: str = "#4a5568"
    accent: str = "#2b6cb0"
    success: str = "#16a34a"
    warning: str = "#f59e0b"
    error: str = "#dc2626"
    neutral: str = "#718096"
    background: str = "#ffffff"
    surface: str = "#f7fafc"
    border: str = "#e2e8f0"
    text: str = "#1a202c"
    text_secondary: str = "#4a5568"
    text_muted: str = "#718096"


class PrintConfig(CustomizationModel):
    """Opzioni di stampa: show_colors forza la stampa degli sfondi."""

    show_colors: bool = False
    show_page_breaks: bool = True


# -------------------------------------------------------------------
# Elementi
# -------------------------------------------------------------------

class PerElementConfig(CustomizationModel):
    """Campi comuni a ogni sezione del documento."""

    enabled: bool = True
    background_color: str = "#ffffff"
    border_color: str = "#e2e8f0"
    border_width: float = 0
    padding: float = 0
    border_radius: float = 0


class CompanySectionConfig(PerElementConfig):
    position: Literal["header", "separate-section"] = "header"
    show_logo: bool = True
    show_name: bool = True
    show_address: bool = True
    show_contact_info: bool = True
    show_tax_info: bool = True


class PartySectionConfig(PerElementConfig):
    position: Literal["left", "right", "center", "full-width"] = "left"
    show_billing_address: bool = True
    show_shipping_address: bool = False
    show_contact_info: bool = True
    show_tax_info: bool = True
    background_color: str = "#f7fafc"
    border_width: float = 1
    padding: float = 12
    border_radius: float = 4


class DocumentInfoConfig(PerElementConfig):
    position: Literal["header-right", "separate-section", "sidebar"] = "header-right"
    show_document_number: bool = True
    show_date: bool = True
    show_due_date: bool = True
    show_valid_until: bool = True
    show_status: bool = False
    show_currency: bool = True
    show_print_date: bool = False


class ItemsTableConfig(PerElementConfig):
    style: Literal["detailed", "compact", "minimal"] = "detailed"
    show_line_numbers: bool = True
    show_item_codes: bool = True
    show_categories: bool = False
    show_units: bool = True
    show_tax_column: bool = True
    show_discount_column: bool = False
    alternate_row_colors: bool = True
    header_background_color: str = "#4a5568"
    header_text_color: str = "#ffffff"
    even_row_color: str = "#f7fafc"
    odd_row_color: str = "#ffffff"
    border_width: float = 1
    cell_padding: float = 6
    font_size: float = 11
    header_font_weight: int = 600


class TotalsSectionConfig(PerElementConfig):
    position: Literal["right", "center", "full-width"] = "right"
    show_subtotal: bool = True
    show_tax: bool = True
    show_discount: bool = False
    show_shipping: bool = False
    highlight_total: bool = True
    total_background_color: str = "#2b6cb0"
    total_text_color: str = "#ffffff"
    font_size: float = 12
    font_weight: int = 600


class PaymentSectionConfig(PerElementConfig):
    position: Literal["left", "right", "center", "full-width"] = "full-width"
    show_bank_details: bool = True
    show_mobile_money_details: bool = True
    show_payment_terms: bool = True
    show_ownership_clause: bool = True
    background_color: str = "#f7fafc"
    border_width: float = 1
    padding: float = 12
    font_size: float = 11


class SignatureSectionConfig(PerElementConfig):
    position: Literal["left", "right", "center", "side-by-side"] = "side-by-side"
    show_authorized_signature: bool = True
    show_vendor_signature: bool = False
    show_customer_signature: bool = True
    include_date: bool = True
    include_printed_name: bool = True
    include_title: bool = True
    signature_height: float = 50
    font_size: float = 11


class QrCodeConfig(PerElementConfig):
    position: Literal[
        "header-right", "header-left", "footer-center", "footer-right", "document-info"
    ] = "header-right"
    size: float = 80
    include_document_number: bool = True
    include_company_info: bool = True
    include_url: bool = False


class WatermarkConfig(PerElementConfig):
    enabled: bool = False
    text: str = "COPY"
    opacity: float = Field(0.1, ge=0, le=1)
    font_size: float = 72
    color: str = "#000000"
    rotation: float = -45


class NotesSectionConfig(PerElementConfig):
    position: Literal["after-items", "before-totals", "after-payment", "footer"] = "after-items"
    show_notes: bool = True
    show_terms: bool = True


class ElementsConfig(CustomizationModel):
    """Configurazione delle sezioni; il merge scende di un livello qui dentro."""

    company_section: CompanySectionConfig = Field(default_factory=CompanySectionConfig)
    party_section: PartySectionConfig = Field(default_factory=PartySectionConfig)
    document_info: DocumentInfoConfig = Field(default_factory=DocumentInfoConfig)
    items_table: ItemsTableConfig = Field(default_factory=ItemsTableConfig)
    totals_section: TotalsSectionConfig = Field(default_factory=TotalsSectionConfig)
    payment_section: PaymentSectionConfig = Field(default_factory=PaymentSectionConfig)
    signature_section: SignatureSectionConfig = Field(default_factory=SignatureSectionConfig)
    qr_code: QrCodeConfig = Field(default_factory=QrCodeConfig)
    watermark: WatermarkConfig = Field(default_factory=WatermarkConfig)
    notes_section: NotesSectionConfig = Field(default_factory=NotesSectionConfig)


# -------------------------------------------------------------------
# Impostazioni complete
# -------------------------------------------------------------------

class CustomizationSettings(CustomizationModel):
    """Configurazione di rendering di un tipo documento."""

    id: str
    name: str = "Default"
    document_type: str
    is_default: bool = False

    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    header: HeaderConfig = Field(default_factory=HeaderConfig)
    footer: FooterConfig = Field(default_factory=FooterConfig)
    typography: TypographyConfig = Field(default_factory=TypographyConfig)
    colors: ColorPalette = Field(default_factory=ColorPalette)
    elements: ElementsConfig = Field(default_factory=ElementsConfig)
    print_options: PrintConfig = Field(default_factory=PrintConfig)

    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @field_validator("id", "document_type")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Campo obbligatorio")
        return v


class RenderContext(CustomizationModel):
    """Contesto di rendering: formato di destinazione e superficie."""

    format: Optional[str] = None
    is_preview: bool = False
    is_mobile: bool = False


class CustomizationPreset(CustomizationModel):
    """Preset nominato: overlay parziale applicato con merge_settings."""

    key: str
    name: str
    description: str = ""
    overrides: dict[str, Any] = Field(default_factory=dict)


class SettingsValidation(BaseModel):
    """Esito di validate_settings."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


class SettingsImportResult(BaseModel):
    """Esito di import_settings."""

    success: bool
    imported: int = 0
    errors: list[str] = Field(default_factory=list)
