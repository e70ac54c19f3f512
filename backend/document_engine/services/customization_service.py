"""
Service per la Personalizzazione dei documenti
Progetto: Document Engine (Gestionale Documenti)

Risolve le impostazioni di rendering effettive di un documento applicando,
in quest'ordine:
1. impostazioni salvate (o di default) del tipo documento
2. branding aziendale (colore primario, font, logo)
3. preset nominato (professional, minimal, colorful)
4. overlay per ruolo (sales, finance, purchasing, executive)
5. override espliciti del chiamante
6. regole condizionali sul contenuto del documento
7. flag di contesto (anteprima, stampa/pdf, mobile)

Ogni passo è un overlay parziale applicato con merge_settings. Il
risultato è un CustomizationSettings completamente concreto.
"""

import datetime
import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from document_engine.core.config import Settings, get_settings
from document_engine.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    NotFoundError,
    StorageError,
)
from document_engine.core.storage import JsonStorage
from document_engine.schemas.customization import (
    HEX_COLOR_RE,
    ColorPalette,
    CustomizationPreset,
    CustomizationSettings,
    ElementsConfig,
    FooterConfig,
    HeaderConfig,
    LayoutConfig,
    PrintConfig,
    RenderContext,
    SettingsImportResult,
    SettingsValidation,
    TypographyConfig,
)
from document_engine.schemas.document import BaseDocument, DocumentType

logger = logging.getLogger(__name__)

CUSTOMIZATION_SETTINGS_KEY = "document-customization-settings"
EXPORT_VERSION = "1.0.0"

# Sezioni con merge superficiale (chiave per chiave)
SECTION_MODELS: dict[str, type[BaseModel]] = {
    "layout": LayoutConfig,
    "header": HeaderConfig,
    "footer": FooterConfig,
    "typography": TypographyConfig,
    "colors": ColorPalette,
    "print_options": PrintConfig,
}

PRINT_FORMATS = frozenset({"print", "pdf"})

PREMIUM_COLOR = "#d4af37"
URGENT_COLOR = "#dc2626"

INDUSTRY_COLORS: dict[str, str] = {
    "healthcare": "#16a34a",
    "technology": "#2563eb",
    "finance": "#7c2d12",
}


# -------------------------------------------------------------------
# Preset e ruoli
# -------------------------------------------------------------------

BUILT_IN_PRESETS: dict[str, CustomizationPreset] = {
    "professional": CustomizationPreset(
        key="professional",
        name="Professional",
        description="Clean and professional layout with company branding",
        overrides={
            "colors": {"primary": "#1e40af", "secondary": "#374151", "accent": "#2563eb"},
            "typography": {
                "document_title_font": "Inter, sans-serif",
                "body_font": "Inter, sans-serif",
                "document_title_size": 24,
                "body_font_size": 14,
            },
            "elements": {
                "items_table": {
                    "header_background_color": "#1e40af",
                    "alternate_row_colors": True,
                },
            },
        },
    ),
    "minimal": CustomizationPreset(
        key="minimal",
        name="Minimal",
        description="Clean and minimal design with essential information only",
        overrides={
            "header": {"height": 60},
            "footer": {"enabled": False},
            "elements": {
                "items_table": {
                    "style": "minimal",
                    "show_line_numbers": False,
                    "show_item_codes": False,
                },
                "payment_section": {"enabled": False},
                "signature_section": {"enabled": False},
            },
        },
    ),
    "colorful": CustomizationPreset(
        key="colorful",
        name="Colorful",
        description="Vibrant colors with enhanced visual appeal",
        overrides={
            "colors": {"primary": "#16a34a", "secondary": "#059669", "accent": "#10b981"},
            "elements": {
                "items_table": {
                    "header_background_color": "#16a34a",
                    "even_row_color": "#f0fdf4",
                },
                "totals_section": {"total_background_color": "#16a34a"},
            },
        },
    ),
}

ROLE_OVERRIDES: dict[str, dict[str, Any]] = {
    "sales": {
        "elements": {
            "party_section": {"background_color": "#f0f9ff", "border_color": "#0284c7"},
            "totals_section": {"font_size": 14},
        },
    },
    "finance": {
        "elements": {
            "payment_section": {"enabled": True},
            "totals_section": {"show_tax": True, "show_subtotal": True},
            "document_info": {"show_due_date": True},
        },
    },
    "purchasing": {
        "elements": {
            "signature_section": {
                "show_vendor_signature": True,
                "show_authorized_signature": True,
            },
            "items_table": {"show_categories": True},
        },
    },
    "executive": {
        "colors": {"primary": "#1f2937"},
        "typography": {"document_title_size": 22},
        "elements": {
            "items_table": {"style": "minimal"},
            "qr_code": {"enabled": False},
        },
    },
}

# Differenze del template di default rispetto ai valori dei modelli
TYPE_DEFAULT_OVERRIDES: dict[DocumentType, dict[str, Any]] = {
    DocumentType.QUOTE: {
        "elements": {"document_info": {"show_due_date": False, "show_valid_until": True}},
    },
    DocumentType.SALES_ORDER: {
        "elements": {"document_info": {"show_due_date": False, "show_valid_until": False}},
    },
    DocumentType.INVOICE: {
        "elements": {"document_info": {"show_valid_until": False, "show_due_date": True}},
    },
    DocumentType.PURCHASE_ORDER: {
        "elements": {
            "document_info": {"show_due_date": False, "show_valid_until": False},
            "signature_section": {
                "show_vendor_signature": True,
                "show_customer_signature": False,
            },
            "payment_section": {"enabled": False},
        },
    },
    DocumentType.DELIVERY_NOTE: {
        "elements": {
            "document_info": {"show_due_date": False, "show_valid_until": False},
            "items_table": {"show_tax_column": False},
            "totals_section": {"enabled": False},
            "payment_section": {"enabled": False},
        },
    },
    DocumentType.PAYMENT_RECEIPT: {
        "elements": {
            "document_info": {"show_due_date": False, "show_valid_until": False},
            "payment_section": {"show_payment_terms": False, "show_ownership_clause": False},
        },
    },
    DocumentType.GOODS_RECEIVING_VOUCHER: {
        "elements": {
            "document_info": {"show_due_date": False, "show_valid_until": False},
            "signature_section": {
                "show_vendor_signature": True,
                "show_customer_signature": False,
            },
            "payment_section": {"enabled": False},
        },
    },
    DocumentType.FINANCIAL_REPORT: {
        "elements": {
            "document_info": {"show_due_date": False, "show_valid_until": False},
            "party_section": {"enabled": False},
            "items_table": {"enabled": False},
            "payment_section": {"enabled": False},
            "qr_code": {"enabled": False},
        },
    },
}


# -------------------------------------------------------------------
# Merge
# -------------------------------------------------------------------

def _by_field_name(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Riporta le chiavi (nome o alias camelCase) ai nomi dei campi del modello."""
    mapped = {}
    for key, value in data.items():
        name = model.resolve_field(key)
        if name is None:
            logger.debug("Chiave '%s' ignorata per %s", key, model.__name__)
            continue
        mapped[name] = value
    return mapped


def merge_settings(
    base: CustomizationSettings,
    override: Union[CustomizationSettings, dict[str, Any], None],
) -> CustomizationSettings:
    """
    Applica un overlay parziale alle impostazioni.

    Le sezioni di primo livello (layout, header, footer, typography,
    colors, print_options) sono unite chiave per chiave; dentro elements
    l'unione scende di un livello (per sezione del documento). Gli altri
    campi sono sostituiti. Nei valori annidati più in profondità (es.
    layout.margins) l'override sostituisce il valore intero.

    Args:
        base: Impostazioni di partenza (non modificate)
        override: Overlay con nomi campo o alias camelCase

    Returns:
        CustomizationSettings: Nuove impostazioni risolte

    Raises:
        BusinessValidationError: Se l'overlay produce valori non validi
    """
    if not override:
        return base
    if isinstance(override, BaseModel):
        override = override.model_dump(exclude_unset=True)

    merged = base.model_dump()
    for name, value in _by_field_name(CustomizationSettings, override).items():
        if name == "elements" and isinstance(value, dict):
            elements = merged["elements"]
            for element, element_value in _by_field_name(ElementsConfig, value).items():
                if not isinstance(element_value, dict):
                    continue
                element_model = ElementsConfig.model_fields[element].annotation
                elements[element] = {
                    **elements[element],
                    **_by_field_name(element_model, element_value),
                }
        elif name in SECTION_MODELS and isinstance(value, dict):
            merged[name] = {**merged[name], **_by_field_name(SECTION_MODELS[name], value)}
        else:
            merged[name] = value

    try:
        return CustomizationSettings.model_validate(merged)
    except PydanticValidationError as e:
        raise BusinessValidationError(
            "Impostazioni di personalizzazione non valide",
            error_code="INVALID_CUSTOMIZATION",
            extra={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )


def default_settings(document_type: Union[str, DocumentType]) -> CustomizationSettings:
    """Template di default per il tipo documento."""
    document_type = DocumentType.parse(document_type)
    base = CustomizationSettings(
        id=f"default-{document_type.value}",
        name=f"Default {document_type.value} Template",
        document_type=document_type.value,
        is_default=True,
    )
    return merge_settings(base, TYPE_DEFAULT_OVERRIDES[document_type])


# -------------------------------------------------------------------
# Regole condizionali e contesto
# -------------------------------------------------------------------

def conditional_overrides(
    document: BaseDocument,
    premium_threshold: Decimal,
    low_value_threshold: Decimal,
) -> list[dict[str, Any]]:
    """
    Overlay derivati dal contenuto del documento.

    Le regole sono valutate sempre sul documento, in ordine fisso, e non
    leggono l'output delle altre: importo alto, importo basso, stato
    urgente, stato bozza, settore del cliente.
    """
    overlays = []
    total = document.total

    if total and total > premium_threshold:
        overlays.append(
            {
                "colors": {"primary": PREMIUM_COLOR},
                "elements": {
                    "totals_section": {"total_background_color": PREMIUM_COLOR},
                    "watermark": {"enabled": True, "text": "PREMIUM ORDER", "opacity": 0.05},
                },
            }
        )

    if total and total < low_value_threshold:
        overlays.append(
            {
                "elements": {
                    "signature_section": {"enabled": False},
                    "qr_code": {"enabled": False},
                },
            }
        )

    status = document.normalized_status
    if status == "urgent":
        overlays.append(
            {
                "colors": {"accent": URGENT_COLOR},
                "elements": {
                    "watermark": {
                        "enabled": True,
                        "text": "URGENT",
                        "color": URGENT_COLOR,
                        "opacity": 0.1,
                    },
                },
            }
        )
    elif status == "draft":
        overlays.append(
            {"elements": {"watermark": {"enabled": True, "text": "DRAFT", "opacity": 0.2}}}
        )

    party = document.party
    industry = (party.industry or "").strip().lower() if party is not None else ""
    if industry in INDUSTRY_COLORS:
        overlays.append({"colors": {"primary": INDUSTRY_COLORS[industry]}})

    return overlays


def apply_context(
    resolved: CustomizationSettings,
    context: Optional[RenderContext],
) -> CustomizationSettings:
    """Adattamenti per formato di destinazione, anteprima e mobile."""
    if context is None:
        return resolved

    if (context.format or "").lower() in PRINT_FORMATS:
        resolved = merge_settings(
            resolved,
            {
                "print_options": {"show_colors": True},
                "typography": {"body_font_size": max(resolved.typography.body_font_size - 1, 10)},
            },
        )

    if context.is_preview:
        resolved = merge_settings(
            resolved,
            {"elements": {"qr_code": {"enabled": False}, "signature_section": {"enabled": False}}},
        )

    if context.is_mobile:
        resolved = merge_settings(
            resolved,
            {
                "layout": {"margins": {"top": 10, "right": 10, "bottom": 10, "left": 10}},
                "typography": {"body_font_size": max(resolved.typography.body_font_size + 2, 14)},
            },
        )

    return resolved


def validate_settings(settings: CustomizationSettings) -> SettingsValidation:
    """Controlli di coerenza: margini, dimensioni minime dei font, colori esadecimali."""
    errors = []

    if not settings.name.strip():
        errors.append("Name is required")

    margins = settings.layout.margins
    for side in ("top", "bottom", "left", "right"):
        if getattr(margins, side) < 0:
            errors.append(f"{side.capitalize()} margin must be non-negative")

    if settings.typography.body_font_size < 8:
        errors.append("Body font size must be at least 8px")
    if settings.typography.document_title_size < 10:
        errors.append("Document title size must be at least 10px")

    for key, value in settings.colors.model_dump().items():
        if value and not HEX_COLOR_RE.match(value):
            errors.append(f"Invalid color format for {key}: {value}")

    return SettingsValidation(valid=not errors, errors=errors)


# -------------------------------------------------------------------
# Service
# -------------------------------------------------------------------

class CustomizationResolver:
    """
    Persistenza e risoluzione delle impostazioni di personalizzazione.

    Le impostazioni sono salvate come lista JSON sotto
    'document-customization-settings'. Ogni tipo documento ha sempre
    un'impostazione di default, creata al primo accesso e non eliminabile.
    """

    def __init__(
        self,
        storage: JsonStorage,
        company_profiles: Optional[Any] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.storage = storage
        self.company_profiles = company_profiles
        self.config = settings or get_settings()
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    # -------------------------------------------------------------------
    # Risoluzione
    # -------------------------------------------------------------------

    def resolve(
        self,
        document_type: Union[str, DocumentType],
        overrides: Optional[dict[str, Any]] = None,
        context: Optional[RenderContext] = None,
        document: Optional[BaseDocument] = None,
        preset: Optional[str] = None,
        role: Optional[str] = None,
    ) -> CustomizationSettings:
        """
        Impostazioni effettive per il rendering di un documento.

        Args:
            document_type: Tipo documento
            overrides: Overlay esplicito del chiamante
            context: Formato, anteprima, mobile
            document: Documento da renderizzare (per le regole condizionali)
            preset: Chiave di un preset predefinito
            role: Ruolo utente (sales, finance, purchasing, executive)

        Raises:
            NotFoundError: Se il preset non esiste
        """
        document_type = DocumentType.parse(document_type)
        try:
            resolved = self.get_settings(document_type)
        except StorageError as e:
            logger.warning(
                "Impostazioni di %s non leggibili, uso il default: %s", document_type.value, e.detail
            )
            resolved = default_settings(document_type)
        resolved = merge_settings(resolved, self._branding_overrides())

        if preset:
            resolved = merge_settings(resolved, self.get_preset(preset).overrides)

        if role:
            role_overrides = ROLE_OVERRIDES.get(role.strip().lower())
            if role_overrides is None:
                logger.warning("Ruolo '%s' senza personalizzazioni dedicate", role)
            resolved = merge_settings(resolved, role_overrides)

        resolved = merge_settings(resolved, overrides)

        if document is not None:
            for overlay in conditional_overrides(
                document,
                self.config.premium_total_threshold,
                self.config.low_value_total_threshold,
            ):
                resolved = merge_settings(resolved, overlay)

        return apply_context(resolved, context)

    def get_presets(self) -> list[CustomizationPreset]:
        return list(BUILT_IN_PRESETS.values())

    def get_preset(self, key: str) -> CustomizationPreset:
        """
        Raises:
            NotFoundError: Se il preset non esiste
        """
        preset = BUILT_IN_PRESETS.get(key.strip().lower())
        if preset is None:
            raise NotFoundError(f"Preset '{key}' non trovato")
        return preset

    def _branding_overrides(self) -> dict[str, Any]:
        if self.company_profiles is None:
            return {}
        profile = self.company_profiles.get_profile()
        overlay: dict[str, Any] = {
            "header": {"show_logo": profile.show_logo},
            "elements": {
                "company_section": {"show_logo": profile.show_logo},
                "payment_section": {"show_ownership_clause": profile.show_ownership_clause},
            },
        }
        if profile.primary_color:
            overlay["colors"] = {"primary": profile.primary_color}
        if profile.font_family:
            overlay["typography"] = {"body_font": profile.font_family}
        return overlay

    # -------------------------------------------------------------------
    # Persistenza
    # -------------------------------------------------------------------

    def get_all_settings(self) -> list[CustomizationSettings]:
        """Tutte le impostazioni salvate; i record non validi sono ignorati."""
        result = []
        for raw in self._load():
            try:
                result.append(CustomizationSettings.model_validate(raw))
            except PydanticValidationError:
                logger.warning(
                    "Impostazioni di personalizzazione non valide ignorate: %s",
                    raw.get("id") if isinstance(raw, dict) else "?",
                )
        return result

    def get_settings(self, document_type: Union[str, DocumentType]) -> CustomizationSettings:
        """
        Impostazioni di default del tipo documento.

        Al primo accesso il template di default viene creato e salvato.

        Raises:
            StorageError: Se lo storage non è leggibile al momento della creazione
        """
        document_type = DocumentType.parse(document_type)
        for item in self.get_all_settings():
            if item.document_type == document_type.value and item.is_default:
                return item

        with self.storage.lock(CUSTOMIZATION_SETTINGS_KEY):
            records = self._load_for_update()
            for raw in records:
                if (
                    isinstance(raw, dict)
                    and raw.get("documentType") == document_type.value
                    and raw.get("isDefault")
                ):
                    try:
                        return CustomizationSettings.model_validate(raw)
                    except PydanticValidationError:
                        continue

            now = self._clock()
            created = default_settings(document_type)
            created = created.model_copy(update={"created_at": now, "updated_at": now})
            records.append(created.model_dump(mode="json", by_alias=True))
            self.storage.write_json(CUSTOMIZATION_SETTINGS_KEY, records)
        logger.info("Creato template di default per %s", document_type.value)
        return created

    def get_settings_by_id(self, settings_id: str) -> CustomizationSettings:
        """
        Raises:
            NotFoundError: Se le impostazioni non esistono
        """
        for item in self.get_all_settings():
            if item.id == settings_id:
                return item
        raise NotFoundError(f"Impostazioni di personalizzazione '{settings_id}' non trovate")

    def save_settings(
        self,
        settings: Union[CustomizationSettings, dict[str, Any]],
    ) -> CustomizationSettings:
        """
        Crea o sostituisce (per id) un'impostazione.

        Raises:
            BusinessValidationError: Se le impostazioni non superano validate_settings
            StorageError: Se lo storage non è leggibile
        """
        if not isinstance(settings, CustomizationSettings):
            try:
                settings = CustomizationSettings.model_validate(settings)
            except PydanticValidationError as e:
                raise BusinessValidationError(
                    "Impostazioni di personalizzazione non valide",
                    error_code="INVALID_CUSTOMIZATION",
                    extra={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
                )

        validation = validate_settings(settings)
        if not validation.valid:
            raise BusinessValidationError(
                "; ".join(validation.errors),
                error_code="INVALID_CUSTOMIZATION",
                extra={"errors": validation.errors},
            )

        with self.storage.lock(CUSTOMIZATION_SETTINGS_KEY):
            records = self._load_for_update()
            now = self._clock()
            settings = settings.model_copy(
                update={"created_at": settings.created_at or now, "updated_at": now}
            )
            data = settings.model_dump(mode="json", by_alias=True)
            for index, record in enumerate(records):
                if isinstance(record, dict) and record.get("id") == settings.id:
                    records[index] = data
                    break
            else:
                records.append(data)
            self.storage.write_json(CUSTOMIZATION_SETTINGS_KEY, records)

        logger.info("Impostazioni di personalizzazione '%s' salvate", settings.id)
        return settings

    def delete_settings(self, settings_id: str) -> bool:
        """
        Elimina un'impostazione. Restituisce False se non esiste.

        Raises:
            ConflictError: Se si tenta di eliminare un template di default
            StorageError: Se lo storage non è leggibile
        """
        with self.storage.lock(CUSTOMIZATION_SETTINGS_KEY):
            records = self._load_for_update()
            for index, record in enumerate(records):
                if isinstance(record, dict) and record.get("id") == settings_id:
                    if record.get("isDefault"):
                        raise ConflictError(
                            "Il template di default non può essere eliminato",
                            error_code="DEFAULT_SETTINGS_PROTECTED",
                        )
                    del records[index]
                    self.storage.write_json(CUSTOMIZATION_SETTINGS_KEY, records)
                    break
            else:
                return False

        logger.info("Impostazioni di personalizzazione '%s' eliminate", settings_id)
        return True

    def clone_settings(self, settings_id: str, new_name: str) -> CustomizationSettings:
        """Copia un'impostazione con nuovo id e nome; la copia non è mai default."""
        original = self.get_settings_by_id(settings_id)
        cloned = original.model_copy(
            update={
                "id": f"{original.document_type}-{uuid.uuid4().hex[:12]}",
                "name": new_name,
                "is_default": False,
                "created_at": None,
            },
            deep=True,
        )
        return self.save_settings(cloned)

    def export_settings(self, settings_ids: Optional[list[str]] = None) -> str:
        """Esporta le impostazioni (tutte o quelle indicate) come JSON."""
        selected = [
            item.model_dump(mode="json", by_alias=True)
            for item in self.get_all_settings()
            if settings_ids is None or item.id in settings_ids
        ]
        return json.dumps(
            {
                "exportedAt": self._clock().isoformat(),
                "version": EXPORT_VERSION,
                "settings": selected,
            },
            indent=2,
            ensure_ascii=False,
        )

    def import_settings(self, payload: str) -> SettingsImportResult:
        """
        Importa impostazioni da un export JSON.

        Ogni impostazione valida riceve un nuovo id e non è mai default;
        quelle non valide sono riportate in errors.
        """
        try:
            data = json.loads(payload)
        except ValueError as e:
            return SettingsImportResult(success=False, errors=[f"Import failed: {e}"])

        items = data.get("settings") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return SettingsImportResult(success=False, errors=["Invalid import format"])

        imported = 0
        errors = []
        for raw in items:
            name = raw.get("name", "?") if isinstance(raw, dict) else "?"
            try:
                parsed = CustomizationSettings.model_validate(raw)
                parsed = parsed.model_copy(
                    update={
                        "id": f"{parsed.document_type}-{uuid.uuid4().hex[:12]}",
                        "is_default": False,
                        "created_at": None,
                    }
                )
                self.save_settings(parsed)
            except PydanticValidationError:
                errors.append(f'Invalid settings "{name}"')
                continue
            except BusinessValidationError as e:
                errors.append(f'Invalid settings "{name}": {e.detail}')
                continue
            imported += 1

        logger.info("Import personalizzazioni: %d importate, %d errori", imported, len(errors))
        return SettingsImportResult(success=imported > 0, imported=imported, errors=errors)

    def _load(self) -> list[Any]:
        return self.storage.read_json(CUSTOMIZATION_SETTINGS_KEY, []).value

    def _load_for_update(self) -> list[Any]:
        return self.storage.read_json_for_update(CUSTOMIZATION_SETTINGS_KEY, [])
