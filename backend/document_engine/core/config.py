"""
Configurazione applicazione - Settings
Progetto: Document Engine (Gestionale Documenti)

Definisce le impostazioni dell'applicazione caricate da variabili d'ambiente.
"""


from __future__ import annotations
import logging
from functools import lru_cache
from typing import Literal
from decimal import Decimal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configurazione applicazione.

    Carica le impostazioni da variabili d'ambiente.
    Valori di default adatti per sviluppo locale.

    Per ottenere un'istanza singleton:
    - In FastAPI: usa `Depends(get_settings)` per Dependency Injection
    - Altrove: usa `get_settings()` direttamente
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------
    # Configurazione Applicazione
    # ------------------------------------------------------------
    app_name: str = Field(
        default="Document Engine",
        description="Nome applicazione",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Versione applicazione",
    )

    app_env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Ambiente di esecuzione (development | production | testing)",
    )

    debug: bool = Field(
        default=False,
        description="Modalità debug",
    )

    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Origini CORS permesse",
    )

    # ------------------------------------------------------------
    # Configurazione Logging
    # ------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Livello logging",
    )

    # ------------------------------------------------------------
    # Configurazione Storage chiave/valore
    # ------------------------------------------------------------
    storage_backend: Literal["memory", "database"] = Field(
        default="database",
        description="Backend dello storage chiave/valore (memory | database)",
    )

    database_url: str = Field(
        default="sqlite:///./documents.db",
        description="URL connessione database per lo storage chiave/valore (formato sync)",
    )

    database_echo: bool = Field(
        default=False,
        description="Log delle query SQL",
    )

    # ------------------------------------------------------------
    # Dati azienda (seed del profilo aziendale)
    # ------------------------------------------------------------
    company_name: str = Field(
        default="Your Company Ltd.",
        description="Ragione sociale stampata sui documenti",
    )

    company_address: str = Field(
        default="",
        description="Indirizzo azienda",
    )

    company_city: str = Field(
        default="",
        description="Città azienda",
    )

    company_country: str = Field(
        default="",
        description="Nazione azienda",
    )

    company_phone: str = Field(
        default="",
        description="Telefono azienda",
    )

    company_email: str = Field(
        default="",
        description="Email azienda",
    )

    company_tax_id: str = Field(
        default="",
        description="Codice fiscale / PIN azienda",
    )

    # ------------------------------------------------------------
    # Configurazione Documenti
    # ------------------------------------------------------------
    default_currency: str = Field(
        default="KES",
        description="Valuta di default dei documenti",
    )

    default_tax_rate: Decimal = Field(
        default=Decimal("16"),
        description="Aliquota di default (percentuale)",
    )

    default_tax_type: Literal["inclusive", "exclusive", "per_item", "overall"] = Field(
        default="exclusive",
        description="Modalità di calcolo imposta di default",
    )

    invoice_due_days: int = Field(
        default=30,
        ge=0,
        description="Giorni di scadenza delle fatture generate da ordine",
    )

    # ------------------------------------------------------------
    # Configurazione Numerazione
    # ------------------------------------------------------------
    numbering_seed_defaults: bool = Field(
        default=True,
        description=(
            "Crea i contatori con i formati predefiniti alla prima richiesta. "
            "Se False, le chiavi non configurate usano il numero di fallback."
        ),
    )

    # ------------------------------------------------------------
    # Configurazione Workflow
    # ------------------------------------------------------------
    workflow_allow_reconversion: bool = Field(
        default=True,
        description=(
            "Consente di convertire di nuovo un documento già convertito "
            "(registrato come warning). Se False la riconversione è rifiutata."
        ),
    )

    # ------------------------------------------------------------
    # Configurazione Personalizzazione
    # ------------------------------------------------------------
    premium_total_threshold: Decimal = Field(
        default=Decimal("100000"),
        description="Totale oltre il quale si applica lo stile premium",
    )

    low_value_total_threshold: Decimal = Field(
        default=Decimal("5000"),
        description="Totale sotto il quale firma e QR code sono nascosti",
    )

    # ------------------------------------------------------------
    # Configurazione Export
    # ------------------------------------------------------------
    export_dir: str = Field(
        default="./exports",
        description="Cartella in cui il rendering target su file scrive gli export",
    )

    @property
    def is_production(self) -> bool:
        """Verifica se l'applicazione è in produzione."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Verifica se l'applicazione è in sviluppo."""
        return self.app_env == "development"

    # ------------------------------------------------------------
    # Validatori
    # ------------------------------------------------------------

    @field_validator(
        "default_tax_rate",
        "premium_total_threshold",
        "low_value_total_threshold",
        mode="before",
    )
    @classmethod
    def convert_decimal_from_string(cls, v) -> Decimal:
        """Gestisce input con virgola convertendolo in punto."""
        if v is None:
            return v
        if isinstance(v, str):
            v = v.replace(",", ".")
        return Decimal(str(v))

    @field_validator("default_tax_rate")
    @classmethod
    def validate_default_tax_rate(cls, v: Decimal) -> Decimal:
        """L'aliquota di default deve essere compresa tra 0 e 100."""
        if v < 0 or v > 100:
            raise ValueError("default_tax_rate deve essere compreso tra 0 e 100")
        return v

    @field_validator("export_dir")
    @classmethod
    def validate_export_dir(cls, v: str) -> str:
        """Emette warning se il path è relativo."""
        if v and not v.startswith("/"):
            logging.getLogger(__name__).debug(
                "export_dir è relativo: %s. Usa un percorso assoluto in produzione.", v
            )
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validazione settings obbligatori in produzione."""
        if self.app_env != "production":
            return self

        errors = []

        if self.debug:
            errors.append("- debug: deve essere False in produzione")

        if self.storage_backend == "memory":
            errors.append("- storage_backend: 'memory' non persiste i dati in produzione")

        for origin in self.cors_origins:
            if "localhost" in origin or "127.0.0.1" in origin:
                errors.append(
                    f"- cors_origins: l'origine '{origin}' non è consentita in produzione"
                )

        if errors:
            error_msg = "Errore di configurazione in produzione:\n" + "\n".join(errors)
            raise ValueError(error_msg)

        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Restituisce l'istanza singleton delle impostazioni.

    Usa lru_cache per garantire che Settings() venga istanziato
    una sola volta e riutilizzato in tutta l'applicazione.
    In fase di test, usa get_settings.cache_clear() per resettare.

    Returns:
        Settings: Istanza delle impostazioni applicazione
    """
    return Settings()


# Istanza singleton delle impostazioni per uso diretto in modulo
settings = get_settings()
