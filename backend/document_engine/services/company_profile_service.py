"""
Service per il Profilo Aziendale
Progetto: Document Engine (Gestionale Documenti)

Il profilo (dati azienda, banca, mobile money, termini di pagamento) è
salvato nel dominio impostazioni 'company' dello storage chiave/valore.
Al primo accesso viene creato dai valori company_* della configurazione.
"""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from document_engine.core.config import Settings, get_settings
from document_engine.core.exceptions import BusinessValidationError
from document_engine.core.storage import JsonStorage
from document_engine.schemas.company import CompanyProfile
from document_engine.schemas.document import Company

logger = logging.getLogger(__name__)

COMPANY_SETTINGS_KEY = "company-settings"


class CompanyProfileService:
    """Lettura e salvataggio del profilo aziendale."""

    def __init__(self, storage: JsonStorage, settings: Optional[Settings] = None) -> None:
        self.storage = storage
        self.settings = settings or get_settings()

    def default_profile(self) -> CompanyProfile:
        """Profilo iniziale costruito dalla configurazione."""
        return CompanyProfile(
            company=Company(
                name=self.settings.company_name,
                address=self.settings.company_address,
                city=self.settings.company_city,
                country=self.settings.company_country,
                phone=self.settings.company_phone,
                email=self.settings.company_email,
                tax_id=self.settings.company_tax_id,
            ),
            payment_terms_text=(
                f"Payment due within {self.settings.invoice_due_days} days of invoice date."
            ),
        )

    def get_profile(self) -> CompanyProfile:
        """
        Restituisce il profilo salvato.

        Un profilo assente o illeggibile è sostituito dal profilo di
        default; i dati corrotti restano nello storage.
        """
        result = self.storage.read_json(COMPANY_SETTINGS_KEY, None)
        if result.value is None:
            return self.default_profile()
        try:
            return CompanyProfile.model_validate(result.value)
        except PydanticValidationError:
            logger.warning("Profilo aziendale non valido, uso il profilo di default")
            return self.default_profile()

    def save_profile(self, profile: Union[CompanyProfile, dict[str, Any]]) -> CompanyProfile:
        """
        Salva il profilo aziendale.

        Raises:
            BusinessValidationError: Se il profilo non è valido
        """
        if not isinstance(profile, CompanyProfile):
            try:
                profile = CompanyProfile.model_validate(profile)
            except PydanticValidationError as e:
                raise BusinessValidationError(
                    "Profilo aziendale non valido",
                    extra={"errors": e.errors(include_url=False, include_context=False)},
                )

        with self.storage.lock(COMPANY_SETTINGS_KEY):
            self.storage.write_json(
                COMPANY_SETTINGS_KEY, profile.model_dump(mode="json", by_alias=True)
            )
        logger.info("Profilo aziendale salvato (%s)", profile.company.name)
        return profile
