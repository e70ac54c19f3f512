"""
Router FastAPI per il Profilo Aziendale
Progetto: Document Engine (Gestionale Documenti)
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status

from document_engine.api.deps import get_company_profiles
from document_engine.schemas.company import CompanyProfile
from document_engine.services.company_profile_service import CompanyProfileService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/company",
    tags=["Azienda"],
)


@router.get(
    "/",
    name="azienda_profilo",
    summary="Profilo aziendale",
    description="Dati azienda, banca, mobile money e termini di pagamento.",
    response_model=CompanyProfile,
    status_code=status.HTTP_200_OK,
)
def get_profile(
    profiles: CompanyProfileService = Depends(get_company_profiles),
) -> CompanyProfile:
    """Restituisce il profilo (quello di default se non ancora salvato)."""
    return profiles.get_profile()


@router.put(
    "/",
    name="azienda_salva",
    summary="Salva profilo aziendale",
    description="Sostituisce il profilo aziendale.",
    response_model=CompanyProfile,
    status_code=status.HTTP_200_OK,
)
def save_profile(
    payload: dict[str, Any] = Body(..., description="Profilo aziendale"),
    profiles: CompanyProfileService = Depends(get_company_profiles),
) -> CompanyProfile:
    """
    Raises:
        BusinessValidationError: Se il profilo non è valido
    """
    return profiles.save_profile(payload)
