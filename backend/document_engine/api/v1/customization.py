"""
Router FastAPI per la Personalizzazione dei documenti
Progetto: Document Engine (Gestionale Documenti)

Definisce gli endpoint per gestire i template di personalizzazione,
i preset e l'import/export delle impostazioni.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from pydantic import BaseModel, Field

from document_engine.api.deps import get_customization
from document_engine.core.exceptions import NotFoundError
from document_engine.schemas.customization import (
    CustomizationPreset,
    CustomizationSettings,
    RenderContext,
    SettingsImportResult,
)
from document_engine.services.customization_service import CustomizationResolver

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/customization",
    tags=["Personalizzazione"],
)


class CloneRequest(BaseModel):
    """Payload per la copia di un template."""

    name: str = Field(..., min_length=1, description="Nome della copia")


class ImportRequest(BaseModel):
    """Payload per l'import: JSON prodotto dall'export."""

    payload: str = Field(..., min_length=1, description="JSON delle impostazioni")


# -------------------------------------------------------------------
# Preset e risoluzione
# -------------------------------------------------------------------

@router.get(
    "/presets",
    name="personalizzazione_preset",
    summary="Lista preset",
    description="Preset predefiniti applicabili in fase di risoluzione.",
    response_model=list[CustomizationPreset],
    status_code=status.HTTP_200_OK,
)
def get_presets(
    customization: CustomizationResolver = Depends(get_customization),
) -> list[CustomizationPreset]:
    """Restituisce i preset predefiniti."""
    return customization.get_presets()


@router.get(
    "/resolve/{document_type}",
    name="personalizzazione_risolvi",
    summary="Impostazioni risolte",
    description="Impostazioni effettive per tipo documento, preset, ruolo e contesto.",
    response_model=CustomizationSettings,
    status_code=status.HTTP_200_OK,
)
def resolve_settings(
    document_type: str,
    preset: Optional[str] = Query(None, description="Preset"),
    role: Optional[str] = Query(None, description="Ruolo utente"),
    format: Optional[str] = Query(None, description="Formato di destinazione"),
    preview: bool = Query(False, description="Anteprima"),
    mobile: bool = Query(False, description="Schermo mobile"),
    customization: CustomizationResolver = Depends(get_customization),
) -> CustomizationSettings:
    """
    Risolve le impostazioni senza un documento specifico.

    Raises:
        NotFoundError: Se il preset non esiste
    """
    context = RenderContext(format=format, is_preview=preview, is_mobile=mobile)
    return customization.resolve(document_type, context=context, preset=preset, role=role)


# -------------------------------------------------------------------
# Import / export
# -------------------------------------------------------------------

@router.get(
    "/export",
    name="personalizzazione_export",
    summary="Export impostazioni",
    description="Esporta le impostazioni (tutte o quelle indicate) in JSON.",
    status_code=status.HTTP_200_OK,
)
def export_settings(
    ids: Optional[list[str]] = Query(None, description="Id da esportare"),
    customization: CustomizationResolver = Depends(get_customization),
) -> Response:
    """Restituisce il JSON di export come allegato."""
    return Response(
        content=customization.export_settings(ids),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="document-customization.json"'},
    )


@router.post(
    "/import",
    name="personalizzazione_import",
    summary="Import impostazioni",
    description="Importa impostazioni da un export JSON; ogni template riceve un nuovo id.",
    response_model=SettingsImportResult,
    status_code=status.HTTP_200_OK,
)
def import_settings(
    request: ImportRequest,
    customization: CustomizationResolver = Depends(get_customization),
) -> SettingsImportResult:
    """Importa impostazioni; gli errori sono riportati nell'esito."""
    return customization.import_settings(request.payload)


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

@router.get(
    "/",
    name="personalizzazione_lista",
    summary="Lista impostazioni",
    description="Tutte le impostazioni di personalizzazione salvate.",
    response_model=list[CustomizationSettings],
    status_code=status.HTTP_200_OK,
)
def list_settings(
    customization: CustomizationResolver = Depends(get_customization),
) -> list[CustomizationSettings]:
    """Restituisce tutte le impostazioni salvate."""
    return customization.get_all_settings()


@router.get(
    "/type/{document_type}",
    name="personalizzazione_per_tipo",
    summary="Impostazioni di default per tipo",
    description="Template di default del tipo documento, creato al primo accesso.",
    response_model=CustomizationSettings,
    status_code=status.HTTP_200_OK,
)
def get_settings_for_type(
    document_type: str,
    customization: CustomizationResolver = Depends(get_customization),
) -> CustomizationSettings:
    """Restituisce il template di default del tipo."""
    return customization.get_settings(document_type)


@router.get(
    "/{settings_id}",
    name="personalizzazione_dettaglio",
    summary="Dettaglio impostazioni",
    description="Recupera un template per id.",
    response_model=CustomizationSettings,
    status_code=status.HTTP_200_OK,
)
def get_settings(
    settings_id: str,
    customization: CustomizationResolver = Depends(get_customization),
) -> CustomizationSettings:
    """
    Raises:
        NotFoundError: Se il template non esiste
    """
    return customization.get_settings_by_id(settings_id)


@router.put(
    "/",
    name="personalizzazione_salva",
    summary="Salva impostazioni",
    description="Crea o sostituisce un template (per id).",
    response_model=CustomizationSettings,
    status_code=status.HTTP_200_OK,
)
def save_settings(
    payload: dict[str, Any] = Body(..., description="Impostazioni complete"),
    customization: CustomizationResolver = Depends(get_customization),
) -> CustomizationSettings:
    """
    Salva un template.

    Raises:
        BusinessValidationError: Se le impostazioni non sono valide
    """
    return customization.save_settings(payload)


@router.delete(
    "/{settings_id}",
    name="personalizzazione_elimina",
    summary="Elimina impostazioni",
    description="Elimina un template; i template di default non sono eliminabili.",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_settings(
    settings_id: str,
    customization: CustomizationResolver = Depends(get_customization),
) -> Response:
    """
    Raises:
        NotFoundError: Se il template non esiste
        ConflictError: Se il template è di default
    """
    if not customization.delete_settings(settings_id):
        raise NotFoundError(f"Impostazioni di personalizzazione '{settings_id}' non trovate")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{settings_id}/clone",
    name="personalizzazione_clona",
    summary="Clona impostazioni",
    description="Copia un template con un nuovo nome; la copia non è mai di default.",
    response_model=CustomizationSettings,
    status_code=status.HTTP_201_CREATED,
)
def clone_settings(
    settings_id: str,
    request: CloneRequest,
    customization: CustomizationResolver = Depends(get_customization),
) -> CustomizationSettings:
    """
    Raises:
        NotFoundError: Se il template non esiste
    """
    return customization.clone_settings(settings_id, request.name)
