"""
Router FastAPI per Backup e ripristino dei documenti
Progetto: Document Engine (Gestionale Documenti)
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response, status

from document_engine.api.deps import get_document_store
from document_engine.core.exceptions import BusinessValidationError
from document_engine.services.document_store import DocumentStore

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/backup",
    tags=["Backup"],
)


@router.get(
    "/export",
    name="backup_export",
    summary="Export documenti",
    description="Esporta tutte le liste di documenti in un unico JSON.",
    status_code=status.HTTP_200_OK,
)
def export_all(
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    """Restituisce {exportDate, version, data}."""
    return store.export_all()


@router.post(
    "/import",
    name="backup_import",
    summary="Import documenti",
    description="Ripristina le liste presenti nel backup sostituendo quelle salvate.",
    status_code=status.HTTP_200_OK,
)
def import_documents(
    payload: dict[str, Any] = Body(..., description="JSON prodotto da /backup/export"),
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    """
    Raises:
        BusinessValidationError: Se il backup non ha la sezione data
    """
    imported = store.import_documents(payload)
    return {"imported": imported}


@router.get(
    "/stats",
    name="backup_statistiche",
    summary="Statistiche archivio",
    description="Numero di documenti salvati per tipo.",
    status_code=status.HTTP_200_OK,
)
def get_stats(
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, int]:
    """Conteggio documenti per tipo."""
    return store.get_storage_stats()


@router.delete(
    "/",
    name="backup_svuota",
    summary="Elimina tutti i documenti",
    description="Elimina tutte le liste di documenti. Richiede confirm=true.",
    status_code=status.HTTP_204_NO_CONTENT,
)
def clear_all(
    confirm: bool = Query(False, description="Conferma esplicita"),
    store: DocumentStore = Depends(get_document_store),
) -> Response:
    """
    Raises:
        BusinessValidationError: Se manca la conferma
    """
    if not confirm:
        raise BusinessValidationError(
            "Conferma richiesta per eliminare tutti i documenti",
            error_code="CONFIRMATION_REQUIRED",
        )
    store.clear_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
