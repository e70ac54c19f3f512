"""
Router FastAPI per i Documenti commerciali
Progetto: Document Engine (Gestionale Documenti)

Definisce gli endpoint per CRUD, stato, conversioni, rendering ed export
di tutti i tipi documento. Il tipo è un parametro di percorso
(quote, sales-order, invoice, ...).

Gli endpoint sono sincroni: il core è sincrono e FastAPI li esegue nel
threadpool, quindi le scritture concorrenti passano dai lock dello storage.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from fastapi.responses import HTMLResponse

from document_engine.api.deps import (
    get_document_store,
    get_export_service,
    get_workflow,
)
from document_engine.core.exceptions import NotFoundError
from document_engine.schemas.customization import RenderContext
from document_engine.schemas.document import (
    BaseDocument,
    DocumentType,
    PaymentCreate,
    StatusUpdate,
)
from document_engine.schemas.workflow import PaymentRecordResult, WorkflowAction
from document_engine.services.document_export_service import DocumentExportService
from document_engine.services.document_store import DocumentStore
from document_engine.services.document_workflow_service import DocumentWorkflow
from document_engine.services.export_dispatcher import ExportResult

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/documents",
    tags=["Documenti"],
)


def _serialize(document: BaseDocument) -> dict[str, Any]:
    return document.to_storage()


# -------------------------------------------------------------------
# Pagamenti
# -------------------------------------------------------------------

@router.post(
    "/invoice/{invoice_id}/payments",
    name="fattura_registra_pagamento",
    summary="Registra pagamento",
    description="Registra un pagamento su fattura creando la ricevuta corrispondente.",
    response_model=PaymentRecordResult,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    invoice_id: str,
    payment: PaymentCreate,
    workflow: DocumentWorkflow = Depends(get_workflow),
) -> PaymentRecordResult:
    """
    Registra un pagamento su una fattura.

    Raises:
        NotFoundError: Se la fattura non esiste
        InvalidStateError: Se la fattura non accetta pagamenti
    """
    return workflow.record_payment(
        invoice_id,
        amount=payment.amount,
        payment_method=payment.payment_method,
        reference=payment.reference,
    )


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

@router.get(
    "/{document_type}",
    name="documenti_lista",
    summary="Lista documenti",
    description="Recupera i documenti del tipo con filtro opzionale per stato o testo.",
    response_model=list[dict[str, Any]],
    status_code=status.HTTP_200_OK,
)
def list_documents(
    document_type: str,
    status_filter: Optional[str] = Query(None, alias="status", description="Filtra per stato"),
    q: Optional[str] = Query(None, description="Ricerca su numero, note e controparte"),
    store: DocumentStore = Depends(get_document_store),
) -> list[dict[str, Any]]:
    """
    Recupera i documenti di un tipo.

    Args:
        document_type: Tipo documento
        status_filter: Stato (confronto normalizzato)
        q: Termine di ricerca
        store: Archivio documenti (iniettato automaticamente)

    Returns:
        list: Documenti serializzati in camelCase
    """
    if q:
        documents = store.search(document_type, q)
    else:
        documents = store.list(document_type)
    if status_filter:
        wanted = status_filter.strip().lower()
        documents = [d for d in documents if d.normalized_status == wanted]
    return [_serialize(d) for d in documents]


@router.get(
    "/{document_type}/{document_id}",
    name="documento_dettaglio",
    summary="Dettaglio documento",
    description="Recupera un documento per id.",
    response_model=dict[str, Any],
    status_code=status.HTTP_200_OK,
)
def get_document(
    document_type: str,
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    """
    Recupera un documento.

    Raises:
        NotFoundError: Se il documento non esiste
    """
    return _serialize(store.get_required(document_type, document_id))


@router.post(
    "/{document_type}",
    name="documento_crea",
    summary="Crea documento",
    description="Crea un nuovo documento; numero e totali sono calcolati dal motore.",
    response_model=dict[str, Any],
    status_code=status.HTTP_201_CREATED,
)
def create_document(
    document_type: str,
    payload: dict[str, Any] = Body(..., description="Documento in camelCase o snake_case"),
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    """
    Crea un documento.

    Raises:
        BusinessValidationError: Se mancano campi obbligatori
    """
    payload.pop("id", None)
    return _serialize(store.save(document_type, payload))


@router.put(
    "/{document_type}/{document_id}",
    name="documento_aggiorna",
    summary="Aggiorna documento",
    description="Sostituisce un documento; un id sconosciuto crea un nuovo documento con quell'id.",
    response_model=dict[str, Any],
    status_code=status.HTTP_200_OK,
)
def update_document(
    document_type: str,
    document_id: str,
    payload: dict[str, Any] = Body(..., description="Documento completo"),
    store: DocumentStore = Depends(get_document_store),
) -> dict[str, Any]:
    """
    Salva un documento con l'id indicato.

    Raises:
        BusinessValidationError: Se il documento non è valido
    """
    payload["id"] = document_id
    return _serialize(store.save(document_type, payload))


@router.delete(
    "/{document_type}/{document_id}",
    name="documento_elimina",
    summary="Elimina documento",
    description="Elimina un documento.",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_document(
    document_type: str,
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> Response:
    """
    Elimina un documento.

    Raises:
        NotFoundError: Se il documento non esiste
    """
    if not store.delete(document_type, document_id):
        raise NotFoundError(
            f"Documento {DocumentType.parse(document_type).value} {document_id} non trovato"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------------------------------------------------
# Workflow
# -------------------------------------------------------------------

@router.patch(
    "/{document_type}/{document_id}/status",
    name="documento_stato",
    summary="Cambia stato",
    description="Aggiorna lo stato validando la transizione per il tipo documento.",
    status_code=status.HTTP_200_OK,
)
def update_status(
    document_type: str,
    document_id: str,
    status_update: StatusUpdate,
    workflow: DocumentWorkflow = Depends(get_workflow),
) -> dict[str, Any]:
    """
    Aggiorna lo stato di un documento.

    Raises:
        NotFoundError: Se il documento non esiste
        InvalidStateError: Se la transizione non è ammessa
    """
    result = workflow.update_status(document_type, document_id, status_update.status)
    return {
        "document": _serialize(result.document),
        "previousStatus": result.previous_status,
        "availableActions": [
            action.model_dump(mode="json", by_alias=True) for action in result.available_actions
        ],
    }


@router.get(
    "/{document_type}/{document_id}/actions",
    name="documento_azioni",
    summary="Azioni disponibili",
    description="Conversioni disponibili per il documento nel suo stato attuale.",
    status_code=status.HTTP_200_OK,
)
def get_actions(
    document_type: str,
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
    workflow: DocumentWorkflow = Depends(get_workflow),
) -> dict[str, Any]:
    """
    Restituisce azioni e messaggio di workflow del documento.

    Raises:
        NotFoundError: Se il documento non esiste
    """
    document = store.get_required(document_type, document_id)
    actions: list[WorkflowAction] = workflow.get_available_actions(document_type, document.status)
    return {
        "status": document.status,
        "message": workflow.get_workflow_status_message(document_type, document.status),
        "actions": [action.model_dump(mode="json", by_alias=True) for action in actions],
    }


@router.post(
    "/{document_type}/{document_id}/convert/{target_type}",
    name="documento_converti",
    summary="Converti documento",
    description="Crea un nuovo documento del tipo indicato a partire da quello esistente.",
    response_model=dict[str, Any],
    status_code=status.HTTP_201_CREATED,
)
def convert_document(
    document_type: str,
    document_id: str,
    target_type: str,
    workflow: DocumentWorkflow = Depends(get_workflow),
) -> dict[str, Any]:
    """
    Converte un documento.

    Raises:
        NotFoundError: Se la sorgente non esiste
        BusinessValidationError: Se la conversione non è prevista
        InvalidStateError: Se lo stato non consente la conversione
    """
    return _serialize(workflow.convert(document_id, document_type, target_type))


# -------------------------------------------------------------------
# Rendering ed export
# -------------------------------------------------------------------

@router.get(
    "/{document_type}/{document_id}/render",
    name="documento_render",
    summary="Rendering HTML",
    description="Restituisce l'HTML del documento con le personalizzazioni risolte.",
    response_class=HTMLResponse,
    status_code=status.HTTP_200_OK,
)
def render_document(
    document_type: str,
    document_id: str,
    format: Optional[str] = Query(None, description="Formato di destinazione (print, pdf, ...)"),
    preview: bool = Query(False, description="Rendering per anteprima"),
    mobile: bool = Query(False, description="Rendering per schermo mobile"),
    role: Optional[str] = Query(None, description="Ruolo utente"),
    preset: Optional[str] = Query(None, description="Preset di personalizzazione"),
    exports: DocumentExportService = Depends(get_export_service),
) -> HTMLResponse:
    """
    Rendering HTML di un documento.

    Raises:
        NotFoundError: Se il documento o il preset non esistono
    """
    context = RenderContext(format=format, is_preview=preview, is_mobile=mobile)
    html = exports.render(document_type, document_id, context=context, role=role, preset=preset)
    return HTMLResponse(content=html)


@router.get(
    "/{document_type}/{document_id}/export/{export_format}",
    name="documento_export",
    summary="Export documento",
    description="Esporta il documento in html, mht, word, pdf, print o view.",
    response_model=ExportResult,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def export_document(
    document_type: str,
    document_id: str,
    export_format: str,
    role: Optional[str] = Query(None, description="Ruolo utente"),
    exports: DocumentExportService = Depends(get_export_service),
) -> ExportResult:
    """
    Esporta un documento. Un export fallito è restituito con success=False.

    Raises:
        NotFoundError: Se il documento non esiste
    """
    result = exports.export(document_type, document_id, export_format, role=role)
    if not result.success:
        logger.warning("Export %s di %s fallito: %s", export_format, document_id, result.error)
    return result
