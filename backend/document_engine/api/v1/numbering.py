"""
Router FastAPI per la Numerazione automatica
Progetto: Document Engine (Gestionale Documenti)

Definisce gli endpoint per generare, visualizzare in anteprima e
configurare i contatori progressivi.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from document_engine.api.deps import get_numbering
from document_engine.schemas.numbering import Counter, CounterUpdate, NumberResult
from document_engine.services.auto_numbering_service import AutoNumberingService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/numbering",
    tags=["Numerazione"],
)


# -------------------------------------------------------------------
# Configurazione
# -------------------------------------------------------------------

@router.get(
    "/settings",
    name="numerazione_impostazioni",
    summary="Lista contatori",
    description="Recupera tutti i contatori, compresi i default non ancora creati.",
    response_model=list[Counter],
    status_code=status.HTTP_200_OK,
)
def get_counters(
    numbering: AutoNumberingService = Depends(get_numbering),
) -> list[Counter]:
    """Restituisce la configurazione di tutti i contatori."""
    return numbering.get_counters()


@router.put(
    "/settings/{key}",
    name="numerazione_configura",
    summary="Configura contatore",
    description="Crea o modifica prefisso, formato, passo e reset di un contatore.",
    response_model=Counter,
    status_code=status.HTTP_200_OK,
)
def configure_counter(
    key: str,
    update: CounterUpdate,
    numbering: AutoNumberingService = Depends(get_numbering),
) -> Counter:
    """
    Configura un contatore.

    Raises:
        BusinessValidationError: Se la configurazione non è valida
    """
    return numbering.configure(key, update)


# -------------------------------------------------------------------
# Generazione
# -------------------------------------------------------------------

@router.get(
    "/{key}/preview",
    name="numerazione_anteprima",
    summary="Anteprima numero",
    description="Restituisce il prossimo numero senza consumarlo.",
    response_model=NumberResult,
    status_code=status.HTTP_200_OK,
)
def preview_number(
    key: str,
    numbering: AutoNumberingService = Depends(get_numbering),
) -> NumberResult:
    """Anteprima del prossimo numero per la chiave."""
    return numbering.preview(key)


@router.post(
    "/{key}/next",
    name="numerazione_prossimo",
    summary="Genera numero",
    description="Genera e consuma il prossimo numero per la chiave.",
    response_model=NumberResult,
    status_code=status.HTTP_201_CREATED,
)
def next_number(
    key: str,
    numbering: AutoNumberingService = Depends(get_numbering),
) -> NumberResult:
    """
    Genera il prossimo numero.

    Un numero di fallback è restituito con authoritative=False.
    """
    result = numbering.next(key)
    if not result.authoritative:
        logger.warning("Numero di fallback per '%s': %s", key, result.reason)
    return result


@router.get(
    "/{key}/validate",
    name="numerazione_valida",
    summary="Valida numero",
    description="Verifica che un numero rispetti il formato del contatore.",
    status_code=status.HTTP_200_OK,
)
def validate_number(
    key: str,
    number: str = Query(..., min_length=1, description="Numero da verificare"),
    numbering: AutoNumberingService = Depends(get_numbering),
) -> dict[str, object]:
    """Verifica il formato di un numero."""
    return {"key": key, "number": number, "valid": numbering.validate_number(key, number)}


@router.post(
    "/{key}/reset",
    name="numerazione_azzera",
    summary="Azzera contatore",
    description="Azzera il contatore: il prossimo numero sarà start_from.",
    response_model=Counter,
    status_code=status.HTTP_200_OK,
)
def reset_counter(
    key: str,
    numbering: AutoNumberingService = Depends(get_numbering),
) -> Counter:
    """
    Azzera un contatore.

    Raises:
        NotFoundError: Se la chiave non ha numerazione
    """
    return numbering.reset(key)
