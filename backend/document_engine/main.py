"""
Main Entry Point - FastAPI Application
Progetto: Document Engine (Gestionale Documenti)

Configura l'applicazione FastAPI con middleware, router e lifecycle.

Avvio: uvicorn document_engine.main:app
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from document_engine.api.deps import get_engine
from document_engine.core.config import settings
from document_engine.core.exceptions import (
    AppException,
    BusinessValidationError,
    ConflictError,
    ExportError,
    InvalidStateError,
    NotFoundError,
    StorageError,
)

# ------------------------------------------------------------
# Configurazione Logging
# ------------------------------------------------------------
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Lifespan Handler
# ------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Gestisce il ciclo di vita dell'applicazione.

    - Startup: costruisce i servizi del motore (e la tabella dello storage)
    - Shutdown: nessuna risorsa da rilasciare oltre al log
    """
    # Startup
    logger.info("Avvio %s v%s", settings.app_name, settings.app_version)
    app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("Applicazione avviata con successo")

    yield

    # Shutdown
    logger.info("Applicazione arrestata")


# ------------------------------------------------------------
# FastAPI Application
# ------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    description="Motore documentale: numerazione, imposte, workflow e rendering - Backend API",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# ------------------------------------------------------------
# Exception Handlers
# ------------------------------------------------------------
def _error_response(exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "extra": exc.extra,
        },
    )


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """
    Gestore per eccezioni NotFoundError.

    Converte l'eccezione in risposta HTTP 404.
    """
    return _error_response(exc)


@app.exception_handler(BusinessValidationError)
async def validation_exception_handler(
    request: Request, exc: BusinessValidationError
) -> JSONResponse:
    """
    Gestore per eccezioni BusinessValidationError.

    Converte l'eccezione in risposta HTTP 422.
    """
    return _error_response(exc)


@app.exception_handler(InvalidStateError)
async def invalid_state_exception_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    """
    Gestore per eccezioni InvalidStateError.

    Converte l'eccezione in risposta HTTP 409 con lo stato originale in extra.
    """
    logger.info("Operazione rifiutata per stato non valido: %s", exc.detail)
    return _error_response(exc)


@app.exception_handler(ConflictError)
async def conflict_exception_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """
    Gestore per eccezioni ConflictError.

    Converte l'eccezione in risposta HTTP 409.
    """
    return _error_response(exc)


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError) -> JSONResponse:
    """
    Gestore per eccezioni StorageError sulle scritture.

    Converte l'eccezione in risposta HTTP 500.
    """
    logger.error("Errore dello storage: %s", exc.detail, exc_info=True)
    return _error_response(exc)


@app.exception_handler(ExportError)
async def export_exception_handler(request: Request, exc: ExportError) -> JSONResponse:
    """
    Gestore per eccezioni ExportError non intercettate dal dispatcher.

    Converte l'eccezione in risposta HTTP 500.
    """
    logger.error("Export fallito: %s", exc.detail, exc_info=True)
    return _error_response(exc)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Gestore generico per tutte le eccezioni non catturate.

    Converte l'eccezione in risposta HTTP 500 e logga l'errore.
    """
    logger.error(
        "Unhandled exception: %s",
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Errore interno del server", "error_code": "INTERNAL_SERVER_ERROR"},
    )


# ------------------------------------------------------------
# Middleware CORS
# ------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------
@app.get(
    "/health",
    name="Health Check",
    summary="Controlla lo stato dell'applicazione",
    tags=["System"],
)
async def health_check() -> dict[str, str]:
    """
    Endpoint per il controllo dello stato di salute.

    Returns:
        dict: Stato dell'applicazione
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.app_env,
    }


# ------------------------------------------------------------
# Router
# ------------------------------------------------------------
from document_engine.api.v1 import api_v1_router  # noqa: E402

app.include_router(api_v1_router)
