"""
API v1 Routes
Progetto: Document Engine (Gestionale Documenti)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from document_engine.api.v1 import backup, company, customization, documents, numbering

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(documents.router)
api_v1_router.include_router(numbering.router)
api_v1_router.include_router(customization.router)
api_v1_router.include_router(company.router)
api_v1_router.include_router(backup.router)

# Esportazione
__all__ = ["api_v1_router"]
