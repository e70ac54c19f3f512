"""
API Routes
Progetto: Document Engine (Gestionale Documenti)

Modulo per l'aggregazione dei router versionati.
"""

from document_engine.api.v1 import api_v1_router

# Esportazione router
__all__ = ["api_v1_router"]
