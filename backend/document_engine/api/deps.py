"""
Dependency Injection per i servizi del motore documentale
Progetto: Document Engine (Gestionale Documenti)

I servizi sono costruiti una sola volta (DocumentEngine) e condividono
lo stesso storage, quindi gli stessi lock per chiave. Nei test
get_engine si sostituisce con app.dependency_overrides.
"""

import datetime
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends

from document_engine.core.config import Settings, get_settings
from document_engine.core.storage import JsonStorage, KeyValueStore, build_key_value_store
from document_engine.services.auto_numbering_service import AutoNumberingService
from document_engine.services.company_profile_service import CompanyProfileService
from document_engine.services.customization_service import CustomizationResolver
from document_engine.services.document_export_service import DocumentExportService
from document_engine.services.document_renderer import DocumentRenderer
from document_engine.services.document_store import DocumentStore
from document_engine.services.document_workflow_service import (
    DocumentWorkflow,
    RemoteDocumentSource,
)
from document_engine.services.export_dispatcher import (
    ExportDispatcher,
    FileSystemRenderingTarget,
    RenderingTarget,
)


class DocumentEngine:
    """Servizi del motore collegati tra loro."""

    def __init__(
        self,
        settings: Settings,
        kv_store: Optional[KeyValueStore] = None,
        remote_source: Optional[RemoteDocumentSource] = None,
        rendering_target: Optional[RenderingTarget] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.settings = settings
        self.storage = JsonStorage(kv_store or build_key_value_store(settings))
        self.numbering = AutoNumberingService(self.storage, settings=settings, clock=clock)
        self.store = DocumentStore(self.storage, numbering=self.numbering, clock=clock)
        self.workflow = DocumentWorkflow(
            self.store,
            self.numbering,
            remote_source=remote_source,
            settings=settings,
            clock=clock,
        )
        self.company_profiles = CompanyProfileService(self.storage, settings=settings)
        self.customization = CustomizationResolver(
            self.storage,
            company_profiles=self.company_profiles,
            settings=settings,
            clock=clock,
        )
        self.renderer = DocumentRenderer(clock=clock)
        self.dispatcher = ExportDispatcher(
            rendering_target or FileSystemRenderingTarget(settings.export_dir),
            clock=clock,
        )
        self.exports = DocumentExportService(
            self.store,
            self.customization,
            self.renderer,
            self.dispatcher,
            self.company_profiles,
        )


@lru_cache()
def get_engine() -> DocumentEngine:
    """
    Restituisce l'istanza singleton del motore.

    Usa lru_cache come get_settings(); nei test usare
    app.dependency_overrides[get_engine].
    """
    return DocumentEngine(get_settings())


def get_document_store(engine: DocumentEngine = Depends(get_engine)) -> DocumentStore:
    return engine.store


def get_workflow(engine: DocumentEngine = Depends(get_engine)) -> DocumentWorkflow:
    return engine.workflow


def get_numbering(engine: DocumentEngine = Depends(get_engine)) -> AutoNumberingService:
    return engine.numbering


def get_customization(engine: DocumentEngine = Depends(get_engine)) -> CustomizationResolver:
    return engine.customization


def get_export_service(engine: DocumentEngine = Depends(get_engine)) -> DocumentExportService:
    return engine.exports


def get_company_profiles(engine: DocumentEngine = Depends(get_engine)) -> CompanyProfileService:
    return engine.company_profiles
