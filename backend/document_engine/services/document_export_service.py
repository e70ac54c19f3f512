"""
Service di export dei documenti (facade)
Progetto: Document Engine (Gestionale Documenti)

Collega i componenti del motore per produrre un artefatto:
caricamento -> risoluzione personalizzazione -> rendering -> dispatch.
"""

import logging
from typing import Any, Optional, Union

from jinja2 import TemplateError

from document_engine.core.exceptions import ExportError
from document_engine.schemas.customization import RenderContext
from document_engine.schemas.document import BaseDocument, DocumentType
from document_engine.services.company_profile_service import CompanyProfileService
from document_engine.services.customization_service import CustomizationResolver
from document_engine.services.document_renderer import DocumentRenderer, RenderTarget
from document_engine.services.document_store import DocumentStore
from document_engine.services.export_dispatcher import (
    ExportDispatcher,
    ExportFormat,
    ExportResult,
)

logger = logging.getLogger(__name__)

PRINT_FORMATS = frozenset({ExportFormat.PDF, ExportFormat.PRINT})


class DocumentExportService:
    """Rendering ed export di un documento salvato."""

    def __init__(
        self,
        store: DocumentStore,
        customization: CustomizationResolver,
        renderer: DocumentRenderer,
        dispatcher: ExportDispatcher,
        company_profiles: CompanyProfileService,
    ) -> None:
        self.store = store
        self.customization = customization
        self.renderer = renderer
        self.dispatcher = dispatcher
        self.company_profiles = company_profiles

    def render(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
        context: Optional[RenderContext] = None,
        role: Optional[str] = None,
        preset: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Restituisce l'HTML del documento con le impostazioni risolte.

        Raises:
            NotFoundError: Se il documento o il preset non esistono
        """
        document_type = DocumentType.parse(document_type)
        document = self.store.get_required(document_type, document_id)
        return self._render(document, document_type, context, role, preset, overrides)

    def export(
        self,
        document_type: Union[str, DocumentType],
        document_id: str,
        format: Union[str, ExportFormat],
        context: Optional[RenderContext] = None,
        role: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> ExportResult:
        """
        Esporta un documento nel formato richiesto.

        Il documento mancante solleva NotFoundError; gli errori di
        rendering ed export sono restituiti come export fallito.

        Args:
            document_type: Tipo documento
            document_id: Id del documento
            format: html, mht, word, pdf, print o view
            context: Contesto di rendering (default derivato dal formato)
            role: Ruolo utente per le personalizzazioni
            filename: Nome base del file (default: numero documento)

        Returns:
            ExportResult: Esito dell'export

        Raises:
            NotFoundError: Se il documento non esiste
        """
        document_type = DocumentType.parse(document_type)
        document = self.store.get_required(document_type, document_id)

        try:
            export_format = ExportFormat.parse(format)
        except ExportError as e:
            logger.warning(e.detail)
            return ExportResult(success=False, error=e.detail)

        if context is None:
            context = RenderContext(
                format=export_format.value,
                is_preview=export_format == ExportFormat.VIEW,
            )

        try:
            markup = self._render(document, document_type, context, role)
        except TemplateError as e:
            logger.error(
                "Rendering di %s %s fallito: %s",
                document_type.value,
                document.document_number,
                e,
                exc_info=True,
            )
            return ExportResult(success=False, format=export_format, error=str(e))

        base_name = filename or document.document_number or f"{document_type.value}-{document.id}"
        return self.dispatcher.dispatch(markup, export_format, base_name)

    def _render(
        self,
        document: BaseDocument,
        document_type: DocumentType,
        context: Optional[RenderContext],
        role: Optional[str] = None,
        preset: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None,
    ) -> str:
        settings = self.customization.resolve(
            document_type,
            overrides=overrides,
            context=context,
            document=document,
            preset=preset,
            role=role,
        )
        target = RenderTarget.SCREEN
        if context is not None and context.format in {f.value for f in PRINT_FORMATS}:
            target = RenderTarget.PRINT
        return self.renderer.render(
            document,
            document_type,
            settings,
            target=target,
            company_profile=self.company_profiles.get_profile(),
        )
