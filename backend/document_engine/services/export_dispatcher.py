"""
Service per l'export dei documenti
Progetto: Document Engine (Gestionale Documenti)

Il dispatcher riceve il markup già renderizzato e si limita a
imbustarlo nel formato richiesto:
- html:  file HTML così com'è
- mht:   archivio web multipart/related con una sola parte HTML
- word:  HTML con i namespace Office e i meta ProgId/Generator di Word
- pdf / print: markup con direttive print-color-adjust, passato all'azione
  di stampa del rendering target (il PDF è prodotto dal target)
- view:  anteprima restituita come stringa

Non ricalcola imposte né numerazione. Gli errori sono intercettati qui
e restituiti come ExportResult(success=False).
"""

import datetime
import logging
import os
import re
from email.charset import QP, Charset
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Callable, NamedTuple, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from document_engine.core.exceptions import ExportError

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    """Formati di export supportati."""
    HTML = "html"
    MHT = "mht"
    WORD = "word"
    PDF = "pdf"
    PRINT = "print"
    VIEW = "view"

    @classmethod
    def parse(cls, value: Union[str, "ExportFormat"]) -> "ExportFormat":
        """
        Converte una stringa in ExportFormat (accetta anche doc, mhtml, preview).

        Raises:
            ExportError: Se il formato non è supportato
        """
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        normalized = _FORMAT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ExportError(
                f"Formato di export non supportato: '{value}'",
                error_code="UNSUPPORTED_EXPORT_FORMAT",
            )


_FORMAT_ALIASES = {
    "doc": "word",
    "mhtml": "mht",
    "preview": "view",
}


class FormatSpec(NamedTuple):
    mime_type: str
    extension: str


FORMAT_SPECS: dict[ExportFormat, FormatSpec] = {
    ExportFormat.HTML: FormatSpec("text/html", ".html"),
    ExportFormat.MHT: FormatSpec("message/rfc822", ".mht"),
    ExportFormat.WORD: FormatSpec("application/msword", ".doc"),
    ExportFormat.PDF: FormatSpec("text/html", ".html"),
    ExportFormat.PRINT: FormatSpec("text/html", ".html"),
    ExportFormat.VIEW: FormatSpec("text/html", ""),
}

WORD_NAMESPACES = (
    'xmlns:o="urn:schemas-microsoft-com:office:office" '
    'xmlns:w="urn:schemas-microsoft-com:office:word" '
    'xmlns="http://www.w3.org/TR/REC-html40"'
)

WORD_METAS = (
    '<meta name="ProgId" content="Word.Document">\n'
    '<meta name="Generator" content="Microsoft Word">\n'
    '<meta name="Originator" content="Microsoft Word">\n'
)

PRINT_DIRECTIVES = """<style type="text/css">
* { -webkit-print-color-adjust: exact; print-color-adjust: exact; color-adjust: exact; }
@media print {
    body { margin: 0; }
    .no-print { display: none !important; }
    .page-break { page-break-before: always; }
}
</style>
"""

_HTML_TAG_RE = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_HEAD_TAG_RE = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


# -------------------------------------------------------------------
# Esito
# -------------------------------------------------------------------

class ExportResult(BaseModel):
    """Esito di un export: artefatto prodotto o errore."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    format: Optional[ExportFormat] = None
    filename: Optional[str] = Field(None, description="Nome file prodotto")
    mime_type: Optional[str] = None
    location: Optional[str] = Field(None, description="Percorso o riferimento restituito dal target")
    content: Optional[str] = Field(None, description="Markup di anteprima (solo view)")
    error: Optional[str] = None


# -------------------------------------------------------------------
# Rendering target
# -------------------------------------------------------------------

class RenderingTarget(Protocol):
    """Destinazione finale del markup: download, stampa o anteprima."""

    def download(self, content: str, mime_type: str, filename: str) -> Optional[str]:
        ...

    def print_document(self, markup: str, filename: str) -> Optional[str]:
        ...

    def preview(self, markup: str) -> str:
        ...


class FileSystemRenderingTarget:
    """
    Target che scrive gli artefatti nella cartella di export.

    La stampa produce il file HTML pronto per la stampa (o la stampa su
    PDF) del browser o del servizio di stampa che lo apre.
    """

    def __init__(self, export_dir: str) -> None:
        self.export_dir = export_dir

    def _write(self, content: str, filename: str) -> str:
        os.makedirs(self.export_dir, exist_ok=True)
        path = os.path.join(self.export_dir, os.path.basename(filename))
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        return path

    def download(self, content: str, mime_type: str, filename: str) -> str:
        path = self._write(content, filename)
        logger.info("Export scritto: %s (%s)", path, mime_type)
        return path

    def print_document(self, markup: str, filename: str) -> str:
        path = self._write(markup, filename)
        logger.info("Documento pronto per la stampa: %s", path)
        return path

    def preview(self, markup: str) -> str:
        return markup


class InMemoryRenderingTarget:
    """Target che conserva gli artefatti in memoria (test e anteprime)."""

    def __init__(self) -> None:
        self.downloads: list[tuple[str, str, str]] = []
        self.printed: list[tuple[str, str]] = []
        self.previews: list[str] = []

    def download(self, content: str, mime_type: str, filename: str) -> str:
        self.downloads.append((content, mime_type, filename))
        return f"memory://{filename}"

    def print_document(self, markup: str, filename: str) -> str:
        self.printed.append((markup, filename))
        return f"memory://print/{filename}"

    def preview(self, markup: str) -> str:
        self.previews.append(markup)
        return markup


# -------------------------------------------------------------------
# Buste
# -------------------------------------------------------------------

def safe_filename(name: str) -> str:
    """Nome file senza percorsi né caratteri problematici."""
    cleaned = _UNSAFE_FILENAME_RE.sub("-", os.path.basename(name or "")).strip("-.")
    return cleaned or "document"


def build_mht(markup: str, filename: str, timestamp: datetime.datetime) -> str:
    """Archivio web: busta MIME multipart/related con una parte HTML quoted-printable."""
    boundary = f"----=_NextPart_{int(timestamp.timestamp() * 1000)}"
    envelope = MIMEMultipart("related", boundary=boundary)
    envelope["Subject"] = filename

    charset = Charset("utf-8")
    charset.body_encoding = QP
    html_part = MIMEText(markup, "html", charset)
    html_part["Content-Location"] = f"{filename}.html"
    envelope.attach(html_part)
    return envelope.as_string()


def build_word_html(markup: str) -> str:
    """HTML apribile da Word: namespace Office e meta ProgId/Generator."""
    if _HTML_TAG_RE.search(markup):
        wrapped = _HTML_TAG_RE.sub(f"<html {WORD_NAMESPACES}>", markup, count=1)
    else:
        wrapped = f"<html {WORD_NAMESPACES}>\n<head></head>\n<body>\n{markup}\n</body>\n</html>"

    if _HEAD_TAG_RE.search(wrapped):
        return _HEAD_TAG_RE.sub(lambda m: f"{m.group(0)}\n{WORD_METAS}", wrapped, count=1)
    return _HTML_TAG_RE.sub(lambda m: f"{m.group(0)}\n<head>\n{WORD_METAS}</head>", wrapped, count=1)


def with_print_directives(markup: str) -> str:
    """Aggiunge le direttive di stampa prima della chiusura di <head>."""
    if _HEAD_CLOSE_RE.search(markup):
        return _HEAD_CLOSE_RE.sub(lambda m: f"{PRINT_DIRECTIVES}{m.group(0)}", markup, count=1)
    return f"{PRINT_DIRECTIVES}{markup}"


# -------------------------------------------------------------------
# Dispatcher
# -------------------------------------------------------------------

class ExportDispatcher:
    """
    Instrada il markup verso il rendering target nel formato richiesto.

    dispatch() non solleva: qualsiasi errore di export è registrato nel
    log e restituito come ExportResult(success=False, error=...).
    """

    def __init__(
        self,
        target: RenderingTarget,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.target = target
        self._clock = clock or datetime.datetime.now

    def dispatch(
        self,
        markup: str,
        format: Union[str, ExportFormat],
        filename: str,
    ) -> ExportResult:
        """
        Esporta il markup.

        Args:
            markup: Documento HTML completo
            format: Formato di export
            filename: Nome base del file (senza estensione)

        Returns:
            ExportResult: Esito con nome file, MIME type e riferimento del target
        """
        try:
            export_format = ExportFormat.parse(format)
        except ExportError as e:
            logger.warning(e.detail)
            return ExportResult(success=False, error=e.detail)

        try:
            return self._dispatch(markup, export_format, safe_filename(filename))
        except Exception as e:
            logger.error(
                "Export %s di '%s' fallito: %s", export_format.value, filename, e, exc_info=True
            )
            detail = e.detail if isinstance(e, ExportError) else str(e)
            return ExportResult(success=False, format=export_format, error=detail)

    def _dispatch(self, markup: str, export_format: ExportFormat, base_name: str) -> ExportResult:
        if not markup or not markup.strip():
            raise ExportError("Nessun contenuto da esportare")

        spec = FORMAT_SPECS[export_format]
        filename = f"{base_name}{spec.extension}" if spec.extension else base_name

        if export_format == ExportFormat.VIEW:
            content = self.target.preview(markup)
            return ExportResult(
                success=True,
                format=export_format,
                mime_type=spec.mime_type,
                content=content,
            )

        if export_format in (ExportFormat.PDF, ExportFormat.PRINT):
            location = self.target.print_document(with_print_directives(markup), filename)
        elif export_format == ExportFormat.MHT:
            envelope = build_mht(markup, base_name, self._clock())
            location = self.target.download(envelope, spec.mime_type, filename)
        elif export_format == ExportFormat.WORD:
            location = self.target.download(build_word_html(markup), spec.mime_type, filename)
        else:
            location = self.target.download(markup, spec.mime_type, filename)

        logger.info("Export %s completato: %s", export_format.value, filename)
        return ExportResult(
            success=True,
            format=export_format,
            filename=filename,
            mime_type=spec.mime_type,
            location=location,
        )
