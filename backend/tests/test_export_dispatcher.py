"""
Tests for ExportDispatcher and DocumentExportService.
"""

import pytest

from document_engine.core.exceptions import ExportError, NotFoundError
from document_engine.services.document_export_service import DocumentExportService
from document_engine.services.export_dispatcher import (
    ExportDispatcher,
    ExportFormat,
    FileSystemRenderingTarget,
    InMemoryRenderingTarget,
    build_word_html,
    safe_filename,
    with_print_directives,
)

MARKUP = (
    "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<title>INV-2025-0001</title>\n</head>\n"
    "<body><h1>INVOICE</h1><p>Total: KES 290.00</p></body>\n</html>"
)


class FailingTarget(InMemoryRenderingTarget):
    """Target che non riesce a scrivere."""

    def download(self, content, mime_type, filename):
        raise OSError("disk full")


@pytest.fixture
def target():
    return InMemoryRenderingTarget()


@pytest.fixture
def dispatcher(target, clock):
    return ExportDispatcher(target, clock=clock)


# ============================================================
# Tests for ExportFormat and helpers
# ============================================================


class TestExportFormat:
    """Tests for format parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("html", ExportFormat.HTML),
            (" PDF ", ExportFormat.PDF),
            ("doc", ExportFormat.WORD),
            ("mhtml", ExportFormat.MHT),
            ("preview", ExportFormat.VIEW),
            (ExportFormat.PRINT, ExportFormat.PRINT),
        ],
    )
    def test_parse(self, value, expected):
        """Test formati e alias riconosciuti."""
        assert ExportFormat.parse(value) is expected

    def test_parse_unknown(self):
        """Test formato sconosciuto."""
        with pytest.raises(ExportError) as exc_info:
            ExportFormat.parse("pptx")

        assert exc_info.value.error_code == "UNSUPPORTED_EXPORT_FORMAT"


class TestHelpers:
    """Tests for filename and markup helpers."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("INV-2025-0001", "INV-2025-0001"),
            ("INV 2025#1", "INV-2025-1"),
            ("../../etc/passwd", "passwd"),
            ("...", "document"),
            ("", "document"),
        ],
    )
    def test_safe_filename(self, name, expected):
        """Test il nome file non contiene percorsi né caratteri speciali."""
        assert safe_filename(name) == expected

    def test_word_html_adds_office_metadata(self):
        """Test namespace Office e meta di Word nel documento completo."""
        wrapped = build_word_html(MARKUP)

        assert 'xmlns:w="urn:schemas-microsoft-com:office:word"' in wrapped
        assert '<meta name="ProgId" content="Word.Document">' in wrapped
        assert wrapped.index("ProgId") < wrapped.index("<title>")
        assert "<h1>INVOICE</h1>" in wrapped

    def test_word_html_wraps_fragment(self):
        """Test un frammento viene racchiuso in un documento completo."""
        wrapped = build_word_html("<p>Hello</p>")

        assert wrapped.startswith("<html xmlns:o=")
        assert '<meta name="Generator" content="Microsoft Word">' in wrapped
        assert "<body>\n<p>Hello</p>\n</body>" in wrapped

    def test_print_directives_before_head_close(self):
        """Test le direttive di stampa sono inserite nell'head."""
        printable = with_print_directives(MARKUP)

        assert "print-color-adjust: exact" in printable
        assert printable.index("print-color-adjust") < printable.index("</head>")

    def test_print_directives_without_head(self):
        """Test senza head le direttive precedono il markup."""
        printable = with_print_directives("<p>x</p>")

        assert printable.endswith("<p>x</p>")
        assert printable.startswith("<style")


# ============================================================
# Tests for dispatch
# ============================================================


class TestDispatch:
    """Tests for ExportDispatcher.dispatch()."""

    def test_html_download(self, dispatcher, target):
        """Test export html: il markup è scaricato senza modifiche."""
        result = dispatcher.dispatch(MARKUP, "html", "INV-2025-0001")

        assert result.success is True
        assert result.format is ExportFormat.HTML
        assert result.filename == "INV-2025-0001.html"
        assert result.location == "memory://INV-2025-0001.html"
        assert target.downloads == [(MARKUP, "text/html", "INV-2025-0001.html")]

    def test_mht_envelope(self, dispatcher, target):
        """Test export mht: busta multipart/related con la parte HTML."""
        result = dispatcher.dispatch(MARKUP, "mht", "INV-2025-0001")

        content, mime_type, filename = target.downloads[0]
        assert result.mime_type == "message/rfc822"
        assert mime_type == "message/rfc822"
        assert filename == "INV-2025-0001.mht"
        assert "multipart/related" in content
        assert "----=_NextPart_" in content
        assert "Content-Transfer-Encoding: quoted-printable" in content
        assert "Content-Location: INV-2025-0001.html" in content

    def test_word_document(self, dispatcher, target):
        """Test export word: file .doc con i meta di Word."""
        result = dispatcher.dispatch(MARKUP, ExportFormat.WORD, "INV-2025-0001")

        content, mime_type, filename = target.downloads[0]
        assert result.filename == "INV-2025-0001.doc"
        assert mime_type == "application/msword"
        assert 'content="Word.Document"' in content

    @pytest.mark.parametrize("export_format", ["pdf", "print"])
    def test_print_formats(self, dispatcher, target, export_format):
        """Test pdf e print passano dall'azione di stampa del target."""
        result = dispatcher.dispatch(MARKUP, export_format, "INV-2025-0001")

        assert result.success is True
        assert result.location == "memory://print/INV-2025-0001.html"
        assert target.downloads == []
        markup, filename = target.printed[0]
        assert "print-color-adjust: exact" in markup
        assert filename == "INV-2025-0001.html"

    def test_view_returns_content(self, dispatcher, target):
        """Test view: anteprima restituita come stringa."""
        result = dispatcher.dispatch(MARKUP, "view", "INV-2025-0001")

        assert result.success is True
        assert result.content == MARKUP
        assert result.filename is None
        assert target.previews == [MARKUP]

    def test_unknown_format(self, dispatcher, target):
        """Test formato sconosciuto: esito fallito senza formato."""
        result = dispatcher.dispatch(MARKUP, "pptx", "INV-2025-0001")

        assert result.success is False
        assert result.format is None
        assert "pptx" in result.error
        assert target.downloads == []

    def test_empty_markup(self, dispatcher, target):
        """Test markup vuoto: esito fallito."""
        result = dispatcher.dispatch("   ", "html", "INV-2025-0001")

        assert result.success is False
        assert result.format is ExportFormat.HTML
        assert result.error == "Nessun contenuto da esportare"
        assert target.downloads == []

    def test_target_failure_is_reported(self, clock):
        """Test un errore del target diventa un esito fallito."""
        dispatcher = ExportDispatcher(FailingTarget(), clock=clock)

        result = dispatcher.dispatch(MARKUP, "html", "INV-2025-0001")

        assert result.success is False
        assert result.error == "disk full"

    def test_filename_is_sanitized(self, dispatcher):
        """Test il nome file richiesto viene ripulito."""
        result = dispatcher.dispatch(MARKUP, "html", "../INV 2025/0001")

        assert result.filename == "0001.html"

    def test_result_serializes_camel_case(self, dispatcher):
        """Test l'esito usa chiavi camelCase."""
        data = dispatcher.dispatch(MARKUP, "word", "INV-2025-0001").model_dump(by_alias=True)

        assert data["mimeType"] == "application/msword"

    def test_file_system_target(self, tmp_path, clock):
        """Test il target su file system scrive nella cartella di export."""
        export_dir = tmp_path / "out"
        dispatcher = ExportDispatcher(FileSystemRenderingTarget(str(export_dir)), clock=clock)

        result = dispatcher.dispatch(MARKUP, "html", "INV-2025-0001")

        written = export_dir / "INV-2025-0001.html"
        assert result.location == str(written)
        assert written.read_text(encoding="utf-8") == MARKUP


# ============================================================
# Tests for DocumentExportService
# ============================================================


@pytest.fixture
def exports(document_store, customization, renderer, dispatcher, company_profiles):
    return DocumentExportService(
        document_store,
        customization,
        renderer,
        dispatcher,
        company_profiles,
    )


class TestDocumentExportService:
    """Tests for rendering and exporting stored documents."""

    def test_render_stored_invoice(self, exports, saved_invoice):
        """Test rendering HTML di una fattura salvata."""
        html = exports.render("invoice", saved_invoice.id)

        assert "INV-2025-0001" in html
        assert "Jane Wanjiku" in html
        assert "Acme Trading Ltd." in html

    def test_render_missing_document(self, exports):
        """Test rendering di un documento assente."""
        with pytest.raises(NotFoundError):
            exports.render("invoice", "missing")

    def test_render_unknown_preset(self, exports, saved_invoice):
        """Test preset sconosciuto."""
        with pytest.raises(NotFoundError):
            exports.render("invoice", saved_invoice.id, preset="baroque")

    def test_export_uses_document_number(self, exports, target, saved_invoice):
        """Test il nome file di default è il numero del documento."""
        result = exports.export("invoice", saved_invoice.id, "html")

        assert result.success is True
        assert result.filename == "INV-2025-0001.html"
        assert "INV-2025-0001" in target.downloads[0][0]

    def test_export_custom_filename(self, exports, saved_invoice):
        """Test nome file indicato dal chiamante."""
        result = exports.export("invoice", saved_invoice.id, "word", filename="fattura marzo")

        assert result.filename == "fattura-marzo.doc"

    def test_export_pdf_uses_print_path(self, exports, target, saved_invoice):
        """Test export pdf: markup di stampa inviato al target."""
        result = exports.export("invoice", saved_invoice.id, "pdf")

        assert result.success is True
        markup, _ = target.printed[0]
        assert "print-color-adjust: exact" in markup

    def test_export_view(self, exports, saved_quote):
        """Test export view restituisce il markup."""
        result = exports.export("quote", saved_quote.id, "view")

        assert result.success is True
        assert "QT-2025-0001" in result.content

    def test_export_unknown_format(self, exports, saved_invoice):
        """Test formato sconosciuto: esito fallito, nessuna eccezione."""
        result = exports.export("invoice", saved_invoice.id, "pptx")

        assert result.success is False
        assert result.format is None

    def test_export_missing_document(self, exports):
        """Test export di un documento assente."""
        with pytest.raises(NotFoundError):
            exports.export("invoice", "missing", "html")
