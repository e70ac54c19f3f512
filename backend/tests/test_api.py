"""
Tests for the HTTP API (FastAPI TestClient).

Il motore è sostituito con app.dependency_overrides: storage in memoria,
rendering target in memoria e orologio fisso.
"""

import pytest
from fastapi.testclient import TestClient

from document_engine.api.deps import DocumentEngine, get_engine
from document_engine.core.storage import InMemoryKeyValueStore
from document_engine.main import app
from document_engine.services.export_dispatcher import InMemoryRenderingTarget

API = "/api/v1"


@pytest.fixture
def rendering_target():
    return InMemoryRenderingTarget()


@pytest.fixture
def engine(app_settings, clock, rendering_target):
    return DocumentEngine(
        app_settings,
        kv_store=InMemoryKeyValueStore(),
        rendering_target=rendering_target,
        clock=clock,
    )


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def quote_payload():
    return {
        "customer": {"name": "Jane Wanjiku", "address": "Kenyatta Road 5", "city": "Nakuru"},
        "items": [
            {"description": "Widget", "quantity": 2, "unitPrice": "100"},
            {"description": "Gadget", "quantity": 1, "unitPrice": "50"},
        ],
        "taxSettings": {"type": "exclusive", "defaultRate": 16},
        "currency": "KES",
        "status": "accepted",
    }


@pytest.fixture
def created_quote(client, quote_payload):
    response = client.post(f"{API}/documents/quote", json=quote_payload)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def created_invoice(client, quote_payload):
    payload = dict(quote_payload, status="pending")
    response = client.post(f"{API}/documents/invoice", json=payload)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    """Test endpoint di health check."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============================================================
# Tests for documents
# ============================================================


class TestDocumentsApi:
    """Tests for document CRUD endpoints."""

    def test_create_assigns_number_and_totals(self, created_quote):
        """Test creazione: numero e totali calcolati dal motore."""
        assert created_quote["documentNumber"] == "QT-2025-0001"
        assert created_quote["subtotal"] == "250.00"
        assert created_quote["taxAmount"] == "40.00"
        assert created_quote["total"] == "290.00"

    def test_create_ignores_client_id(self, client, quote_payload):
        """Test l'id inviato in creazione è ignorato."""
        response = client.post(f"{API}/documents/quote", json=dict(quote_payload, id="forced"))

        assert response.json()["id"] != "forced"

    def test_get_and_list(self, client, created_quote):
        """Test dettaglio, lista, filtro per stato e ricerca."""
        detail = client.get(f"{API}/documents/quote/{created_quote['id']}")

        assert detail.status_code == 200
        assert detail.json()["customer"]["name"] == "Jane Wanjiku"
        assert len(client.get(f"{API}/documents/quote").json()) == 1
        assert len(client.get(f"{API}/documents/quote", params={"status": "ACCEPTED"}).json()) == 1
        assert client.get(f"{API}/documents/quote", params={"status": "draft"}).json() == []
        assert len(client.get(f"{API}/documents/quote", params={"q": "wanjiku"}).json()) == 1

    def test_get_missing(self, client):
        """Test documento assente: 404 con error_code."""
        response = client.get(f"{API}/documents/invoice/missing")

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    def test_update_document(self, client, created_quote):
        """Test PUT sostituisce il documento e ricalcola i totali."""
        payload = dict(created_quote, items=[{"description": "Widget", "quantity": 1, "unitPrice": "100"}])

        response = client.put(f"{API}/documents/quote/{created_quote['id']}", json=payload)

        assert response.status_code == 200
        assert response.json()["total"] == "116.00"
        assert response.json()["createdAt"] == created_quote["createdAt"]

    def test_invalid_document(self, client):
        """Test riga senza descrizione: 422."""
        response = client.post(
            f"{API}/documents/quote",
            json={"items": [{"description": "", "quantity": 1, "unitPrice": 1}]},
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "DOCUMENT_VALIDATION_ERROR"

    def test_unknown_document_type(self, client):
        """Test tipo documento sconosciuto: 422."""
        response = client.get(f"{API}/documents/proforma")

        assert response.status_code == 422
        assert response.json()["error_code"] == "UNKNOWN_DOCUMENT_TYPE"

    def test_delete(self, client, created_quote):
        """Test eliminazione e seconda eliminazione."""
        url = f"{API}/documents/quote/{created_quote['id']}"

        assert client.delete(url).status_code == 204
        assert client.delete(url).status_code == 404


# ============================================================
# Tests for workflow endpoints
# ============================================================


class TestWorkflowApi:
    """Tests for status, actions, conversions and payments."""

    def test_quote_to_invoice_chain(self, client, created_quote):
        """Test preventivo -> ordine -> conferma -> fattura."""
        order = client.post(
            f"{API}/documents/quote/{created_quote['id']}/convert/sales-order"
        )
        assert order.status_code == 201
        order_data = order.json()
        assert order_data["documentNumber"] == "SO-2025-0001"
        assert order_data["total"] == "290.00"

        quote = client.get(f"{API}/documents/quote/{created_quote['id']}").json()
        assert quote["status"] == "converted"

        confirmed = client.patch(
            f"{API}/documents/sales-order/{order_data['id']}/status",
            json={"status": "Confirmed"},
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["previousStatus"] == "pending"
        assert confirmed.json()["document"]["status"] == "confirmed"
        actions = [a["targetType"] for a in confirmed.json()["availableActions"]]
        assert "invoice" in actions

        invoice = client.post(
            f"{API}/documents/sales-order/{order_data['id']}/convert/invoice"
        )
        assert invoice.status_code == 201
        assert invoice.json()["documentNumber"] == "INV-2025-0001"
        assert invoice.json()["dueDate"] == "2025-04-14"

    def test_convert_from_wrong_status(self, client, quote_payload):
        """Test conversione da stato non ammesso: 409 con lo stato originale."""
        draft = client.post(f"{API}/documents/quote", json=dict(quote_payload, status="Draft")).json()

        response = client.post(f"{API}/documents/quote/{draft['id']}/convert/sales-order")

        assert response.status_code == 409
        assert response.json()["extra"]["status"] == "Draft"

    def test_unsupported_conversion(self, client, created_quote):
        """Test coppia di conversione non prevista: 422."""
        response = client.post(
            f"{API}/documents/quote/{created_quote['id']}/convert/purchase-order"
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "UNSUPPORTED_CONVERSION"

    def test_invalid_status_transition(self, client, created_invoice):
        """Test transizione non ammessa: 409."""
        paid = client.patch(
            f"{API}/documents/invoice/{created_invoice['id']}/status",
            json={"status": "paid"},
        )
        assert paid.status_code == 200

        response = client.patch(
            f"{API}/documents/invoice/{created_invoice['id']}/status",
            json={"status": "draft"},
        )

        assert response.status_code == 409
        assert response.json()["extra"]["requested"] == "draft"

    def test_actions(self, client, created_quote):
        """Test azioni disponibili per un preventivo accettato."""
        response = client.get(f"{API}/documents/quote/{created_quote['id']}/actions")

        assert response.status_code == 200
        assert response.json()["actions"][0]["targetType"] == "sales-order"
        assert response.json()["message"]

    def test_record_payment(self, client, created_invoice):
        """Test pagamento parziale: ricevuta creata e saldo aggiornato."""
        response = client.post(
            f"{API}/documents/invoice/{created_invoice['id']}/payments",
            json={"amount": "100", "payment_method": "mpesa", "reference": "QX12"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["receipt"]["documentNumber"] == "RCT-2025-0001"
        assert body["invoice"]["balanceAmount"] == "190.00"

    def test_payment_must_be_positive(self, client, created_invoice):
        """Test importo non positivo: errore di validazione della richiesta."""
        response = client.post(
            f"{API}/documents/invoice/{created_invoice['id']}/payments",
            json={"amount": "0"},
        )

        assert response.status_code == 422


# ============================================================
# Tests for rendering and export
# ============================================================


class TestRenderAndExportApi:
    """Tests for render and export endpoints."""

    def test_render_html(self, client, created_invoice):
        """Test rendering HTML."""
        response = client.get(f"{API}/documents/invoice/{created_invoice['id']}/render")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "INV-2025-0001" in response.text

    def test_render_unknown_preset(self, client, created_invoice):
        """Test preset sconosciuto: 404."""
        response = client.get(
            f"{API}/documents/invoice/{created_invoice['id']}/render",
            params={"preset": "baroque"},
        )

        assert response.status_code == 404

    def test_export_word(self, client, rendering_target, created_invoice):
        """Test export word verso il rendering target."""
        response = client.get(f"{API}/documents/invoice/{created_invoice['id']}/export/word")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["filename"] == "INV-2025-0001.doc"
        assert response.json()["mimeType"] == "application/msword"
        assert len(rendering_target.downloads) == 1

    def test_export_unknown_format(self, client, created_invoice):
        """Test formato sconosciuto: esito fallito con 200."""
        response = client.get(f"{API}/documents/invoice/{created_invoice['id']}/export/pptx")

        assert response.status_code == 200
        assert response.json()["success"] is False


# ============================================================
# Tests for numbering, customization, company and backup
# ============================================================


class TestNumberingApi:
    """Tests for numbering endpoints."""

    def test_next_and_preview(self, client):
        """Test anteprima senza consumo e generazione."""
        assert client.get(f"{API}/numbering/invoice/preview").json()["number"] == "INV-2025-0001"
        assert client.post(f"{API}/numbering/invoice/next").json()["number"] == "INV-2025-0001"
        assert client.get(f"{API}/numbering/invoice/preview").json()["number"] == "INV-2025-0002"

    def test_configure_and_validate(self, client):
        """Test configurazione del contatore e validazione di un numero."""
        response = client.put(f"{API}/numbering/settings/invoice", json={"nextNumber": 7})

        assert response.status_code == 200
        assert response.json()["current"] == 6
        assert client.post(f"{API}/numbering/invoice/next").json()["number"] == "INV-2025-0007"
        valid = client.get(f"{API}/numbering/invoice/validate", params={"number": "INV-2025-0007"})
        assert valid.json()["valid"] is True

    def test_reset_unknown_key(self, client):
        """Test reset di una chiave senza numerazione: 404."""
        assert client.post(f"{API}/numbering/widget/reset").status_code == 404


class TestCustomizationApi:
    """Tests for customization endpoints."""

    def test_presets(self, client):
        """Test elenco preset."""
        keys = [p["key"] for p in client.get(f"{API}/customization/presets").json()]

        assert keys == ["professional", "minimal", "colorful"]

    def test_resolve_for_print(self, client):
        """Test impostazioni risolte per la stampa."""
        response = client.get(f"{API}/customization/resolve/invoice", params={"format": "print"})

        assert response.status_code == 200
        assert response.json()["printOptions"]["showColors"] is True
        assert response.json()["typography"]["bodyFontSize"] == 11

    def test_default_is_protected(self, client):
        """Test il template di default non si elimina; la copia sì."""
        default = client.get(f"{API}/customization/type/invoice").json()

        response = client.delete(f"{API}/customization/{default['id']}")
        assert response.status_code == 409
        assert response.json()["error_code"] == "DEFAULT_SETTINGS_PROTECTED"

        clone = client.post(f"{API}/customization/{default['id']}/clone", json={"name": "Copia"})
        assert clone.status_code == 201
        assert clone.json()["isDefault"] is False
        assert client.delete(f"{API}/customization/{clone.json()['id']}").status_code == 204

    def test_export_import(self, client):
        """Test export delle impostazioni e reimport."""
        client.get(f"{API}/customization/type/quote")
        exported = client.get(f"{API}/customization/export")

        assert exported.headers["content-type"].startswith("application/json")

        result = client.post(f"{API}/customization/import", json={"payload": exported.text})

        assert result.json()["success"] is True
        assert result.json()["imported"] == 1


class TestCompanyApi:
    """Tests for the company profile endpoints."""

    def test_get_default_and_save(self, client):
        """Test profilo di default e salvataggio."""
        assert client.get(f"{API}/company/").json()["company"]["name"] == "Acme Trading Ltd."

        response = client.put(
            f"{API}/company/",
            json={"company": {"name": "Baraka Motors"}, "bankDetails": {"bankName": "KCB"}},
        )

        assert response.status_code == 200
        assert client.get(f"{API}/company/").json()["bankDetails"]["bankName"] == "KCB"


class TestBackupApi:
    """Tests for backup endpoints."""

    def test_export_clear_import(self, client, created_quote, created_invoice):
        """Test backup completo, svuotamento confermato e ripristino."""
        backup = client.get(f"{API}/backup/export").json()
        assert backup["version"] == "1.0"

        assert client.delete(f"{API}/backup/").status_code == 422
        assert client.delete(f"{API}/backup/", params={"confirm": True}).status_code == 204
        assert client.get(f"{API}/backup/stats").json()["quote"] == 0

        restored = client.post(f"{API}/backup/import", json=backup)

        assert restored.status_code == 200
        assert restored.json()["imported"]["invoice"] == 1
        assert client.get(f"{API}/backup/stats").json()["quote"] == 1
