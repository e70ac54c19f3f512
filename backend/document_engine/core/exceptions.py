"""
Eccezioni Custom per l'applicazione.
Progetto: Document Engine (Gestionale Documenti)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

Politica di propagazione:
- calcoli puri (imposte, formattazione): non sollevano, usano default
- mutazioni (salvataggio, conversione): sollevano verso il chiamante
- letture dallo storage: StorageError viene intercettata e trasformata
  in un valore di fallback (vedi document_engine.core.result.Result)
- export: ExportError viene intercettata dal dispatcher e riportata
  come export fallito
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "ConflictError",
    "InvalidStateError",
    "StorageError",
    "ExportError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando un documento o una risorsa non viene trovata.

    Viene sollevata solo dopo aver interrogato sia lo storage locale
    sia l'eventuale sorgente remota.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per dati documento non validi o mancanti.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "Descrizione della riga obbligatoria"
        - "Conversione da delivery-note a invoice non supportata"
        - "Impostazioni di personalizzazione non valide"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione non può essere eseguita
    a causa dello stato corrente della risorsa.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflitto di stato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class InvalidStateError(ConflictError):
    """
    Conversione o transizione richiesta da uno stato non consentito.

    Lo stato originale (non normalizzato) è riportato nel messaggio
    e in `extra["status"]` per la diagnostica.
    """

    error_code: str = "INVALID_DOCUMENT_STATE"

    def __init__(
        self,
        detail: str = "Stato del documento non valido per l'operazione",
        status: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.status = status
        payload = dict(extra or {})
        payload["status"] = status
        super().__init__(detail, error_code, payload)


class StorageError(AppException):
    """
    Errore del backend di persistenza chiave/valore.

    Sollevata dai backend di storage; i percorsi di lettura la intercettano
    e ripiegano su valori di default.
    """

    status_code: int = 500
    error_code: str = "STORAGE_ERROR"

    def __init__(
        self,
        detail: str = "Errore dello storage",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ExportError(AppException):
    """Errore durante la produzione di un artefatto di export."""

    status_code: int = 500
    error_code: str = "EXPORT_FAILED"

    def __init__(
        self,
        detail: str = "Export del documento fallito",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
