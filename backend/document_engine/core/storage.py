"""
Storage chiave/valore persistente
Progetto: Document Engine (Gestionale Documenti)

Contiene:
- KeyValueStore: interfaccia get/set sincrona di stringhe per chiave
- InMemoryKeyValueStore: implementazione in memoria (test, sviluppo)
- DatabaseKeyValueStore: implementazione su tabella SQLAlchemy kv_entries
- JsonStorage: lettura/scrittura di blob JSON con fallback e lock per chiave
"""

import copy
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from document_engine.core.config import Settings
from document_engine.core.exceptions import StorageError
from document_engine.core.result import Result
from document_engine.models.kv_entry import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Interfaccia dello storage chiave/valore consumato dal core."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> list[str]:
        ...


# ------------------------------------------------------------
# Backend in memoria
# ------------------------------------------------------------
class InMemoryKeyValueStore:
    """Storage chiave/valore in memoria di processo."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


# ------------------------------------------------------------
# Backend su database
# ------------------------------------------------------------
class DatabaseKeyValueStore:
    """
    Storage chiave/valore sulla tabella kv_entries.

    Ogni operazione apre una sessione dedicata. Gli errori SQLAlchemy
    sono convertiti in StorageError.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Lettura della chiave '{key}' fallita: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self._session_factory.begin() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
        except SQLAlchemyError as e:
            raise StorageError(f"Scrittura della chiave '{key}' fallita: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with self._session_factory.begin() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is not None:
                    session.delete(entry)
        except SQLAlchemyError as e:
            raise StorageError(f"Eliminazione della chiave '{key}' fallita: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        try:
            with self._session_factory() as session:
                stmt = (
                    select(KeyValueEntry.key)
                    .where(KeyValueEntry.key.startswith(prefix))
                    .order_by(KeyValueEntry.key)
                )
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError(f"Elenco chiavi '{prefix}*' fallito: {e}") from e


# ------------------------------------------------------------
# Accesso JSON con fallback e lock
# ------------------------------------------------------------
class JsonStorage:
    """
    Lettura e scrittura di blob JSON sopra un KeyValueStore.

    Le letture non sono mai fatali: chiave assente restituisce il default,
    JSON malformato o errore del backend restituiscono il default marcato
    come fallback. Le scritture propagano StorageError.

    lock(key) serializza le sequenze leggi-modifica-scrivi sulla stessa chiave.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with self._registry_lock:
            key_lock = self._locks.setdefault(key, threading.RLock())
        with key_lock:
            yield

    def read_json(self, key: str, default: Any) -> Result[Any]:
        """
        Legge e decodifica il valore JSON della chiave.

        Args:
            key: Chiave da leggere
            default: Valore restituito se la chiave è assente o illeggibile

        Returns:
            Result: valore decodificato, oppure default (fallback se illeggibile)
        """
        try:
            raw = self.store.get(key)
        except StorageError as e:
            logger.warning("Storage non disponibile per '%s': %s", key, e.detail)
            return Result.fallback(copy.deepcopy(default), e.detail)

        return self._decode(key, raw, default)

    def read_json_for_update(self, key: str, default: Any) -> Any:
        """
        Lettura per una sequenza leggi-modifica-scrivi (da eseguire sotto lock(key)).

        JSON malformato o di tipo inatteso vale come default, come in
        read_json; un errore del backend invece è propagato.

        Raises:
            StorageError: Se il backend non riesce a leggere la chiave
        """
        return self._decode(key, self.store.get(key), default).value

    def _decode(self, key: str, raw: Optional[str], default: Any) -> Result[Any]:
        if raw is None:
            return Result.ok(copy.deepcopy(default))

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("JSON malformato nella chiave '%s': %s", key, e)
            return Result.fallback(copy.deepcopy(default), f"JSON malformato: {e}")

        if default is not None and not isinstance(value, type(default)):
            logger.warning(
                "Tipo inatteso nella chiave '%s': %s invece di %s",
                key,
                type(value).__name__,
                type(default).__name__,
            )
            return Result.fallback(copy.deepcopy(default), "tipo di dato inatteso")

        return Result.ok(value)

    def write_json(self, key: str, value: Any) -> None:
        """Serializza e scrive il valore. Solleva StorageError se il backend fallisce."""
        self.store.set(key, json.dumps(value, ensure_ascii=False, default=str))

    def delete(self, key: str) -> None:
        self.store.delete(key)

    def keys(self, prefix: str = "") -> list[str]:
        return self.store.keys(prefix)


def build_key_value_store(settings: Settings) -> KeyValueStore:
    """
    Costruisce il backend di storage indicato da settings.storage_backend.

    Per il backend database crea engine e tabella.
    """
    if settings.storage_backend == "memory":
        logger.info("Storage chiave/valore in memoria")
        return InMemoryKeyValueStore()

    from document_engine.core.database import (
        create_db_engine,
        create_session_factory,
        init_db,
    )

    engine = create_db_engine(settings)
    init_db(engine)
    logger.info("Storage chiave/valore su database")
    return DatabaseKeyValueStore(create_session_factory(engine))
