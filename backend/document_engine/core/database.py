"""
Configurazione Database - SQLAlchemy 2.0
Progetto: Document Engine (Gestionale Documenti)

Definisce engine e session factory usati dallo storage chiave/valore
persistente. Lo storage è sincrono: engine e sessioni sono sync.
"""

import logging

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from document_engine.core.config import Settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Engine SQLAlchemy 2.0
# ------------------------------------------------------------
def create_db_engine(settings: Settings) -> Engine:
    """
    Crea l'engine a partire dalle impostazioni.

    Per SQLite disabilita il controllo sul thread: le sessioni sono
    create per singola operazione e le scritture sono serializzate
    dai lock dello storage.

    Args:
        settings: Impostazioni applicazione

    Returns:
        Engine: Engine SQLAlchemy sincrono
    """
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Crea la session factory legata all'engine."""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


def init_db(engine: Engine) -> None:
    """
    Inizializza il database.

    Esegue un test di connessione e crea la tabella kv_entries
    se non esiste.
    """
    from document_engine.models import Base

    try:
        with engine.begin() as conn:
            conn.execute(text("SELECT 1"))
            Base.metadata.create_all(conn)
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise

