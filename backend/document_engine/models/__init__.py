"""
Modelli Database SQLAlchemy
Progetto: Document Engine (Gestionale Documenti)

I documenti sono salvati come blob JSON nello storage chiave/valore:
l'unica tabella è kv_entries.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from document_engine.models.kv_entry import KeyValueEntry

__all__ = [
    "Base",
    "KeyValueEntry",
]
