"""
Modello SQLAlchemy per lo storage chiave/valore
Progetto: Document Engine (Gestionale Documenti)
"""

import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from document_engine.models import Base


class KeyValueEntry(Base):
    """
    Una voce dello storage chiave/valore.

    Attributes:
        key: Chiave namespaced (es. business_documents_quotes, document_counters)
        value: Blob JSON serializzato
        updated_at: Data/ora dell'ultima scrittura del blob
    """

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(200),
        primary_key=True,
        doc="Chiave della voce",
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Valore JSON serializzato",
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Data/ora ultima scrittura",
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key={self.key!r}, size={len(self.value or '')})>"
