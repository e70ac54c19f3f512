"""
Schemas Pydantic per la Numerazione automatica
Progetto: Document Engine (Gestionale Documenti)

Contiene:
- ResetPeriod
- Counter: stato persistito di un contatore (uno per tipo documento o entità)
- CounterUpdate: modifica parziale della configurazione di un contatore
- NumberResult: numero generato, con indicazione se è autorevole
"""

import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ResetPeriod(str, Enum):
    """Periodicità di azzeramento del contatore."""
    NEVER = "never"
    YEARLY = "yearly"
    MONTHLY = "monthly"


class Counter(BaseModel):
    """
    Contatore progressivo.

    current è l'ultimo numero emesso: il prossimo sarà current + increment.
    start_from è il primo numero emesso dopo creazione o reset.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str = Field(..., description="Tipo documento o entità (invoice, customer, ...)")
    prefix: str = Field("", description="Prefisso sostituito a {prefix}")
    format: str = Field(
        "{prefix}-{number:0000}",
        description="Formato con segnaposto {prefix}, {year}, {month}, {number}, {number:0000}",
    )
    current: int = Field(0, description="Ultimo numero emesso")
    start_from: int = Field(1, ge=0, description="Primo numero dopo creazione o reset")
    increment: int = Field(1, ge=1, description="Passo di incremento")
    number_length: int = Field(4, ge=0, le=20, description="Cifre minime per {number}")
    reset_period: ResetPeriod = Field(ResetPeriod.NEVER, description="Periodicità reset")
    last_reset: Optional[datetime.datetime] = Field(None, description="Data ultimo reset")
    enabled: bool = Field(True, description="Se False la chiave usa il numero di fallback")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Il formato deve contenere il segnaposto del numero."""
        if "{number" not in v:
            raise ValueError("Il formato deve contenere {number} o {number:0000}")
        return v

    @property
    def next_number(self) -> int:
        return self.current + self.increment


class CounterUpdate(BaseModel):
    """Modifica parziale della configurazione di un contatore."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    prefix: Optional[str] = None
    format: Optional[str] = None
    start_from: Optional[int] = Field(None, ge=0)
    next_number: Optional[int] = Field(None, ge=0, description="Prossimo numero da emettere")
    increment: Optional[int] = Field(None, ge=1)
    number_length: Optional[int] = Field(None, ge=0, le=20)
    reset_period: Optional[ResetPeriod] = None
    enabled: Optional[bool] = None


class NumberResult(BaseModel):
    """
    Numero generato.

    authoritative è False quando il numero è di fallback ({KEY}-{millis}):
    l'unicità in quel caso è garantita solo alla granularità del timestamp.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str
    number: str
    authoritative: bool = True
    reason: Optional[str] = None

    def __str__(self) -> str:
        return self.number
