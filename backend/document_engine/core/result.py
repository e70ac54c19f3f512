"""
Risultato con fallback esplicito
Progetto: Document Engine (Gestionale Documenti)

Le letture dallo storage non sono mai fatali: in caso di errore si usa un
valore di default. Result rende visibile al chiamante se il valore è reale
o se è un fallback.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Valore restituito da un'operazione che può ripiegare su un default.

    Attributes:
        value: Valore prodotto (reale o di fallback)
        is_fallback: True se value è un default usato al posto del dato reale
        reason: Motivo del fallback (None se is_fallback è False)
    """

    value: T
    is_fallback: bool = False
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, reason: str) -> "Result[T]":
        return cls(value=value, is_fallback=True, reason=reason)

    @property
    def is_ok(self) -> bool:
        return not self.is_fallback
