"""
Schemas Pydantic per il Workflow documentale
Progetto: Document Engine (Gestionale Documenti)
"""

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny
from pydantic.alias_generators import to_camel

from document_engine.schemas.document import BaseDocument, DocumentType, Invoice, PaymentReceipt


class WorkflowAction(BaseModel):
    """Azione di conversione disponibile per un documento."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: str = Field(..., description="Identificativo azione (es. convert_to_invoice)")
    label: str = Field(..., description="Etichetta estesa")
    short_label: str = Field(..., description="Etichetta breve per pulsanti")
    target_type: DocumentType = Field(..., description="Tipo documento prodotto")


class StatusChangeResult(BaseModel):
    """Esito di un cambio di stato."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document: SerializeAsAny[BaseDocument]
    previous_status: str
    available_actions: list[WorkflowAction] = Field(default_factory=list)


class PaymentRecordResult(BaseModel):
    """Ricevuta creata e fattura aggiornata dopo un pagamento."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    receipt: PaymentReceipt
    invoice: Invoice

