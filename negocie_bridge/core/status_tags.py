"""
Tags de status por usuario.

Cada etapa do pipeline grava exatamente uma tag no registro do usuario.
Tags ESCALATE_* significam transbordo: nenhuma acao automatica ate que
um operador ou um novo sync sobrescreva a tag.
"""

from enum import Enum
from typing import Optional


class StatusTag(str, Enum):
    OK_LISTED = "OK_LISTED"
    OK_OPTIONS = "OK_OPTIONS"
    OK_AGREEMENT_FOUND = "OK_AGREEMENT_FOUND"
    OK_BOLETO_ISSUED = "OK_BOLETO_ISSUED"
    ESCALATE_AUTH = "ESCALATE_AUTH"
    ESCALATE_NO_CREDITOR = "ESCALATE_NO_CREDITOR"
    ESCALATE_DEBT_LOOKUP = "ESCALATE_DEBT_LOOKUP"
    ESCALATE_NO_OPTIONS = "ESCALATE_NO_OPTIONS"
    ESCALATE_OPTIONS_FAILED = "ESCALATE_OPTIONS_FAILED"
    ESCALATE_ISSUANCE_FAILED = "ESCALATE_ISSUANCE_FAILED"
    ESCALATE_DOCUMENT_MISMATCH = "ESCALATE_DOCUMENT_MISMATCH"
    ESCALATE_MANUAL = "ESCALATE_MANUAL"

    @property
    def is_escalation(self) -> bool:
        return self.name.startswith("ESCALATE_")

    @property
    def is_terminal(self) -> bool:
        return self.is_escalation or self is StatusTag.OK_BOLETO_ISSUED

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["StatusTag"]:
        """Le a tag gravada. Tags antigas 'Transbordo - ...' viram ESCALATE_MANUAL."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            pass
        if value.strip().lower().startswith("transbordo"):
            return cls.ESCALATE_MANUAL
        raise ValueError(f"Tag desconhecida: {value!r}")


_LABELS = {
    StatusTag.OK_LISTED: "Dívidas listadas",
    StatusTag.OK_OPTIONS: "Opções de pagamento calculadas",
    StatusTag.OK_AGREEMENT_FOUND: "Acordo existente encontrado",
    StatusTag.OK_BOLETO_ISSUED: "Boleto emitido",
    StatusTag.ESCALATE_AUTH: "Transbordo - Falha na autenticação",
    StatusTag.ESCALATE_NO_CREDITOR: "Transbordo - Credor não encontrado",
    StatusTag.ESCALATE_DEBT_LOOKUP: "Transbordo - Falha na busca de dívidas",
    StatusTag.ESCALATE_NO_OPTIONS: "Transbordo - Sem opções de pagamento",
    StatusTag.ESCALATE_OPTIONS_FAILED: "Transbordo - Falha na simulação",
    StatusTag.ESCALATE_ISSUANCE_FAILED: "Transbordo - Falha na emissão do boleto",
    StatusTag.ESCALATE_DOCUMENT_MISMATCH: "Transbordo - Documento divergente",
    StatusTag.ESCALATE_MANUAL: "Transbordo - Solicitado manualmente",
}
