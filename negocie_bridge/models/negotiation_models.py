"""
Negotiation Models - Validacoes Pydantic dos payloads do cliente de chat

O cliente envia o telefone como `user_id` ou `function_call_username`
(formato "<prefixo>--<telefone>"; vale o trecho apos o ultimo "--").
"""

import re
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from negocie_bridge.core.status_tags import StatusTag


def normalize_phone(value: str) -> str:
    if "--" in value:
        value = value.split("--")[-1]
    cleaned = re.sub(r"[\s().\-]", "", value)
    if not re.match(r"^\+?[0-9]{6,15}$", cleaned):
        raise ValueError("Telefone inválido")
    return cleaned


class ChatRequest(BaseModel):
    """Base: identificacao do usuario pelo telefone"""

    user_id: str = Field(
        ...,
        validation_alias=AliasChoices("user_id", "function_call_username"),
        description="Telefone do usuario (ou function_call_username)",
    )

    @field_validator("user_id")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return normalize_phone(v)


class IdentifyRequest(ChatRequest):
    document: str = Field(
        ...,
        validation_alias=AliasChoices("document", "cpf_cnpj", "cpf"),
        description="CPF/CNPJ informado pelo usuario",
    )

    @field_validator("document")
    @classmethod
    def validate_document(cls, v: str) -> str:
        digits = re.sub(r"\D", "", v)
        if not digits:
            raise ValueError("Documento inválido")
        return digits


class OptionsRequest(ChatRequest):
    pass


class IssueBoletoRequest(ChatRequest):
    selected_option: Optional[int] = Field(None, ge=1, description="Indice 1-based da opcao")
    installment_count: Optional[int] = Field(None, ge=1, description="Quantidade de parcelas")

    @model_validator(mode="after")
    def require_choice(self):
        if self.selected_option is None and self.installment_count is None:
            raise ValueError("Informe selected_option ou installment_count")
        return self


class SecondCopyRequest(ChatRequest):
    second_copy: bool = True


class EscalationRequest(ChatRequest):
    tag: StatusTag = StatusTag.ESCALATE_MANUAL
    detail: Optional[str] = Field(None, max_length=1000)

    @field_validator("tag")
    @classmethod
    def only_escalation_tags(cls, v: StatusTag) -> StatusTag:
        if not v.is_escalation:
            raise ValueError("Apenas tags ESCALATE_* podem ser solicitadas pelo chat")
        return v


class ReleaseEscalationRequest(ChatRequest):
    pass


class ClearCacheRequest(BaseModel):
    confirmation: str = Field(..., min_length=1)
