"""
Models Package - Schemas Pydantic dos endpoints de negociacao.
"""

from .negotiation_models import (
    ChatRequest,
    ClearCacheRequest,
    EscalationRequest,
    IdentifyRequest,
    IssueBoletoRequest,
    OptionsRequest,
    ReleaseEscalationRequest,
    SecondCopyRequest,
    normalize_phone,
)

__all__ = [
    "ChatRequest",
    "ClearCacheRequest",
    "EscalationRequest",
    "IdentifyRequest",
    "IssueBoletoRequest",
    "OptionsRequest",
    "ReleaseEscalationRequest",
    "SecondCopyRequest",
    "normalize_phone",
]
