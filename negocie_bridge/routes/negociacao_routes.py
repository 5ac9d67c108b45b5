"""
Rotas de Negociacao - Endpoints chamados pelo cliente de chat

Endpoints:
- POST /api/negociacao/buscar-credores - Identificacao + dividas
- POST /api/negociacao/buscar-opcoes-pagamento - Opcoes de pagamento
- POST /api/negociacao/emitir-boleto - Emissao (sempre ao vivo)
- POST /api/negociacao/segunda-via - Segunda via de acordo existente
- POST /api/negociacao/transbordo - Transbordo manual (so tags ESCALATE_*)
"""

import logging
import os

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from negocie_bridge.core.negotiation_service import NegotiationService, ServiceResponse
from negocie_bridge.models import (
    EscalationRequest,
    IdentifyRequest,
    IssueBoletoRequest,
    OptionsRequest,
    SecondCopyRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/negociacao", tags=["negociacao"])

limiter = Limiter(key_func=get_remote_address)


def chat_rate_limit() -> str:
    return os.getenv("RATE_LIMIT_DEFAULT", "60/minute")


def get_service(request: Request) -> NegotiationService:
    return request.app.state.negotiation_service


def to_json(response: ServiceResponse) -> JSONResponse:
    return JSONResponse(status_code=response.status_code, content=response.envelope())


@router.post("/buscar-credores")
@limiter.limit(chat_rate_limit)
async def buscar_credores(
    request: Request,
    data: IdentifyRequest,
    service: NegotiationService = Depends(get_service),
):
    """Confere o documento e devolve as dividas (cache primeiro)."""
    return to_json(await service.identify(data.user_id, data.document))


@router.post("/buscar-opcoes-pagamento")
@limiter.limit(chat_rate_limit)
async def buscar_opcoes_pagamento(
    request: Request,
    data: OptionsRequest,
    service: NegotiationService = Depends(get_service),
):
    return to_json(await service.list_options(data.user_id))


@router.post("/emitir-boleto")
@limiter.limit(chat_rate_limit)
async def emitir_boleto(
    request: Request,
    data: IssueBoletoRequest,
    service: NegotiationService = Depends(get_service),
):
    """Re-simula e emite; os dados do boleto vem da resposta mais recente da API."""
    return to_json(await service.issue(data.user_id, data.selected_option, data.installment_count))


@router.post("/segunda-via")
@limiter.limit(chat_rate_limit)
async def segunda_via(
    request: Request,
    data: SecondCopyRequest,
    service: NegotiationService = Depends(get_service),
):
    return to_json(await service.second_copy(data.user_id))


@router.post("/transbordo")
@limiter.limit(chat_rate_limit)
async def transbordo(
    request: Request,
    data: EscalationRequest,
    service: NegotiationService = Depends(get_service),
):
    logger.info(f"Transbordo solicitado: {data.tag.value}")
    return to_json(await service.manual_escalation(data.user_id, data.tag, data.detail))
