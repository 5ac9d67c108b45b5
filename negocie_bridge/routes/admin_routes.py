"""
Rotas de Admin - Sync do cache e limpeza

Endpoints:
- POST /api/admin/sync-database - Dispara sync em segundo plano
- POST /api/admin/clear-cache - Limpa o cache (exige confirmacao)
- POST /api/admin/release-escalation - Libera o transbordo de um telefone

Todos exigem o header X-Admin-Key.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request

from negocie_bridge.core.negotiation_service import NegotiationService
from negocie_bridge.core.sync import SyncOrchestrator
from negocie_bridge.models import ClearCacheRequest, ReleaseEscalationRequest
from negocie_bridge.routes.negociacao_routes import get_service, to_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def require_admin_key(request: Request, x_admin_key: Optional[str] = Header(None)) -> None:
    expected = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Admin desabilitado (ADMIN_API_KEY ausente)")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Chave de admin inválida")


def get_sync(request: Request) -> SyncOrchestrator:
    return request.app.state.sync_orchestrator


async def run_sync_background(orchestrator: SyncOrchestrator) -> None:
    """Roda o sync fora do ciclo da request; erros ficam so no log."""
    try:
        await orchestrator.sync_all()
    except Exception as e:
        logger.error(f"❌ Erro crítico no sync em background: {e}")


@router.post("/sync-database", dependencies=[Depends(require_admin_key)])
async def sync_database(
    background_tasks: BackgroundTasks,
    orchestrator: SyncOrchestrator = Depends(get_sync),
):
    """Resposta imediata; o sync roda em segundo plano."""
    if orchestrator.running:
        return {"status": "Sincronização já em andamento."}
    background_tasks.add_task(run_sync_background, orchestrator)
    logger.info("📥 Sync solicitado via admin")
    return {"status": "Iniciando sincronização em segundo plano..."}


@router.post("/clear-cache", dependencies=[Depends(require_admin_key)])
async def clear_cache(
    data: ClearCacheRequest,
    service: NegotiationService = Depends(get_service),
):
    return to_json(await service.clear_cache(data.confirmation))


@router.post("/release-escalation", dependencies=[Depends(require_admin_key)])
async def release_escalation(
    data: ReleaseEscalationRequest,
    service: NegotiationService = Depends(get_service),
):
    """Remove o registro em transbordo; o proximo request do chat vai ao vivo."""
    return to_json(await service.release_escalation(data.user_id))
