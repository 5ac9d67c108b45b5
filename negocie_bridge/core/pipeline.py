"""
Pipeline unico de negociacao, parametrizado por PipelineOptions.

    reconstruct -> acordos existentes -> (simulacao) -> tag -> cache -> notificacao

Usado por:
- identificacao (so lista dividas: OK_LISTED)
- opcoes de pagamento sem cache (com simulacao: OK_OPTIONS)
- sync em lote (execucao completa)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from negocie_bridge.core.cache_store import UserRecord
from negocie_bridge.core.context import ContextReconstructor, DebtContext
from negocie_bridge.core.errors import (
    DebtLookupFailed,
    NegociacaoError,
    OptionsEmpty,
    UserFacingError,
    describe_error,
)
from negocie_bridge.core.escalation import EscalationStateMachine, classify_error
from negocie_bridge.core.negotiation import simulate
from negocie_bridge.core.status_tags import StatusTag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    simulate: bool = True
    check_agreements: bool = True
    notify: bool = True


LIST_ONLY = PipelineOptions(simulate=False)
FULL_RUN = PipelineOptions()


class NegotiationPipeline:
    def __init__(self, reconstructor: ContextReconstructor, escalation: EscalationStateMachine):
        self.reconstructor = reconstructor
        self.escalation = escalation

    @property
    def gateway(self):
        return self.reconstructor.gateway

    async def _collect(self, ctx: DebtContext, record: UserRecord, options: PipelineOptions) -> UserRecord:
        record.creditors = ctx.creditors_payload
        record.debts = ctx.debts

        if options.check_agreements:
            try:
                record.agreements = await self.gateway.list_agreements(ctx.token, ctx.creditor)
            except NegociacaoError as e:
                raise DebtLookupFailed("Falha ao buscar acordos", cause=e) from e
            if record.agreements:
                return record.with_status(StatusTag.OK_AGREEMENT_FOUND)

        if not options.simulate:
            return record.with_status(StatusTag.OK_LISTED)

        result = await simulate(self.gateway, ctx)
        record.payment_options = result.raw
        if not result.options:
            return record.with_status(StatusTag.ESCALATE_NO_OPTIONS, describe_error(OptionsEmpty("Simulação sem opções")))
        return record.with_status(StatusTag.OK_OPTIONS)

    async def run(self, phone: str, options: PipelineOptions = FULL_RUN) -> UserRecord:
        """
        Executa o pipeline para um telefone e grava o desfecho.

        Raises:
            UserNotFound: telefone fora do diretorio (nada e gravado)
        """
        entry = self.reconstructor.resolve(phone)
        record = UserRecord(phone=phone, document=entry.document, name=entry.name)

        try:
            ctx = await self.reconstructor.reconstruct(phone)
            record = await self._collect(ctx, record, options)
        except UserFacingError:
            raise
        except NegociacaoError as e:
            record = record.with_status(classify_error(e), describe_error(e))

        return await self.escalation.record(record, notify=options.notify)

    async def record_unexpected(self, phone: str, exc: BaseException, document: Optional[str] = None) -> None:
        """Ultima linha de defesa: erro inesperado vira transbordo manual."""
        logger.exception(f"Erro inesperado no pipeline de {phone[-4:]}: {exc}")
        await self.escalation.escalate(
            phone, StatusTag.ESCALATE_MANUAL, error_detail=f"Erro inesperado: {describe_error(exc)}", document=document
        )
