"""
Handlers de negociacao usados pelas rotas.

Toda operacao:
1. Le o cache do telefone
2. Aplica o gate de transbordo (sem chamada externa se bloqueado)
3. Serve do cache (listagens) ou vai ao vivo (emissao)
4. Converte qualquer erro em resposta bem formada
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from negocie_bridge.core.cache_store import UserCacheStore, UserRecord
from negocie_bridge.core.errors import (
    DocumentMismatch,
    InvalidOptionSelection,
    NegociacaoError,
    NoActiveAgreement,
    UserFacingError,
    UserNotFound,
    describe_error,
)
from negocie_bridge.core.escalation import EscalationStateMachine, classify_error
from negocie_bridge.core.logging_config import mask_document, set_context
from negocie_bridge.core.negotiation import PaymentOption, issue_boleto, issue_second_copy, select_option
from negocie_bridge.core.pipeline import FULL_RUN, LIST_ONLY, NegotiationPipeline
from negocie_bridge.core.rendering import (
    AGREEMENT_EXISTS_MESSAGE,
    DOCUMENT_MISMATCH_MESSAGE,
    FALLBACK_MESSAGE,
    HANDOFF_MESSAGE,
    NO_AGREEMENT_MESSAGE,
    NOT_FOUND_MESSAGE,
    markdown,
    render_boleto,
    render_debts,
    render_options,
)
from negocie_bridge.core.status_tags import StatusTag
from negocie_bridge.core.user_directory import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class ServiceResponse:
    status_code: int
    title: str
    message: str
    raw: Dict[str, Any] = field(default_factory=dict)

    def envelope(self) -> Dict[str, Any]:
        return {"raw": self.raw, "markdown": markdown(self.title, self.message), "type": "markdown"}


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def handoff_response(tag: Optional[StatusTag]) -> ServiceResponse:
    return ServiceResponse(
        200,
        "Transferindo para atendimento",
        HANDOFF_MESSAGE,
        {"status": "transbordo", "tag": tag.value if tag else None, "mensagem": HANDOFF_MESSAGE},
    )


def fallback_response() -> ServiceResponse:
    return ServiceResponse(
        500,
        "Transferindo para atendimento",
        FALLBACK_MESSAGE,
        {"status": "erro", "tag": StatusTag.ESCALATE_MANUAL.value, "mensagem": FALLBACK_MESSAGE},
    )


def not_found_response() -> ServiceResponse:
    return ServiceResponse(404, "Cadastro não encontrado", NOT_FOUND_MESSAGE, {"status": "nao_encontrado", "mensagem": NOT_FOUND_MESSAGE})


def document_mismatch_response() -> ServiceResponse:
    return ServiceResponse(
        200,
        "Documento não confere",
        DOCUMENT_MISMATCH_MESSAGE,
        {
            "status": "documento_divergente",
            "tag": StatusTag.ESCALATE_DOCUMENT_MISMATCH.value,
            "mensagem": DOCUMENT_MISMATCH_MESSAGE,
        },
    )


def no_agreement_response() -> ServiceResponse:
    return ServiceResponse(200, "Sem acordo", NO_AGREEMENT_MESSAGE, {"status": "sem_acordo", "mensagem": NO_AGREEMENT_MESSAGE})


def agreement_response(record: UserRecord) -> ServiceResponse:
    return ServiceResponse(
        200,
        "Acordo existente",
        AGREEMENT_EXISTS_MESSAGE,
        {
            "status": "acordo_existente",
            "tag": StatusTag.OK_AGREEMENT_FOUND.value,
            "acordos": record.agreements,
            "mensagem": AGREEMENT_EXISTS_MESSAGE,
        },
    )


class NegotiationService:
    def __init__(
        self,
        directory: UserDirectory,
        store: UserCacheStore,
        pipeline: NegotiationPipeline,
        escalation: EscalationStateMachine,
        clear_confirmation: str = "LIMPAR-CACHE",
    ):
        self.directory = directory
        self.store = store
        self.pipeline = pipeline
        self.escalation = escalation
        self.clear_confirmation = clear_confirmation

    @property
    def reconstructor(self):
        return self.pipeline.reconstructor

    async def _safely(self, phone: str, handler: Callable[..., Awaitable[ServiceResponse]], *args) -> ServiceResponse:
        set_context(phone=mask_document(phone, 4))
        try:
            return await handler(phone, *args)
        except UserNotFound:
            logger.info(f"Telefone {mask_document(phone, 4)} fora do diretorio")
            return not_found_response()
        except DocumentMismatch:
            logger.warning(f"Documento divergente para {mask_document(phone, 4)}")
            return document_mismatch_response()
        except NoActiveAgreement:
            return no_agreement_response()
        except Exception as e:
            try:
                entry = self.directory.lookup(phone)
                if entry is not None:
                    await self.pipeline.record_unexpected(phone, e, document=entry.document)
                else:
                    logger.exception(f"Erro inesperado para telefone desconhecido: {e}")
            except Exception:
                logger.exception("Falha ao registrar transbordo de erro inesperado")
            return fallback_response()

    async def _options_record(self, phone: str, record: Optional[UserRecord]) -> UserRecord:
        """Registro com opcoes de pagamento: do cache ou do pipeline completo."""
        if record is not None and (record.option_list or record.agreements or record.is_escalated):
            return record
        return await self.pipeline.run(phone, FULL_RUN)

    # ==========================================================================
    # Identificacao / listagem de dividas
    # ==========================================================================

    async def identify(self, phone: str, document: str) -> ServiceResponse:
        return await self._safely(phone, self._identify, document)

    async def _identify(self, phone: str, document: str) -> ServiceResponse:
        entry = self.reconstructor.resolve(phone)
        if _digits(document) != _digits(entry.document):
            raise DocumentMismatch("Documento informado difere do cadastro")

        record = await self.store.get_fresh(phone)
        if await self.escalation.gate(record):
            return handoff_response(record.status_tag)

        if record is None:
            saved = await self.pipeline.run(phone, LIST_ONLY)
            if saved.is_escalated:
                return handoff_response(saved.status_tag)
            record = await self.store.get(phone)

        message = render_debts(record.debts, record.updated_at, record.name)
        raw = {
            "status": "exito",
            "tag": record.status_tag.value if record.status_tag else None,
            "detalhe": record.debts,
            "atualizado_em": record.updated_at,
        }
        if record.agreements:
            message += f"\n{AGREEMENT_EXISTS_MESSAGE}"
            raw["acordos"] = record.agreements
        raw["mensagem"] = message
        return ServiceResponse(200, "Dívidas", message, raw)

    # ==========================================================================
    # Opcoes de pagamento
    # ==========================================================================

    async def list_options(self, phone: str) -> ServiceResponse:
        return await self._safely(phone, self._list_options)

    async def _list_options(self, phone: str) -> ServiceResponse:
        cached = await self.store.get_fresh(phone)
        if await self.escalation.gate(cached):
            return handoff_response(cached.status_tag)

        record = await self._options_record(phone, cached)
        if record.is_escalated:
            return handoff_response(record.status_tag)
        if record.agreements:
            return agreement_response(record)

        options = [PaymentOption.from_payload(op) for op in record.option_list]
        message = render_options(options)
        return ServiceResponse(
            200,
            "Opções de pagamento",
            message,
            {
                "status": "exito",
                "tag": record.status_tag.value if record.status_tag else None,
                "opcoesPagamento": record.option_list,
                "mensagem": message,
            },
        )

    # ==========================================================================
    # Emissao de boleto
    # ==========================================================================

    async def issue(
        self, phone: str, option_index: Optional[int] = None, installments: Optional[int] = None
    ) -> ServiceResponse:
        return await self._safely(phone, self._issue, option_index, installments)

    async def _issue(self, phone: str, option_index: Optional[int], installments: Optional[int]) -> ServiceResponse:
        cached = await self.store.get_fresh(phone)
        if await self.escalation.gate(cached):
            return handoff_response(cached.status_tag)

        record = await self._options_record(phone, cached)
        if record.is_escalated:
            return handoff_response(record.status_tag)
        if record.agreements:
            return agreement_response(record)

        options = [PaymentOption.from_payload(op) for op in record.option_list]
        try:
            chosen = select_option(options, index=option_index, installments=installments)
        except InvalidOptionSelection as e:
            message = f"{e.detail}\n\n{render_options(options)}"
            return ServiceResponse(
                200,
                "Opção inválida",
                message,
                {"status": "opcao_invalida", "opcoesPagamento": record.option_list, "mensagem": message},
            )

        try:
            ctx = await self.reconstructor.reconstruct(phone)
            boleto = await issue_boleto(self.pipeline.gateway, ctx, chosen)
        except UserFacingError:
            raise
        except NegociacaoError as e:
            tag = classify_error(e, default=StatusTag.ESCALATE_ISSUANCE_FAILED)
            saved = await self.escalation.record(record.with_status(tag, describe_error(e)))
            return handoff_response(saved.status_tag)

        saved = await self.escalation.record(record.with_status(StatusTag.OK_BOLETO_ISSUED))
        message = render_boleto(boleto)
        return ServiceResponse(
            200,
            "Boleto",
            message,
            {"status": "exito", "tag": saved.status_tag.value, "boleto": boleto.as_dict(), "mensagem": message},
        )

    # ==========================================================================
    # Segunda via
    # ==========================================================================

    async def second_copy(self, phone: str) -> ServiceResponse:
        return await self._safely(phone, self._second_copy)

    async def _second_copy(self, phone: str) -> ServiceResponse:
        record = await self.store.get_fresh(phone)
        if await self.escalation.gate(record):
            return handoff_response(record.status_tag)

        if record is None or not record.agreements:
            raise NoActiveAgreement("Nenhum acordo em cache")

        document = record.document or self.reconstructor.resolve(phone).document
        try:
            token = await self.reconstructor.authenticate(document)
            boleto = await issue_second_copy(self.pipeline.gateway, token, record.agreements[0])
        except NegociacaoError as e:
            tag = classify_error(e, default=StatusTag.ESCALATE_ISSUANCE_FAILED)
            saved = await self.escalation.record(record.with_status(tag, describe_error(e)))
            return handoff_response(saved.status_tag)

        saved = await self.escalation.record(record.with_status(StatusTag.OK_BOLETO_ISSUED))
        message = render_boleto(boleto)
        return ServiceResponse(
            200,
            "Segunda via",
            message,
            {"status": "exito", "tag": saved.status_tag.value, "boleto": boleto.as_dict(), "mensagem": message},
        )

    # ==========================================================================
    # Transbordo manual / admin
    # ==========================================================================

    async def manual_escalation(self, phone: str, tag: StatusTag, detail: Optional[str] = None) -> ServiceResponse:
        if not tag.is_escalation:
            raise ValueError(f"{tag.value} nao e tag de transbordo")
        return await self._safely(phone, self._manual_escalation, tag, detail)

    async def _manual_escalation(self, phone: str, tag: StatusTag, detail: Optional[str]) -> ServiceResponse:
        entry = self.reconstructor.resolve(phone)
        await self.escalation.escalate(phone, tag, error_detail=detail, document=entry.document, name=entry.name)
        return handoff_response(tag)

    async def release_escalation(self, phone: str) -> ServiceResponse:
        """Operador libera o transbordo; o registro sai do cache e o proximo request vai ao vivo."""
        return await self._safely(phone, self._release_escalation)

    async def _release_escalation(self, phone: str) -> ServiceResponse:
        self.reconstructor.resolve(phone)
        removed = await self.store.delete(phone)
        logger.warning(f"🔓 Transbordo liberado por operador para {mask_document(phone, 4)} (removido={removed})")
        message = "Atendimento automático liberado." if removed else "Nenhum registro em cache para este telefone."
        return ServiceResponse(200, "Transbordo liberado", message, {"status": "exito", "removido": removed, "mensagem": message})

    async def clear_cache(self, confirmation: str) -> ServiceResponse:
        if confirmation != self.clear_confirmation:
            message = "Confirmação inválida. Nada foi removido."
            return ServiceResponse(400, "Cache", message, {"status": "confirmacao_invalida", "mensagem": message})
        removed = await self.store.clear_all()
        message = f"{removed} registros removidos do cache."
        return ServiceResponse(200, "Cache", message, {"status": "exito", "removidos": removed, "mensagem": message})
