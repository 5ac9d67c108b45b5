"""
Maquina de estados de transbordo.

- classify_error(): converte erro do pipeline em tag ESCALATE_*
- record(): persiste o desfecho e notifica (transbordo: email + planilha;
  boleto emitido: so planilha)
- gate(): trava dura; registro com tag ESCALATE_* bloqueia toda acao
  automatica ate ser sobrescrito
- escalate(): transbordo manual (so tags ESCALATE_*)

Deduplicacao: cada transbordo gravado notifica uma vez e carimba
notified_at. O gate so notifica registros em transbordo que nunca foram
notificados.
"""

import logging
from dataclasses import replace
from typing import Optional

from negocie_bridge.core.cache_store import UserCacheStore, UserRecord, utc_now
from negocie_bridge.core.errors import (
    AuthFailed,
    DebtLookupFailed,
    IssuanceFailed,
    MissingWalletId,
    NoCreditor,
    OptionNoLongerAvailable,
    OptionsCallFailed,
    OptionsEmpty,
    SummaryResolutionFailed,
    UpstreamError,
    UpstreamTimeout,
    UserFacingError,
)
from negocie_bridge.core.logging_config import mask_document
from negocie_bridge.core.notifications import NotificationEvent, NotificationSink
from negocie_bridge.core.status_tags import StatusTag

logger = logging.getLogger(__name__)

_ERROR_TAGS = (
    (AuthFailed, StatusTag.ESCALATE_AUTH),
    (NoCreditor, StatusTag.ESCALATE_NO_CREDITOR),
    (MissingWalletId, StatusTag.ESCALATE_DEBT_LOOKUP),
    (DebtLookupFailed, StatusTag.ESCALATE_DEBT_LOOKUP),
    (OptionsEmpty, StatusTag.ESCALATE_NO_OPTIONS),
    (OptionNoLongerAvailable, StatusTag.ESCALATE_NO_OPTIONS),
    (OptionsCallFailed, StatusTag.ESCALATE_OPTIONS_FAILED),
    (SummaryResolutionFailed, StatusTag.ESCALATE_ISSUANCE_FAILED),
    (IssuanceFailed, StatusTag.ESCALATE_ISSUANCE_FAILED),
)


def classify_error(exc: BaseException, default: StatusTag = StatusTag.ESCALATE_MANUAL) -> StatusTag:
    """
    Tag de transbordo para um erro do pipeline.

    UpstreamError/UpstreamTimeout soltos (fora de uma etapa) caem no
    default da etapa chamadora.
    """
    for error_type, tag in _ERROR_TAGS:
        if isinstance(exc, error_type):
            return tag
    if isinstance(exc, (UpstreamError, UpstreamTimeout)):
        return default
    if isinstance(exc, UserFacingError):
        raise ValueError(f"{exc.__class__.__name__} nao gera transbordo")
    return default


class EscalationStateMachine:
    def __init__(self, store: UserCacheStore, sink: NotificationSink):
        self.store = store
        self.sink = sink

    def _event(self, record: UserRecord) -> NotificationEvent:
        return NotificationEvent(
            tag=record.status_tag,
            phone=record.phone,
            document=record.document,
            name=record.name,
            error_detail=record.error_detail,
        )

    async def record(self, record: UserRecord, notify: bool = True) -> UserRecord:
        """Grava a tag do registro (sobrescreve a anterior) e dispara notificacao."""
        if record.status_tag is None:
            raise ValueError("Registro sem tag nao pode ser gravado pelo pipeline")

        notified_at = None
        if notify and record.status_tag.is_terminal:
            if self.sink.notify(self._event(record)) and record.status_tag.is_escalation:
                notified_at = utc_now()

        saved = await self.store.upsert(replace(record, notified_at=notified_at))

        if saved.is_escalated:
            logger.warning(
                f"🚨 {saved.status_tag.value} para {mask_document(saved.phone)}: {saved.error_detail or '-'}"
            )
        else:
            logger.info(f"✅ {saved.status_tag.value} para {mask_document(saved.phone)}")
        return saved

    async def gate(self, record: Optional[UserRecord]) -> bool:
        """True quando o registro esta em transbordo e nada automatico pode rodar."""
        if record is None or not record.is_escalated:
            return False
        if not record.notified_at and self.sink.notify(self._event(record)):
            await self.store.mark_notified(record.phone)
        logger.info(f"⛔ Gate de transbordo ativo para {mask_document(record.phone)} ({record.status_tag.value})")
        return True

    async def escalate(
        self,
        phone: str,
        tag: StatusTag,
        error_detail: Optional[str] = None,
        document: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        """Grava a tag sem tocar nos payloads cacheados. Transbordo sempre notifica."""
        if not tag.is_escalation:
            raise ValueError(f"{tag.value} nao e tag de transbordo")
        event = NotificationEvent(tag=tag, phone=phone, document=document or "", name=name, error_detail=error_detail)
        notified_at = utc_now() if self.sink.notify(event) else None
        await self.store.update_status(
            phone, tag, error_detail=error_detail, document=document, name=name, notified_at=notified_at
        )
        logger.warning(f"🙋 Tag {tag.value} gravada manualmente para {mask_document(phone)}")
