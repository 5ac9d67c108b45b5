"""
Notificacoes de transbordo e desfechos terminais.

notify() nunca bloqueia nem falha o chamador: o evento vai para uma fila
limitada consumida por um worker que repassa aos canais configurados.

Canais:
- EmailChannel: apenas transbordos (SMTP)
- SpreadsheetChannel: transbordos e boletos emitidos (webhook JSON)

Canal sem configuracao e no-op silencioso.
"""

import asyncio
import logging
import smtplib
from dataclasses import asdict, dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import httpx

from negocie_bridge.core.cache_store import utc_now
from negocie_bridge.core.logging_config import mask_document
from negocie_bridge.core.status_tags import StatusTag

logger = logging.getLogger(__name__)


@dataclass
class NotificationEvent:
    tag: StatusTag
    phone: str
    document: str = ""
    name: Optional[str] = None
    error_detail: Optional[str] = None
    created_at: str = field(default_factory=utc_now)

    def as_row(self) -> dict:
        row = asdict(self)
        row["tag"] = self.tag.value
        row["tag_label"] = self.tag.label
        return row


class NotificationChannel:
    name = "base"

    def accepts(self, event: NotificationEvent) -> bool:
        return True

    async def send(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class EmailChannel(NotificationChannel):
    """Envia email HTML para a equipe de atendimento em cada transbordo."""

    name = "email"

    def __init__(self, server: str, port: int, user: str, password: str, to_email: str):
        self.server = server
        self.port = port
        self.user = user
        self.password = password
        self.to_email = to_email

    @classmethod
    def from_settings(cls, settings) -> "EmailChannel":
        return cls(
            server=settings.email_server,
            port=settings.email_port,
            user=settings.email_user,
            password=settings.email_pass,
            to_email=settings.escalation_email_to,
        )

    @property
    def configured(self) -> bool:
        return bool(self.server and self.user and self.password and self.to_email)

    def accepts(self, event: NotificationEvent) -> bool:
        return event.tag.is_escalation

    def _build_body(self, event: NotificationEvent) -> str:
        detail = event.error_detail or "-"
        return (
            f"<h3>{event.tag.label}</h3>"
            f"<p><b>Telefone:</b> {event.phone}<br>"
            f"<b>Documento:</b> {event.document or '-'}<br>"
            f"<b>Nome:</b> {event.name or '-'}<br>"
            f"<b>Detalhe:</b> {detail}<br>"
            f"<b>Data:</b> {event.created_at} UTC</p>"
        )

    def _send_sync(self, event: NotificationEvent) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"[Negociação] {event.tag.label} - {event.phone}"
        msg["From"] = self.user
        msg["To"] = self.to_email
        msg.attach(MIMEText(self._build_body(event), "html"))

        server = smtplib.SMTP(self.server, self.port, timeout=30)
        try:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.user, [self.to_email], msg.as_string())
        finally:
            server.quit()

    async def send(self, event: NotificationEvent) -> None:
        if not self.configured:
            logger.debug("Email nao configurado, notificacao ignorada")
            return
        await asyncio.to_thread(self._send_sync, event)


class SpreadsheetChannel(NotificationChannel):
    """Adiciona uma linha na planilha de acompanhamento via webhook."""

    name = "spreadsheet"

    def __init__(self, webhook_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 15.0):
        self.webhook_url = webhook_url
        self._client = client
        self._timeout = timeout

    def accepts(self, event: NotificationEvent) -> bool:
        return event.tag.is_escalation or event.tag is StatusTag.OK_BOLETO_ISSUED

    async def send(self, event: NotificationEvent) -> None:
        if not self.webhook_url:
            logger.debug("Planilha nao configurada, notificacao ignorada")
            return
        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=event.as_row())
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.webhook_url, json=event.as_row())
        response.raise_for_status()


class NotificationSink:
    """Fila limitada + worker unico. notify() e fire-and-forget."""

    def __init__(self, channels: List[NotificationChannel], max_queue: int = 100):
        self.channels = channels
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._worker: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings) -> "NotificationSink":
        channels = [
            EmailChannel.from_settings(settings),
            SpreadsheetChannel(settings.spreadsheet_webhook_url),
        ]
        return cls(channels, max_queue=settings.notify_queue_size)

    def notify(self, event: NotificationEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(f"Fila de notificacoes cheia, evento descartado: {event.tag.value} {mask_document(event.phone)}")
            return False
        return True

    async def _deliver(self, event: NotificationEvent) -> None:
        for channel in self.channels:
            if not channel.accepts(event):
                continue
            try:
                await channel.send(event)
                logger.info(f"📣 {channel.name}: {event.tag.value} para {mask_document(event.phone)}")
            except Exception as e:
                logger.error(f"Falha no canal {channel.name} ({event.tag.value}): {e}")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Worker de notificacoes iniciado")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self._queue.qsize()} notificacoes pendentes descartadas no shutdown")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Worker de notificacoes parado")

    @property
    def pending(self) -> int:
        return self._queue.qsize()
