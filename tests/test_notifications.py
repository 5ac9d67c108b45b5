"""
Testes da fila de notificacoes e dos canais.
"""

import asyncio
import json

import httpx

from negocie_bridge.core.notifications import (
    EmailChannel,
    NotificationChannel,
    NotificationEvent,
    NotificationSink,
    SpreadsheetChannel,
)
from negocie_bridge.core.status_tags import StatusTag


class CollectingChannel(NotificationChannel):
    name = "collect"

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send(self, event):
        if self.fail:
            raise RuntimeError("canal fora do ar")
        self.sent.append(event)


def event(tag=StatusTag.ESCALATE_AUTH):
    return NotificationEvent(tag=tag, phone="000000001", document="111", error_detail="AuthFailed: x")


def test_worker_delivers_and_survives_channel_failure():
    good = CollectingChannel()
    broken = CollectingChannel(fail=True)

    async def scenario():
        sink = NotificationSink([broken, good])
        sink.start()
        assert sink.notify(event())
        assert sink.notify(event(StatusTag.OK_BOLETO_ISSUED))
        await sink.stop()
        return sink

    sink = asyncio.run(scenario())

    assert [e.tag for e in good.sent] == [StatusTag.ESCALATE_AUTH, StatusTag.OK_BOLETO_ISSUED]
    assert sink.pending == 0


def test_full_queue_drops_event_without_raising():
    async def scenario():
        sink = NotificationSink([CollectingChannel()], max_queue=1)
        return sink.notify(event()), sink.notify(event())

    assert asyncio.run(scenario()) == (True, False)


def test_email_accepts_only_escalations_and_skips_when_unconfigured():
    channel = EmailChannel(server="", port=587, user="", password="", to_email="")

    assert channel.accepts(event())
    assert not channel.accepts(event(StatusTag.OK_BOLETO_ISSUED))
    assert not channel.configured
    asyncio.run(channel.send(event()))


def test_spreadsheet_posts_one_row():
    rows = []

    def handler(request):
        rows.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            channel = SpreadsheetChannel("https://planilha.test/hook", client=client)
            await channel.send(event())

    asyncio.run(scenario())

    assert len(rows) == 1
    assert rows[0]["tag"] == "ESCALATE_AUTH"
    assert rows[0]["tag_label"] == "Transbordo - Falha na autenticação"
    assert rows[0]["phone"] == "000000001"


def test_spreadsheet_filters_and_noop_without_url():
    channel = SpreadsheetChannel("")

    assert channel.accepts(event(StatusTag.OK_BOLETO_ISSUED))
    assert not channel.accepts(event(StatusTag.OK_OPTIONS))
    asyncio.run(channel.send(event()))
