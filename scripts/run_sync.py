#!/usr/bin/env python3
"""
Roda um sync completo do cache fora do servidor HTTP.

Uso:
    python scripts/run_sync.py
    python scripts/run_sync.py --phones 42154393888 98765432100
    python scripts/run_sync.py --batch-size 4 --delay 2
"""

import asyncio
import json
import logging

from negocie_bridge.core.cache_store import UserCacheStore
from negocie_bridge.core.config import Settings
from negocie_bridge.core.context import ContextReconstructor
from negocie_bridge.core.escalation import EscalationStateMachine
from negocie_bridge.core.logging_config import auto_configure
from negocie_bridge.core.negocie_gateway import NegocieGateway
from negocie_bridge.core.notifications import NotificationSink
from negocie_bridge.core.pipeline import NegotiationPipeline
from negocie_bridge.core.sync import SyncOrchestrator
from negocie_bridge.core.user_directory import StaticUserDirectory

logger = logging.getLogger("run_sync")


async def main(phones=None, batch_size=None, delay=None):
    settings = Settings.from_env()
    if not settings.user_directory_file:
        raise SystemExit("USER_DIRECTORY_FILE nao definido")

    directory = StaticUserDirectory.from_json_file(settings.user_directory_file)
    gateway = NegocieGateway.from_settings(settings)
    store = UserCacheStore(settings.cache_db_path, ttl_seconds=settings.cache_ttl_seconds)
    sink = NotificationSink.from_settings(settings)
    sink.start()

    try:
        pipeline = NegotiationPipeline(ContextReconstructor(gateway, directory), EscalationStateMachine(store, sink))
        orchestrator = SyncOrchestrator(
            pipeline,
            directory,
            batch_size=batch_size or settings.sync_batch_size,
            batch_delay=settings.sync_batch_delay if delay is None else delay,
        )
        report = await orchestrator.sync_all(phones)
    finally:
        await sink.stop()
        await gateway.aclose()
        store.close()

    print(json.dumps(report.as_dict(), indent=2, ensure_ascii=False))
    return report


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Sincronizar cache de negociacao com a API Negocie')
    parser.add_argument('--phones', nargs='*', help='Apenas estes telefones (default: diretorio inteiro)')
    parser.add_argument('--batch-size', type=int, help='Usuarios por lote')
    parser.add_argument('--delay', type=float, help='Segundos entre lotes')
    args = parser.parse_args()

    auto_configure()
    asyncio.run(main(phones=args.phones or None, batch_size=args.batch_size, delay=args.delay))
