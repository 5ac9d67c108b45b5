"""
Sync em lote dos usuarios conhecidos.

Lotes de tamanho fixo rodam em paralelo; entre lotes ha um intervalo
fixo para respeitar o limite da API externa. Falha de um usuario nao
interrompe o lote nem o sync.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from negocie_bridge.core.errors import UserNotFound
from negocie_bridge.core.pipeline import FULL_RUN, NegotiationPipeline, PipelineOptions
from negocie_bridge.core.user_directory import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    total: int = 0
    batches: int = 0
    tags: Counter = field(default_factory=Counter)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "batches": self.batches,
            "tags": dict(self.tags),
            "failures": dict(self.failures),
            "skipped": self.skipped,
        }


class SyncOrchestrator:
    def __init__(
        self,
        pipeline: NegotiationPipeline,
        directory: UserDirectory,
        batch_size: int = 2,
        batch_delay: float = 1.0,
        options: PipelineOptions = FULL_RUN,
    ):
        self.pipeline = pipeline
        self.directory = directory
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.options = options
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def _sync_one(self, phone: str) -> str:
        try:
            record = await self.pipeline.run(phone, self.options)
        except UserNotFound:
            raise
        except Exception as e:
            await self.pipeline.record_unexpected(phone, e)
            raise
        return record.status_tag.value

    async def sync_all(self, phones: Optional[List[str]] = None) -> SyncReport:
        """Roda um sync completo; se ja houver um em andamento, devolve relatorio com skipped=True."""
        if self._lock.locked():
            logger.info("Sync ja em andamento, novo disparo ignorado")
            return SyncReport(skipped=True)

        async with self._lock:
            phones = list(phones) if phones is not None else self.directory.phones()
            report = SyncReport(total=len(phones))
            logger.info(f"--- INICIANDO SYNC: {len(phones)} usuarios, lotes de {self.batch_size} ---")

            for start in range(0, len(phones), self.batch_size):
                if start > 0:
                    await asyncio.sleep(self.batch_delay)

                batch = phones[start:start + self.batch_size]
                report.batches += 1
                results = await asyncio.gather(*(self._sync_one(p) for p in batch), return_exceptions=True)

                for phone, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        report.failures[phone] = f"{result.__class__.__name__}: {result}"
                        logger.error(f"❌ Erro sincronizando {phone[-4:]}: {result}")
                    else:
                        report.tags[result] += 1

            logger.info(f"--- SYNC TERMINADO: {report.as_dict()} ---")
            return report
