"""
Cache por usuario (chave = telefone) em SQLite.

Tabela user_cache mantem as colunas da versao anterior do servico
(cpf, credores_json, dividas_json, simulacion_json, last_updated) para
que caches ja existentes continuem legiveis. Colunas novas sao
adicionadas via ALTER TABLE quando ausentes.

Concorrencia: ultima escrita vence por chave. Nao ha transacao
read-modify-write entre requests; update_status e um unico statement.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from negocie_bridge.core.database import ConnectionPool, PoolConfig
from negocie_bridge.core.status_tags import StatusTag

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS user_cache (
        phone TEXT PRIMARY KEY,
        cpf TEXT,
        credores_json TEXT,
        dividas_json TEXT,
        simulacion_json TEXT,
        last_updated DATETIME
    )
"""

# Colunas adicionadas depois da primeira versao da tabela
EXTRA_COLUMNS = {
    "nome": "TEXT",
    "acordos_json": "TEXT",
    "status_tag": "TEXT",
    "error_detail": "TEXT",
    "notified_at": "DATETIME",
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass
class UserRecord:
    phone: str
    document: str = ""
    name: Optional[str] = None
    creditors: Dict[str, Any] = field(default_factory=dict)
    debts: List[Dict[str, Any]] = field(default_factory=list)
    payment_options: Dict[str, Any] = field(default_factory=dict)
    agreements: List[Dict[str, Any]] = field(default_factory=list)
    status_tag: Optional[StatusTag] = None
    error_detail: Optional[str] = None
    notified_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_escalated(self) -> bool:
        return self.status_tag is not None and self.status_tag.is_escalation

    @property
    def option_list(self) -> List[Dict[str, Any]]:
        return list(self.payment_options.get("opcoesPagamento") or [])

    def with_status(self, tag: StatusTag, error_detail: Optional[str] = None) -> "UserRecord":
        """Copia com nova tag; error_detail so fica quando a tag e de falha."""
        return replace(
            self,
            status_tag=tag,
            error_detail=error_detail if tag.is_escalation else None,
            notified_at=None,
        )


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _load(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("JSON invalido no cache, ignorando coluna")
        return default


def _row_to_record(row) -> UserRecord:
    keys = row.keys()
    raw_tag = row["status_tag"] if "status_tag" in keys else None
    try:
        tag = StatusTag.parse(raw_tag)
    except ValueError:
        logger.warning(f"Tag desconhecida no cache ({raw_tag!r}), tratando como transbordo manual")
        tag = StatusTag.ESCALATE_MANUAL
    return UserRecord(
        phone=row["phone"],
        document=row["cpf"] or "",
        name=row["nome"] if "nome" in keys else None,
        creditors=_load(row["credores_json"], {}),
        debts=_load(row["dividas_json"], []),
        payment_options=_load(row["simulacion_json"], {}),
        agreements=_load(row["acordos_json"] if "acordos_json" in keys else None, []),
        status_tag=tag,
        error_detail=row["error_detail"] if "error_detail" in keys else None,
        notified_at=row["notified_at"] if "notified_at" in keys else None,
        updated_at=row["last_updated"],
    )


class UserCacheStore:
    """Store chave-valor de UserRecord com API async."""

    def __init__(self, db_path: str, ttl_seconds: int = 0, pool: Optional[ConnectionPool] = None):
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self._pool = pool or ConnectionPool(db_path, PoolConfig())
        self._init_schema()

    def _init_schema(self) -> None:
        with self._pool.connection() as conn:
            conn.execute(CREATE_TABLE_SQL)
            existing = {row["name"] for row in conn.execute("PRAGMA table_info(user_cache)")}
            for column, column_type in EXTRA_COLUMNS.items():
                if column not in existing:
                    conn.execute(f"ALTER TABLE user_cache ADD COLUMN {column} {column_type}")
                    logger.info(f"Coluna {column} adicionada ao user_cache")

    def close(self) -> None:
        self._pool.close()

    # ==========================================================================
    # Operacoes sincronas (rodam em thread)
    # ==========================================================================

    def _get_sync(self, phone: str) -> Optional[UserRecord]:
        with self._pool.connection() as conn:
            row = conn.execute("SELECT * FROM user_cache WHERE phone = ?", (phone,)).fetchone()
        return _row_to_record(row) if row else None

    def _upsert_sync(self, record: UserRecord) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO user_cache (
                    phone, cpf, nome, credores_json, dividas_json, simulacion_json,
                    acordos_json, status_tag, error_detail, notified_at, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.phone,
                    record.document,
                    record.name,
                    _dump(record.creditors),
                    _dump(record.debts),
                    _dump(record.payment_options),
                    _dump(record.agreements),
                    record.status_tag.value if record.status_tag else None,
                    record.error_detail,
                    record.notified_at,
                    record.updated_at,
                ),
            )

    def _update_status_sync(
        self,
        phone: str,
        tag: StatusTag,
        error_detail: Optional[str],
        document: Optional[str],
        name: Optional[str],
        notified_at: Optional[str],
        updated_at: str,
    ) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO user_cache (phone, cpf, nome, status_tag, error_detail, notified_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(phone) DO UPDATE SET
                    cpf = COALESCE(excluded.cpf, user_cache.cpf),
                    nome = COALESCE(excluded.nome, user_cache.nome),
                    status_tag = excluded.status_tag,
                    error_detail = excluded.error_detail,
                    notified_at = excluded.notified_at,
                    last_updated = excluded.last_updated
                """,
                (phone, document, name, tag.value, error_detail, notified_at, updated_at),
            )

    def _mark_notified_sync(self, phone: str, notified_at: str) -> None:
        with self._pool.connection() as conn:
            conn.execute("UPDATE user_cache SET notified_at = ? WHERE phone = ?", (notified_at, phone))

    def _delete_sync(self, phone: str) -> int:
        with self._pool.connection() as conn:
            return conn.execute("DELETE FROM user_cache WHERE phone = ?", (phone,)).rowcount

    def _clear_sync(self) -> int:
        with self._pool.connection() as conn:
            return conn.execute("DELETE FROM user_cache").rowcount

    def _count_sync(self) -> int:
        with self._pool.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM user_cache").fetchone()[0]

    # ==========================================================================
    # API async
    # ==========================================================================

    async def get(self, phone: str) -> Optional[UserRecord]:
        return await asyncio.to_thread(self._get_sync, phone)

    async def get_fresh(self, phone: str) -> Optional[UserRecord]:
        """Como get(), mas trata registro expirado (TTL) como ausente."""
        record = await self.get(phone)
        if record is None or self.is_fresh(record):
            return record
        logger.info(f"Cache expirado para {phone[-4:]}, indo ao vivo")
        return None

    async def upsert(self, record: UserRecord) -> UserRecord:
        record = replace(record, updated_at=utc_now())
        await asyncio.to_thread(self._upsert_sync, record)
        return record

    async def update_status(
        self,
        phone: str,
        tag: StatusTag,
        error_detail: Optional[str] = None,
        document: Optional[str] = None,
        name: Optional[str] = None,
        notified_at: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._update_status_sync,
            phone,
            tag,
            error_detail if tag.is_escalation else None,
            document,
            name,
            notified_at,
            utc_now(),
        )

    async def mark_notified(self, phone: str) -> str:
        notified_at = utc_now()
        await asyncio.to_thread(self._mark_notified_sync, phone, notified_at)
        return notified_at

    async def delete(self, phone: str) -> bool:
        """Remove o registro do telefone; o proximo request vai ao vivo."""
        return await asyncio.to_thread(self._delete_sync, phone) > 0

    async def clear_all(self) -> int:
        removed = await asyncio.to_thread(self._clear_sync)
        logger.warning(f"🧹 Cache limpo: {removed} registros removidos")
        return removed

    async def count(self) -> int:
        return await asyncio.to_thread(self._count_sync)

    def is_fresh(self, record: UserRecord) -> bool:
        # Transbordo nunca expira: so operador ou novo sync sobrescrevem
        if self.ttl_seconds <= 0 or record.is_escalated or not record.updated_at:
            return True
        try:
            updated = datetime.strptime(record.updated_at, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return True
        return datetime.now(timezone.utc) - updated <= timedelta(seconds=self.ttl_seconds)

    async def health_check(self) -> Dict[str, Any]:
        try:
            total = await self.count()
            return {"status": "healthy", "records": total, "database_path": self.db_path}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
