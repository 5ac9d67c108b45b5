"""
Pool de conexoes SQLite para o cache de negociacao.

Features:
- Conexoes reutilizaveis com limite maximo
- Timeout para obter conexao
- Descarte de conexoes nao saudaveis
- Thread-safe (o cache roda as queries via asyncio.to_thread)
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Iterator

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """Configuracao do pool de conexoes."""
    max_size: int = 5
    timeout: float = 5.0


class ConnectionPool:
    """
    Uso:
        pool = ConnectionPool("./cache_negociacao.db")

        with pool.connection() as conn:
            conn.execute("SELECT * FROM user_cache")
    """

    def __init__(self, db_path: str, config: PoolConfig = None):
        self.db_path = db_path
        self.config = config or PoolConfig()
        self._idle: "Queue[sqlite3.Connection]" = Queue(maxsize=self.config.max_size)
        self._size = 0
        self._lock = threading.Lock()
        self._closed = False
        logger.info(f"ConnectionPool inicializado: {db_path} (max={self.config.max_size})")

    def _reserve(self) -> bool:
        """Reserva uma vaga no pool; checagem e incremento na mesma secao critica."""
        with self._lock:
            if self._size >= self.config.max_size:
                return False
            self._size += 1
            return True

    def _release(self) -> None:
        with self._lock:
            self._size -= 1

    def _create(self) -> sqlite3.Connection:
        """Abre uma conexao para uma vaga ja reservada."""
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=self.config.timeout)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.Error:
            self._release()
            raise
        return conn

    def _discard(self, conn: sqlite3.Connection) -> None:
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Erro ao fechar conexao: {e}")
        self._release()

    @staticmethod
    def _healthy(conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("SELECT 1")
            return True
        except sqlite3.Error:
            return False

    def _acquire(self) -> sqlite3.Connection:
        """Conexao ociosa, nova (se houver vaga) ou espera ate `timeout`."""
        try:
            conn = self._idle.get_nowait()
        except Empty:
            conn = None

        if conn is not None:
            if self._healthy(conn):
                return conn
            self._discard(conn)

        if self._reserve():
            return self._create()

        try:
            conn = self._idle.get(timeout=self.config.timeout)
        except Empty:
            raise TimeoutError(
                f"Timeout obtendo conexao (max={self.config.max_size}, timeout={self.config.timeout}s)"
            ) from None
        if not self._healthy(conn):
            self._discard(conn)
            if not self._reserve():
                raise TimeoutError(f"Sem vaga para repor conexao (max={self.config.max_size})")
            return self._create()
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Empresta uma conexao; commit ao sair sem erro, rollback em erro."""
        if self._closed:
            raise RuntimeError("Pool esta fechado")

        conn = self._acquire()

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._closed:
                self._discard(conn)
            else:
                try:
                    self._idle.put_nowait(conn)
                except Full:
                    self._discard(conn)

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                self._discard(self._idle.get_nowait())
            except Empty:
                break
        logger.info("ConnectionPool fechado")

    @property
    def stats(self) -> dict:
        return {
            "size": self._size,
            "available": self._idle.qsize(),
            "max_size": self.config.max_size,
            "closed": self._closed,
        }
