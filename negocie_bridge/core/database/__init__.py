"""
Database module - Connection pooling para o cache SQLite.
"""

from .connection_pool import ConnectionPool, PoolConfig

__all__ = ['ConnectionPool', 'PoolConfig']
