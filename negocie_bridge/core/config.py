"""
Configuracao do servico via variaveis de ambiente (.env).

Uso:
    from negocie_bridge.core.config import Settings

    settings = Settings.from_env()
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Carregar .env antes de ler variaveis
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


@dataclass
class Settings:
    """Parametros do servico. Valores default seguem o ambiente de producao."""

    # API Negocie
    auth_base_url: str = "https://bpdigital-api.bellinatiperez.com.br"
    negocie_base_url: str = "https://api-negocie.bellinati.com.br"
    app_id: str = ""
    app_pass: str = ""
    http_timeout: float = 30.0

    # Cache
    cache_db_path: str = "./cache_negociacao.db"
    cache_ttl_seconds: int = 0  # 0 = sem expiracao

    # Sync em lote
    sync_batch_size: int = 2
    sync_batch_delay: float = 1.0
    sync_cron_hour: Optional[int] = None

    # Diretorio de usuarios (telefone -> documento)
    user_directory_file: str = ""

    # Notificacoes
    email_server: str = ""
    email_port: int = 587
    email_user: str = ""
    email_pass: str = ""
    escalation_email_to: str = ""
    spreadsheet_webhook_url: str = ""
    notify_queue_size: int = 100

    # Admin
    admin_api_key: str = ""
    cache_clear_confirmation: str = "LIMPAR-CACHE"

    @classmethod
    def from_env(cls) -> "Settings":
        cron_hour = _env_str("SYNC_CRON_HOUR")
        return cls(
            auth_base_url=_env_str("NEGOCIE_AUTH_BASE_URL", cls.auth_base_url),
            negocie_base_url=_env_str("NEGOCIE_API_BASE_URL", cls.negocie_base_url),
            app_id=_env_str("API_APP_ID"),
            app_pass=_env_str("API_APP_PASS"),
            http_timeout=_env_float("NEGOCIE_HTTP_TIMEOUT", cls.http_timeout),
            cache_db_path=_env_str("CACHE_DB_PATH", cls.cache_db_path),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", cls.cache_ttl_seconds),
            sync_batch_size=max(1, _env_int("SYNC_BATCH_SIZE", cls.sync_batch_size)),
            sync_batch_delay=_env_float("SYNC_BATCH_DELAY_SECONDS", cls.sync_batch_delay),
            sync_cron_hour=int(cron_hour) if cron_hour else None,
            user_directory_file=_env_str("USER_DIRECTORY_FILE"),
            email_server=_env_str("EMAIL_SERVER"),
            email_port=_env_int("EMAIL_PORT", cls.email_port),
            email_user=_env_str("EMAIL_USER"),
            email_pass=_env_str("EMAIL_PASS"),
            escalation_email_to=_env_str("ESCALATION_EMAIL_TO"),
            spreadsheet_webhook_url=_env_str("SPREADSHEET_WEBHOOK_URL"),
            notify_queue_size=_env_int("NOTIFY_QUEUE_SIZE", cls.notify_queue_size),
            admin_api_key=_env_str("ADMIN_API_KEY"),
            cache_clear_confirmation=_env_str("CACHE_CLEAR_CONFIRMATION", cls.cache_clear_confirmation),
        )