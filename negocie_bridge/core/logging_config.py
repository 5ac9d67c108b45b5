"""
Configuracao de logging estruturado para o servico de negociacao.

Features:
- Logs em formato JSON (producao/staging)
- Logs coloridos (desenvolvimento)
- Rotacao de arquivo opcional
- Contexto por request (request_id, path, phone) via contextvars,
  seguro para codigo async
- Mascaramento de telefone/documento nas mensagens
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("log_context", default={})


class JSONFormatter(logging.Formatter):
    """Formatter que produz JSON estruturado."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(_log_context.get())

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Formatter com cores para desenvolvimento."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        request_id = _log_context.get().get("request_id")
        prefix = f"[{request_id}] " if request_id else ""

        formatted = (
            f"{color}[{datetime.now().strftime('%H:%M:%S')}] "
            f"{record.levelname:8}{reset} "
            f"{record.module}:{record.lineno} - "
            f"{prefix}{record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def set_context(**kwargs) -> None:
    """Adiciona campos ao contexto de log da task atual."""
    _log_context.set({**_log_context.get(), **kwargs})


def mask_document(value: Optional[str], visible: int = 3) -> str:
    """Mascara CPF/CNPJ ou telefone mantendo os ultimos digitos."""
    if not value:
        return ""
    value = str(value)
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configura logging para a aplicacao.

    Args:
        level: Nivel de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Se True, usa formato JSON (producao)
        log_file: Caminho para arquivo de log (opcional, sempre JSON)
        max_bytes: Tamanho maximo do arquivo antes de rotacionar
        backup_count: Numero de arquivos de backup a manter
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if json_format else ColoredFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    # Silenciar loggers barulhentos
    for noisy in ("httpx", "httpcore", "apscheduler", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configurado",
        extra={"extra_data": {"level": level, "json_format": json_format, "log_file": log_file}},
    )


def auto_configure() -> None:
    """Configura logging a partir de ENVIRONMENT, LOG_LEVEL e LOG_FILE."""
    env = os.getenv("ENVIRONMENT", "development")
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=env in ("production", "staging"),
        log_file=os.getenv("LOG_FILE") or None,
    )


class LoggingMiddleware:
    """Middleware ASGI que define request_id/path/method no contexto de log."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        token = _log_context.set({
            "request_id": uuid.uuid4().hex[:8],
            "path": scope.get("path", ""),
            "method": scope.get("method", ""),
        })
        logging.getLogger("http").info(f"Request: {scope.get('method', '')} {scope.get('path', '')}")
        try:
            await self.app(scope, receive, send)
        finally:
            _log_context.reset(token)
