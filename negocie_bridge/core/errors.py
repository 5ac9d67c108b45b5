"""
Hierarquia de erros do fluxo de negociacao.

Dois grupos:
- UserFacingError: validacoes devolvidas direto ao cliente de chat
  (nunca geram tag de transbordo).
- Demais NegociacaoError: falhas do pipeline, convertidas em tag
  ESCALATE_* na borda dos handlers.
"""

from typing import Optional


class NegociacaoError(Exception):
    """Erro base do pipeline de negociacao."""

    def __init__(self, detail: str = "", cause: Optional[BaseException] = None):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail or self.__class__.__name__
        self.cause = cause


# =============================================================================
# Erros de transporte (Gateway)
# =============================================================================

class UpstreamError(NegociacaoError):
    """Resposta nao-2xx da API externa."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"HTTP {status_code}: {message}".strip())
        self.status_code = status_code
        self.message = message


class UpstreamTimeout(NegociacaoError):
    """Nenhuma resposta dentro do timeout configurado."""


# =============================================================================
# Erros de validacao (voltam ao usuario, sem transbordo)
# =============================================================================

class UserFacingError(NegociacaoError):
    """Erro que o cliente de chat deve tratar, nao um humano."""


class UserNotFound(UserFacingError):
    pass


class DocumentMismatch(UserFacingError):
    pass


class NoActiveAgreement(UserFacingError):
    pass


class InvalidOptionSelection(UserFacingError):
    """Indice ou quantidade de parcelas que nao existe na simulacao."""


# =============================================================================
# Erros do pipeline (viram transbordo)
# =============================================================================

class AuthFailed(NegociacaoError):
    pass


class NoCreditor(NegociacaoError):
    pass


class MissingWalletId(NegociacaoError):
    pass


class DebtLookupFailed(NegociacaoError):
    pass


class OptionsEmpty(NegociacaoError):
    """Simulacao sem opcoes: desfecho de negocio, nao falha tecnica."""


class OptionsCallFailed(NegociacaoError):
    pass


class OptionNoLongerAvailable(NegociacaoError):
    pass


class SummaryResolutionFailed(NegociacaoError):
    pass


class IssuanceFailed(NegociacaoError):
    pass


def describe_error(exc: BaseException) -> str:
    """Texto de diagnostico para error_detail, incluindo a causa upstream."""
    detail = getattr(exc, "detail", None) or str(exc) or exc.__class__.__name__
    cause = getattr(exc, "cause", None)
    if cause is not None:
        cause_detail = getattr(cause, "detail", None) or str(cause)
        if cause_detail and cause_detail not in detail:
            detail = f"{detail} ({cause_detail})"
    return f"{exc.__class__.__name__}: {detail}"
