"""
Simulacao de pagamento e emissao de boleto.

Emissao sempre re-simula com a quantidade de parcelas escolhida: o
codigo da simulacao em cache tem validade curta e nao e confiavel.
Se a nova simulacao exigir resumo, o identificador e trocado pelo
retornado em resumo-boleto antes de emitir.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from negocie_bridge.core.context import DebtContext
from negocie_bridge.core.errors import (
    InvalidOptionSelection,
    IssuanceFailed,
    NegociacaoError,
    OptionNoLongerAvailable,
    OptionsCallFailed,
    SummaryResolutionFailed,
)
from negocie_bridge.core.negocie_gateway import NegocieGateway

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class PaymentOption:
    installments: int
    total: Optional[float]
    text: str = ""
    code: Optional[str] = None
    due_date: Optional[str] = None
    installment_value: Optional[float] = None

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "PaymentOption":
        installments = raw.get("quantidadeParcela", raw.get("qtdParcelas", raw.get("parcelas")))
        total = raw.get("valorTotalComCustas")
        if total is None:
            total = raw.get("valor")
        code = raw.get("codigo") or raw.get("identificador")
        return cls(
            installments=_to_int(installments),
            total=_to_float(total),
            text=str(raw.get("texto") or ""),
            code=str(code) if code is not None else None,
            due_date=raw.get("dataVencimento"),
            installment_value=_to_float(raw.get("valorParcela")),
        )


@dataclass
class SimulationResult:
    options: List[PaymentOption]
    requires_summary: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SimulationResult":
        raw_options = payload.get("opcoesPagamento") or []
        return cls(
            options=[PaymentOption.from_payload(op) for op in raw_options],
            requires_summary=bool(payload.get("necessitaResumoBoleto") or payload.get("resumoBoleto")),
            raw=payload,
        )


@dataclass
class Boleto:
    digitable_line: str
    installments: int
    amount: Optional[float]
    due_date: Optional[str]
    url: Optional[str] = None
    second_copy: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "linhaDigitavel": self.digitable_line,
            "quantidadeParcela": self.installments,
            "valor": self.amount,
            "dataVencimento": self.due_date,
            "urlBoleto": self.url,
            "segundaVia": self.second_copy,
        }


def select_option(
    options: List[PaymentOption],
    index: Optional[int] = None,
    installments: Optional[int] = None,
) -> PaymentOption:
    """Escolhe por indice (1-based) ou por quantidade de parcelas."""
    if index is not None:
        if 1 <= index <= len(options):
            return options[index - 1]
        raise InvalidOptionSelection(f"Opção {index} não existe (1 a {len(options)})")
    if installments is not None:
        for option in options:
            if option.installments == installments:
                return option
        raise InvalidOptionSelection(f"Nenhuma opção em {installments} parcelas")
    raise InvalidOptionSelection("Informe a opção ou a quantidade de parcelas")


async def simulate(
    gateway: NegocieGateway,
    ctx: DebtContext,
    installments: int = 0,
    due_date: Optional[str] = None,
) -> SimulationResult:
    """Lista vazia nao e erro: o chamador classifica como ESCALATE_NO_OPTIONS."""
    try:
        payload = await gateway.simulate_payment_options(
            ctx.token,
            crm=ctx.crm,
            carteira=ctx.carteira,
            contracts=ctx.contracts,
            due_date=due_date,
            installments=installments,
        )
    except NegociacaoError as e:
        raise OptionsCallFailed("Falha na simulação de pagamento", cause=e) from e
    return SimulationResult.from_payload(payload)


def _boleto_from_response(response: Dict[str, Any], fallback_message: str) -> Dict[str, Any]:
    succeeded = response.get("sucesso", response.get("success"))
    if not succeeded or not response.get("linhaDigitavel"):
        raise IssuanceFailed(str(response.get("mensagem") or response.get("message") or fallback_message))
    return response


async def issue_boleto(gateway: NegocieGateway, ctx: DebtContext, chosen: PaymentOption) -> Boleto:
    fresh = await simulate(gateway, ctx, installments=chosen.installments)
    match = next((op for op in fresh.options if op.installments == chosen.installments), None)
    if match is None:
        raise OptionNoLongerAvailable(f"Opção em {chosen.installments} parcelas não está mais disponível")

    identifier = match.code
    if fresh.requires_summary:
        try:
            identifier = await gateway.resolve_summary(
                ctx.token, ctx.crm, ctx.carteira, ctx.primary_contract, match.code
            )
        except NegociacaoError as e:
            raise SummaryResolutionFailed("Falha no resumo do boleto", cause=e) from e
        logger.info(f"Identificador resolvido via resumo-boleto ({chosen.installments}x)")

    payload = {
        "Crm": ctx.crm,
        "Carteira": ctx.carteira,
        "Documento": ctx.document,
        "Fase": ctx.phase,
        "Contrato": ctx.primary_contract,
        "Valor": match.total,
        "QuantidadeParcela": match.installments,
        "DataVencimento": match.due_date,
        "Identificador": identifier,
    }
    try:
        response = await gateway.issue_boleto(ctx.token, payload)
    except NegociacaoError as e:
        raise IssuanceFailed("Falha na emissão do boleto", cause=e) from e

    response = _boleto_from_response(response, "Emissão sem linha digitável")
    amount = _to_float(response.get("valor"))
    return Boleto(
        digitable_line=str(response["linhaDigitavel"]),
        installments=match.installments,
        amount=match.total if amount is None else amount,
        due_date=response.get("dataVencimento") or match.due_date,
        url=response.get("urlBoleto") or response.get("linkBoleto"),
        raw=response,
    )


async def issue_second_copy(gateway: NegocieGateway, token: str, agreement: Dict[str, Any]) -> Boleto:
    """Segunda via de um acordo existente; nao re-simula."""
    payload = {
        "Crm": agreement.get("crm"),
        "Carteira": agreement.get("carteira"),
        "NumeroAcordo": agreement.get("numeroAcordo"),
        "Parcela": agreement.get("parcelaAtual"),
    }
    try:
        response = await gateway.issue_second_copy(token, payload)
    except NegociacaoError as e:
        raise IssuanceFailed("Falha na segunda via do boleto", cause=e) from e

    response = _boleto_from_response(response, "Segunda via sem linha digitável")
    return Boleto(
        digitable_line=str(response["linhaDigitavel"]),
        installments=_to_int(agreement.get("quantidadeParcela")),
        amount=_to_float(response.get("valor")),
        due_date=response.get("dataVencimento"),
        url=response.get("urlBoleto") or response.get("linkBoleto"),
        second_copy=True,
        raw=response,
    )
