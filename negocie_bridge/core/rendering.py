"""
Textos em markdown (pt-BR) devolvidos ao cliente de chat.
"""

from typing import Any, Dict, List, Optional

from negocie_bridge.core.negotiation import Boleto, PaymentOption

HANDOFF_MESSAGE = (
    "Estamos transferindo você para um de nossos atendentes. "
    "Em instantes alguém dará continuidade ao seu atendimento. 🙋"
)
FALLBACK_MESSAGE = (
    "Tivemos um problema inesperado e já encaminhamos seu atendimento "
    "para um de nossos atendentes."
)
NOT_FOUND_MESSAGE = "Não encontramos seu cadastro. Confira o número informado ou fale com um atendente."
DOCUMENT_MISMATCH_MESSAGE = "O documento informado não confere com o nosso cadastro. Por favor, verifique e tente novamente."
NO_AGREEMENT_MESSAGE = "Não encontramos um acordo ativo para emitir a segunda via."
AGREEMENT_EXISTS_MESSAGE = (
    "Você já possui um acordo ativo. Posso emitir a segunda via do boleto para você."
)


def format_brl(value: Optional[float]) -> str:
    if value is None:
        return "R$ -"
    return f"R$ {value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def render_debts(debts: List[Dict[str, Any]], updated_at: Optional[str] = None, name: Optional[str] = None) -> str:
    greeting = f"**Olá, {name}.**" if name else "**Olá.**"
    suffix = f" (informação de {updated_at})" if updated_at else ""
    if not debts:
        return f"{greeting} Não encontramos dívidas em aberto{suffix}."
    md = f"{greeting} Encontramos suas dívidas{suffix}:\n\n"
    for i, debt in enumerate(debts, start=1):
        md += f"### Dívida {i}: Total {format_brl(_as_float(debt.get('valor')))}\n"
        for contract in debt.get("contratos") or []:
            md += f"- Produto: {contract.get('produto', '-')} (Doc: {contract.get('numero', '-')})\n"
    return md


def render_options(options: List[PaymentOption]) -> str:
    md = "Opções de pagamento disponíveis:\n\n"
    for idx, option in enumerate(options, start=1):
        md += f"**{idx}. {option.text or f'{option.installments}x'}**\n"
        md += f"- Parcelas: {option.installments}\n"
        md += f"- Total: {format_brl(option.total)}\n"
        if option.due_date:
            md += f"- Vencimento: {option.due_date}\n"
        md += "\n"
    return md


def render_boleto(boleto: Boleto) -> str:
    title = "Segunda via do boleto" if boleto.second_copy else "Boleto emitido"
    md = f"{title}:\n\n"
    md += f"- Valor: {format_brl(boleto.amount)}\n"
    if boleto.installments:
        md += f"- Parcelas: {boleto.installments}\n"
    if boleto.due_date:
        md += f"- Vencimento: {boleto.due_date}\n"
    md += f"- Linha digitável: `{boleto.digitable_line}`\n"
    if boleto.url:
        md += f"- Link: {boleto.url}\n"
    return md


def markdown(title: str, message: str) -> str:
    return f"**{title}**\n\n{message}"
