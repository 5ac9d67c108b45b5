"""
Reconstrucao do contexto de divida de um telefone.

Sequencia estrita: diretorio -> autenticacao -> credores -> dividas.
Nenhuma escrita em cache aqui; o chamador decide o que persistir.

Politicas conhecidas (simplificacoes, nao bugs):
- Usa sempre o primeiro credor retornado.
- Contratos sao achatados na ordem divida -> contrato, sem deduplicar.
- A fase vem da primeira divida que tiver uma.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from negocie_bridge.core.errors import (
    AuthFailed,
    DebtLookupFailed,
    MissingWalletId,
    NegociacaoError,
    NoCreditor,
    UserNotFound,
)
from negocie_bridge.core.logging_config import mask_document
from negocie_bridge.core.negocie_gateway import NegocieGateway
from negocie_bridge.core.user_directory import DirectoryEntry, UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class DebtContext:
    """Contexto efemero de uma execucao do pipeline. Nunca persistido."""

    phone: str
    document: str
    token: str
    crm: Any
    carteira: Any
    contracts: List[str]
    phase: Optional[str] = None
    name: Optional[str] = None
    creditor: Dict[str, Any] = field(default_factory=dict)
    creditors_payload: Dict[str, Any] = field(default_factory=dict)
    debts: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def primary_contract(self) -> Optional[str]:
        return self.contracts[0] if self.contracts else None


def extract_wallet_id(creditor: Dict[str, Any]) -> Any:
    wallets = creditor.get("carteiraCrms") or []
    if not wallets:
        return None
    first = wallets[0] or {}
    return first.get("carteiraId") or first.get("id")


def flatten_contracts(debts: List[Dict[str, Any]]) -> List[str]:
    contracts = []
    for debt in debts:
        for contract in debt.get("contratos") or []:
            number = contract.get("numero") or contract.get("documento")
            if number is not None:
                contracts.append(str(number))
    return contracts


def first_phase(debts: List[Dict[str, Any]]) -> Optional[str]:
    for debt in debts:
        if debt.get("fase"):
            return str(debt["fase"])
    return None


class ContextReconstructor:
    def __init__(self, gateway: NegocieGateway, directory: UserDirectory):
        self.gateway = gateway
        self.directory = directory

    def resolve(self, phone: str) -> DirectoryEntry:
        entry = self.directory.lookup(phone)
        if entry is None:
            raise UserNotFound(f"Telefone {phone} nao encontrado no diretorio")
        return entry

    async def authenticate(self, document: str) -> str:
        try:
            return await self.gateway.authenticate(document)
        except NegociacaoError as e:
            raise AuthFailed(f"Falha ao autenticar {mask_document(document)}", cause=e) from e

    async def reconstruct(self, phone: str) -> DebtContext:
        entry = self.resolve(phone)
        token = await self.authenticate(entry.document)

        try:
            creditors_payload = await self.gateway.list_creditors(token)
        except NegociacaoError as e:
            raise DebtLookupFailed("Falha ao buscar credores", cause=e) from e

        creditors = creditors_payload.get("credores") or []
        if not creditors:
            raise NoCreditor("Nenhum credor retornado")

        creditor = creditors[0]
        if len(creditors) > 1:
            logger.info(f"{len(creditors)} credores para {mask_document(phone)}; usando o primeiro")

        carteira = extract_wallet_id(creditor)
        if carteira is None:
            raise MissingWalletId("Credor sem carteiraCrms[0]")

        crms = creditor.get("crms") or []
        if not crms:
            raise MissingWalletId("Credor sem crms")

        try:
            debts = await self.gateway.list_debts(token, creditor)
        except NegociacaoError as e:
            raise DebtLookupFailed("Falha ao buscar dividas", cause=e) from e

        return DebtContext(
            phone=phone,
            document=entry.document,
            name=entry.name,
            token=token,
            crm=crms[0],
            carteira=carteira,
            contracts=flatten_contracts(debts),
            phase=first_phase(debts),
            creditor=creditor,
            creditors_payload=creditors_payload,
            debts=debts,
        )
