"""
Pytest configuration and fixtures for negocie-bridge tests.
"""

import copy

import pytest

from negocie_bridge.core.cache_store import UserCacheStore
from negocie_bridge.core.context import ContextReconstructor
from negocie_bridge.core.errors import UpstreamError
from negocie_bridge.core.escalation import EscalationStateMachine
from negocie_bridge.core.negotiation_service import NegotiationService
from negocie_bridge.core.notifications import NotificationSink
from negocie_bridge.core.pipeline import NegotiationPipeline
from negocie_bridge.core.user_directory import StaticUserDirectory

CREDITOR = {
    "financeira": "BANCO XPTO",
    "crms": ["CRM-1"],
    "carteiraCrms": [{"carteiraId": 10}],
}

DEBTS = [
    {
        "valor": 1500.5,
        "fase": "FASE-1",
        "contratos": [
            {"numero": "C-100", "produto": "Cartao"},
            {"numero": "C-200", "produto": "Emprestimo"},
        ],
    }
]

SIMULATION = {
    "opcoesPagamento": [
        {"quantidadeParcela": 1, "valorTotalComCustas": 1000.0, "codigo": "OP-1", "texto": "À vista",
         "dataVencimento": "2026-11-01"},
        {"quantidadeParcela": 3, "valorTotalComCustas": 1200.0, "codigo": "OP-3", "texto": "3x sem juros",
         "dataVencimento": "2026-11-01"},
    ],
    "necessitaResumoBoleto": False,
}


class FakeGateway:
    """Gateway em memoria. `fail` mapeia nome do metodo -> excecao."""

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.creditors = {"credores": [copy.deepcopy(CREDITOR)]}
        self.creditors_by_document = {}
        self.debts = copy.deepcopy(DEBTS)
        self.agreements = []
        self.simulation = copy.deepcopy(SIMULATION)
        self.summary_identifier = "RESUMO-1"
        self.issue_response = {
            "sucesso": True,
            "linhaDigitavel": "34191.79001 01043.510047 91020.150008 1 90010000120000",
            "valor": 1200.0,
            "dataVencimento": "2026-11-01",
            "urlBoleto": "https://boletos.example/1",
        }
        self.second_copy_response = {
            "sucesso": True,
            "linhaDigitavel": "34191.00000 00000.000000 00000.000000 1 00000000040000",
            "valor": 400.0,
            "dataVencimento": "2026-12-01",
        }
        self.closed = False

    def _call(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    def count(self, name=None):
        if name is None:
            return len(self.calls)
        return sum(1 for call, _ in self.calls if call == name)

    def payloads(self, name):
        return [args[-1] for call, args in self.calls if call == name]

    async def authenticate(self, document):
        self._call("authenticate", document)
        return f"token-{document}"

    async def list_creditors(self, token):
        self._call("list_creditors", token)
        document = token.replace("token-", "", 1)
        return copy.deepcopy(self.creditors_by_document.get(document, self.creditors))

    async def list_debts(self, token, creditor):
        self._call("list_debts", token, creditor)
        return copy.deepcopy(self.debts)

    async def list_agreements(self, token, creditor):
        self._call("list_agreements", token, creditor)
        return copy.deepcopy(self.agreements)

    async def simulate_payment_options(self, token, crm, carteira, contracts, due_date=None,
                                       down_payment=0, installments=0, installment_value=0):
        self._call("simulate_payment_options", token, {
            "Crm": crm, "Carteira": carteira, "Contratos": contracts, "QuantidadeParcela": installments,
        })
        return copy.deepcopy(self.simulation)

    async def resolve_summary(self, token, crm, carteira, contract, identifier):
        self._call("resolve_summary", token, {"Contrato": contract, "Identificador": identifier})
        return self.summary_identifier

    async def issue_boleto(self, token, payload):
        self._call("issue_boleto", token, payload)
        return copy.deepcopy(self.issue_response)

    async def issue_second_copy(self, token, payload):
        self._call("issue_second_copy", token, payload)
        return copy.deepcopy(self.second_copy_response)

    async def aclose(self):
        self.closed = True


class RecordingSink(NotificationSink):
    """Sink que so registra os eventos, sem worker nem canais."""

    def __init__(self):
        super().__init__(channels=[])
        self.events = []

    def notify(self, event):
        self.events.append(event)
        return True

    def tags(self):
        return [event.tag for event in self.events]

    def start(self):
        pass

    async def stop(self, drain_timeout=5.0):
        pass


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def directory():
    """Diretorio de teste: 000000001 tem credor, 000000002 nao."""
    return StaticUserDirectory.from_mapping({
        "000000001": {"cpf_cnpj": "111", "nome": "Maria Teste"},
        "000000002": {"cpf_cnpj": "222", "nome": "Joao Sem Credor"},
    })


@pytest.fixture
def store(tmp_path):
    cache = UserCacheStore(str(tmp_path / "cache.db"))
    yield cache
    cache.close()


@pytest.fixture
def escalation(store, sink):
    return EscalationStateMachine(store, sink)


@pytest.fixture
def pipeline(gateway, directory, escalation):
    return NegotiationPipeline(ContextReconstructor(gateway, directory), escalation)


@pytest.fixture
def service(directory, store, pipeline, escalation):
    return NegotiationService(directory, store, pipeline, escalation)


@pytest.fixture
def no_creditor(gateway):
    """Telefone 000000002 (documento 222) sem credores na API."""
    gateway.creditors_by_document["222"] = {"credores": []}
    return gateway


@pytest.fixture
def upstream_500():
    return UpstreamError(500, "Internal Server Error")
