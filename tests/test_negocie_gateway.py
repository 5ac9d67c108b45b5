"""
Testes do cliente da API Negocie com httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from negocie_bridge.core.errors import UpstreamError, UpstreamTimeout
from negocie_bridge.core.negocie_gateway import (
    AUTH_PATH,
    CREDORES_PATH,
    DIVIDA_PATH,
    OPCOES_PATH,
    NegocieGateway,
)


def make_gateway(handler):
    transport = httpx.MockTransport(handler)
    return NegocieGateway(
        auth_base_url="https://auth.test",
        negocie_base_url="https://api.test",
        app_id="app",
        app_pass="secret",
        auth_client=httpx.AsyncClient(base_url="https://auth.test", transport=transport),
        negocie_client=httpx.AsyncClient(base_url="https://api.test", transport=transport),
    )


def run(gateway, coro):
    async def _run():
        try:
            return await coro
        finally:
            await gateway.aclose()
    return asyncio.run(_run())


def test_authenticate_sends_credentials_and_returns_token():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"token": "abc"})

    gateway = make_gateway(handler)
    token = run(gateway, gateway.authenticate("12345678900"))

    assert token == "abc"
    assert seen["url"] == f"https://auth.test{AUTH_PATH}"
    assert seen["body"] == {"AppId": "app", "AppPass": "secret", "Usuario": "12345678900"}


def test_authenticate_without_token_is_upstream_error():
    gateway = make_gateway(lambda request: httpx.Response(200, json={"ok": True}))

    with pytest.raises(UpstreamError):
        run(gateway, gateway.authenticate("1"))


def test_non_2xx_raises_upstream_error_with_status_and_message():
    gateway = make_gateway(lambda request: httpx.Response(401, json={"mensagem": "Token expirado"}))

    with pytest.raises(UpstreamError) as exc_info:
        run(gateway, gateway.list_creditors("tok"))

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Token expirado"


def test_timeout_raises_upstream_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    gateway = make_gateway(handler)

    with pytest.raises(UpstreamTimeout):
        run(gateway, gateway.list_creditors("tok"))


def test_bearer_token_and_debt_body():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"dividas": [{"valor": 10}]})

    gateway = make_gateway(handler)
    creditor = {"financeira": "BANCO", "crms": ["CRM-1"], "carteiraCrms": [{"carteiraId": 1}]}
    debts = run(gateway, gateway.list_debts("tok", creditor))

    assert debts == [{"valor": 10}]
    assert seen["auth"] == "Bearer tok"
    assert seen["path"] == DIVIDA_PATH
    assert seen["body"] == {"financeira": "BANCO", "crms": ["CRM-1"]}


def test_list_creditors_accepts_bare_list():
    def handler(request):
        assert request.url.path == CREDORES_PATH
        assert request.method == "GET"
        return httpx.Response(200, json=[{"financeira": "X"}])

    gateway = make_gateway(handler)
    assert run(gateway, gateway.list_creditors("tok")) == {"credores": [{"financeira": "X"}]}


def test_simulation_body_shape():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"opcoesPagamento": []})

    gateway = make_gateway(handler)
    run(gateway, gateway.simulate_payment_options("tok", "CRM-1", 10, ["C-1", "C-2"], installments=3))

    assert seen["path"] == OPCOES_PATH
    assert seen["body"] == {
        "Crm": "CRM-1",
        "Carteira": 10,
        "Contratos": ["C-1", "C-2"],
        "DataVencimento": None,
        "ValorEntrada": 0,
        "QuantidadeParcela": 3,
        "ValorParcela": 0,
    }


def test_resolve_summary_without_identifier_fails():
    gateway = make_gateway(lambda request: httpx.Response(200, json={}))

    with pytest.raises(UpstreamError):
        run(gateway, gateway.resolve_summary("tok", "CRM-1", 10, "C-1", "OP-1"))


def test_non_json_error_body_is_truncated_text():
    gateway = make_gateway(lambda request: httpx.Response(502, text="Bad gateway"))

    with pytest.raises(UpstreamError) as exc_info:
        run(gateway, gateway.list_agreements("tok", {"financeira": "X", "crms": []}))

    assert exc_info.value.status_code == 502
    assert "Bad gateway" in str(exc_info.value)
