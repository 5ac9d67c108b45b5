"""
Testes HTTP das rotas com FastAPI TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from negocie_bridge.app import create_app
from negocie_bridge.core.config import Settings
from negocie_bridge.core.status_tags import StatusTag
from negocie_bridge.routes.negociacao_routes import limiter

ADMIN_KEY = "chave-admin"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        cache_db_path=str(tmp_path / "routes.db"),
        sync_batch_delay=0,
        admin_api_key=ADMIN_KEY,
    )


@pytest.fixture
def client(settings, gateway, directory, sink):
    limiter.reset()
    app = create_app(settings=settings, gateway=gateway, directory=directory, sink=sink)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["cache"]["records"] == 0
    assert body["sync_running"] is False


def test_buscar_credores_with_function_call_username(client):
    response = client.post(
        "/api/negociacao/buscar-credores",
        json={"function_call_username": "bot--000000001", "cpf_cnpj": "111"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "markdown"
    assert body["raw"]["status"] == "exito"
    assert body["markdown"].startswith("**Dívidas**")


def test_buscar_credores_unknown_phone(client):
    response = client.post("/api/negociacao/buscar-credores", json={"user_id": "123456789", "document": "1"})

    assert response.status_code == 404
    assert response.json()["raw"]["status"] == "nao_encontrado"


def test_invalid_payload_is_422(client):
    response = client.post("/api/negociacao/buscar-opcoes-pagamento", json={"user_id": "abc"})
    assert response.status_code == 422


def test_options_then_issue(client, sink):
    options = client.post("/api/negociacao/buscar-opcoes-pagamento", json={"user_id": "000000001"})
    assert len(options.json()["raw"]["opcoesPagamento"]) == 2

    issued = client.post("/api/negociacao/emitir-boleto", json={"user_id": "000000001", "installment_count": 3})

    assert issued.status_code == 200
    assert issued.json()["raw"]["boleto"]["quantidadeParcela"] == 3
    assert sink.tags() == [StatusTag.OK_BOLETO_ISSUED]


def test_emitir_boleto_requires_a_choice(client):
    response = client.post("/api/negociacao/emitir-boleto", json={"user_id": "000000001"})
    assert response.status_code == 422


def test_segunda_via_without_agreement(client):
    response = client.post("/api/negociacao/segunda-via", json={"user_id": "000000001", "second_copy": True})
    assert response.json()["raw"]["status"] == "sem_acordo"


def test_transbordo_manual(client, sink):
    response = client.post("/api/negociacao/transbordo", json={"user_id": "000000001", "detail": "quer falar"})

    assert response.status_code == 200
    assert response.json()["raw"]["tag"] == "ESCALATE_MANUAL"
    assert sink.tags() == [StatusTag.ESCALATE_MANUAL]


def test_transbordo_refuses_ok_tags(client, sink):
    client.post("/api/negociacao/transbordo", json={"user_id": "000000001"})

    response = client.post(
        "/api/negociacao/transbordo", json={"user_id": "000000001", "tag": "OK_BOLETO_ISSUED"}
    )
    gated = client.post("/api/negociacao/buscar-credores", json={"user_id": "000000001", "document": "111"})

    assert response.status_code == 422
    assert sink.tags() == [StatusTag.ESCALATE_MANUAL]
    assert gated.json()["raw"]["status"] == "transbordo"


def test_transbordo_unknown_phone(client, sink):
    response = client.post("/api/negociacao/transbordo", json={"user_id": "123456789"})

    assert response.status_code == 404
    assert sink.events == []


def test_rate_limit(client, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_DEFAULT", "2/minute")
    payload = {"user_id": "000000001"}

    codes = [client.post("/api/negociacao/segunda-via", json=payload).status_code for _ in range(3)]

    assert codes == [200, 200, 429]


# ==============================================================================
# Admin
# ==============================================================================

def test_admin_requires_key(client):
    assert client.post("/api/admin/sync-database").status_code == 401
    assert client.post("/api/admin/sync-database", headers={"X-Admin-Key": "errada"}).status_code == 401


def test_admin_disabled_without_configured_key(tmp_path, gateway, directory, sink):
    app = create_app(
        settings=Settings(cache_db_path=str(tmp_path / "off.db")), gateway=gateway, directory=directory, sink=sink
    )
    with TestClient(app) as client:
        assert client.post("/api/admin/sync-database", headers={"X-Admin-Key": "x"}).status_code == 503


def test_sync_database_runs_in_background(client, gateway):
    response = client.post("/api/admin/sync-database", headers={"X-Admin-Key": ADMIN_KEY})

    assert response.status_code == 200
    assert "Iniciando" in response.json()["status"]
    assert client.get("/health").json()["cache"]["records"] == 2
    assert gateway.count("simulate_payment_options") == 2


def test_clear_cache(client):
    client.post("/api/negociacao/buscar-credores", json={"user_id": "000000001", "document": "111"})
    headers = {"X-Admin-Key": ADMIN_KEY}

    refused = client.post("/api/admin/clear-cache", json={"confirmation": "nao"}, headers=headers)
    cleared = client.post("/api/admin/clear-cache", json={"confirmation": "LIMPAR-CACHE"}, headers=headers)

    assert refused.status_code == 400
    assert cleared.json()["raw"]["removidos"] == 1


def test_release_escalation_requires_admin_key(client):
    client.post("/api/negociacao/transbordo", json={"user_id": "000000001"})

    denied = client.post("/api/admin/release-escalation", json={"user_id": "000000001"})
    released = client.post(
        "/api/admin/release-escalation", json={"user_id": "000000001"}, headers={"X-Admin-Key": ADMIN_KEY}
    )
    identified = client.post("/api/negociacao/buscar-credores", json={"user_id": "000000001", "document": "111"})

    assert denied.status_code == 401
    assert released.json()["raw"]["removido"] is True
    assert identified.json()["raw"]["status"] == "exito"
    assert identified.json()["raw"]["tag"] == "OK_LISTED"
