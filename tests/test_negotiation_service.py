"""
Cenarios ponta a ponta dos handlers de negociacao (gateway falso + SQLite).
"""

import asyncio

import pytest

from negocie_bridge.core.cache_store import UserRecord
from negocie_bridge.core.status_tags import StatusTag
from negocie_bridge.core.sync import SyncOrchestrator


# ==============================================================================
# Identificacao
# ==============================================================================

def test_unknown_phone_returns_not_found_without_writing(service, store, gateway):
    response = asyncio.run(service.identify("999999999", "123"))

    assert response.status_code == 404
    assert response.raw["status"] == "nao_encontrado"
    assert asyncio.run(store.count()) == 0
    assert gateway.calls == []


def test_identify_returns_debts(service, store):
    response = asyncio.run(service.identify("000000001", "111"))

    assert response.status_code == 200
    assert response.raw["status"] == "exito"
    assert response.raw["tag"] == "OK_LISTED"
    assert response.raw["detalhe"][0]["valor"] == 1500.5
    assert "Maria Teste" in response.message
    assert asyncio.run(store.get("000000001")).status_tag is StatusTag.OK_LISTED


def test_identify_accepts_formatted_document(service):
    response = asyncio.run(service.identify("000000001", "1.1-1"))
    assert response.raw["status"] == "exito"


def test_identify_document_mismatch_is_not_persisted(service, store, sink, gateway):
    response = asyncio.run(service.identify("000000001", "999"))

    assert response.status_code == 200
    assert response.raw["status"] == "documento_divergente"
    assert response.raw["tag"] == "ESCALATE_DOCUMENT_MISMATCH"
    assert asyncio.run(store.get("000000001")) is None
    assert sink.events == []
    assert gateway.calls == []


def test_identify_is_idempotent_from_cache(service, gateway):
    first = asyncio.run(service.identify("000000001", "111"))
    calls_after_first = gateway.count()
    second = asyncio.run(service.identify("000000001", "111"))

    assert second.raw["detalhe"] == first.raw["detalhe"]
    assert second.raw["atualizado_em"] == first.raw["atualizado_em"]
    assert second.envelope() == first.envelope()
    assert gateway.count() == calls_after_first


def test_identify_shows_existing_agreement(service, gateway):
    gateway.agreements = [{"numeroAcordo": "AC-1"}]

    response = asyncio.run(service.identify("000000001", "111"))

    assert response.raw["tag"] == "OK_AGREEMENT_FOUND"
    assert response.raw["acordos"] == [{"numeroAcordo": "AC-1"}]


# ==============================================================================
# Gate de transbordo
# ==============================================================================

def test_escalated_user_is_gated_everywhere(service, store, gateway):
    asyncio.run(store.upsert(UserRecord(
        phone="000000001", document="111", status_tag=StatusTag.ESCALATE_AUTH, notified_at="2026-01-01 00:00:00",
    )))

    for response in (
        asyncio.run(service.identify("000000001", "111")),
        asyncio.run(service.list_options("000000001")),
        asyncio.run(service.issue("000000001", installments=3)),
        asyncio.run(service.second_copy("000000001")),
    ):
        assert response.raw["status"] == "transbordo"
        assert response.raw["tag"] == "ESCALATE_AUTH"

    assert gateway.calls == []


# ==============================================================================
# Opcoes de pagamento
# ==============================================================================

def test_sync_then_options_roundtrip(directory, store, pipeline, service, gateway):
    asyncio.run(SyncOrchestrator(pipeline, directory).sync_all(["000000001"]))
    synced = asyncio.run(store.get("000000001"))
    calls_after_sync = gateway.count()

    response = asyncio.run(service.list_options("000000001"))

    assert synced.status_tag is StatusTag.OK_OPTIONS
    assert response.raw["opcoesPagamento"] == synced.option_list
    assert gateway.count() == calls_after_sync
    assert "3x sem juros" in response.message


def test_options_cache_miss_runs_full_pipeline(service, store, gateway):
    response = asyncio.run(service.list_options("000000001"))

    assert response.raw["status"] == "exito"
    assert len(response.raw["opcoesPagamento"]) == 2
    assert gateway.count("simulate_payment_options") == 1
    assert asyncio.run(store.get("000000001")).status_tag is StatusTag.OK_OPTIONS


def test_zero_options_escalates_and_notifies_exactly_once(service, gateway, sink):
    gateway.simulation = {"opcoesPagamento": []}

    first = asyncio.run(service.list_options("000000001"))
    second = asyncio.run(service.list_options("000000001"))

    assert first.raw["status"] == "transbordo"
    assert first.raw["tag"] == "ESCALATE_NO_OPTIONS"
    assert second.raw["tag"] == "ESCALATE_NO_OPTIONS"
    assert sink.tags() == [StatusTag.ESCALATE_NO_OPTIONS]
    assert gateway.count("simulate_payment_options") == 1


def test_options_with_existing_agreement(service, gateway):
    gateway.agreements = [{"numeroAcordo": "AC-1"}]

    response = asyncio.run(service.list_options("000000001"))

    assert response.raw["status"] == "acordo_existente"


# ==============================================================================
# Cenarios completos
# ==============================================================================

def test_scenario_identify_then_issue_three_installments(service, store, gateway, sink):
    identified = asyncio.run(service.identify("000000001", "111"))
    assert identified.raw["status"] == "exito"

    response = asyncio.run(service.issue("000000001", installments=3))

    assert response.raw["status"] == "exito"
    assert response.raw["tag"] == "OK_BOLETO_ISSUED"
    assert response.raw["boleto"]["quantidadeParcela"] == 3
    assert response.raw["boleto"]["linhaDigitavel"].startswith("34191")
    assert asyncio.run(store.get("000000001")).status_tag is StatusTag.OK_BOLETO_ISSUED
    assert sink.tags() == [StatusTag.OK_BOLETO_ISSUED]


def test_scenario_no_creditor_then_options_is_gated(service, no_creditor, sink):
    first = asyncio.run(service.list_options("000000002"))
    calls = no_creditor.count()
    second = asyncio.run(service.list_options("000000002"))

    assert first.raw["tag"] == "ESCALATE_NO_CREDITOR"
    assert second.raw["status"] == "transbordo"
    assert sink.tags() == [StatusTag.ESCALATE_NO_CREDITOR]
    assert no_creditor.count() == calls


# ==============================================================================
# Emissao
# ==============================================================================

def test_issue_by_option_index(service):
    asyncio.run(service.list_options("000000001"))

    response = asyncio.run(service.issue("000000001", option_index=1))

    assert response.raw["boleto"]["quantidadeParcela"] == 1


def test_issue_invalid_option_lists_options_again(service, gateway):
    asyncio.run(service.list_options("000000001"))

    response = asyncio.run(service.issue("000000001", installments=12))

    assert response.raw["status"] == "opcao_invalida"
    assert gateway.count("issue_boleto") == 0


def test_issue_failure_escalates(service, gateway, store, sink):
    asyncio.run(service.list_options("000000001"))
    gateway.issue_response = {"sucesso": False, "mensagem": "Contrato bloqueado"}

    response = asyncio.run(service.issue("000000001", installments=3))

    assert response.raw["status"] == "transbordo"
    assert response.raw["tag"] == "ESCALATE_ISSUANCE_FAILED"
    record = asyncio.run(store.get("000000001"))
    assert record.status_tag is StatusTag.ESCALATE_ISSUANCE_FAILED
    assert "Contrato bloqueado" in record.error_detail
    assert sink.tags() == [StatusTag.ESCALATE_ISSUANCE_FAILED]


def test_issue_option_gone_escalates_no_options(service, gateway):
    asyncio.run(service.list_options("000000001"))
    gateway.simulation["opcoesPagamento"] = gateway.simulation["opcoesPagamento"][:1]

    response = asyncio.run(service.issue("000000001", installments=3))

    assert response.raw["tag"] == "ESCALATE_NO_OPTIONS"


def test_unexpected_error_returns_fallback_and_escalates(store, service, sink, monkeypatch):
    async def boom(phone, options=None):
        raise RuntimeError("banco indisponivel")

    monkeypatch.setattr(service.pipeline, "run", boom)

    response = asyncio.run(service.list_options("000000001"))

    assert response.status_code == 500
    assert response.raw["status"] == "erro"
    assert asyncio.run(store.get("000000001")).status_tag is StatusTag.ESCALATE_MANUAL
    assert sink.tags() == [StatusTag.ESCALATE_MANUAL]


# ==============================================================================
# Segunda via / transbordo manual / admin
# ==============================================================================

def test_second_copy_without_agreement(service):
    response = asyncio.run(service.second_copy("000000001"))
    assert response.raw["status"] == "sem_acordo"


def test_second_copy_for_existing_agreement(service, gateway, sink):
    gateway.agreements = [{"crm": "CRM-1", "carteira": 10, "numeroAcordo": "AC-1", "parcelaAtual": 2}]
    asyncio.run(service.identify("000000001", "111"))

    response = asyncio.run(service.second_copy("000000001"))

    assert response.raw["status"] == "exito"
    assert response.raw["boleto"]["segundaVia"] is True
    assert gateway.payloads("issue_second_copy")[0]["NumeroAcordo"] == "AC-1"
    assert sink.tags() == [StatusTag.OK_BOLETO_ISSUED]


def test_manual_escalation_then_gate(service, store, sink, gateway):
    response = asyncio.run(service.manual_escalation("000000001", StatusTag.ESCALATE_MANUAL, "cliente pediu"))

    assert response.raw["status"] == "transbordo"
    record = asyncio.run(store.get("000000001"))
    assert record.document == "111"
    assert record.error_detail == "cliente pediu"

    gated = asyncio.run(service.list_options("000000001"))
    assert gated.raw["status"] == "transbordo"
    assert sink.tags() == [StatusTag.ESCALATE_MANUAL]
    assert gateway.calls == []


def test_manual_escalation_refuses_ok_tags(service, store, sink):
    with pytest.raises(ValueError):
        asyncio.run(service.manual_escalation("000000001", StatusTag.OK_BOLETO_ISSUED))

    assert asyncio.run(store.get("000000001")) is None
    assert sink.events == []


def test_manual_escalation_unknown_phone_writes_nothing(service, store, sink):
    response = asyncio.run(service.manual_escalation("999999999", StatusTag.ESCALATE_MANUAL))

    assert response.status_code == 404
    assert asyncio.run(store.count()) == 0
    assert sink.events == []


def test_release_escalation_sends_next_request_live(service, store, gateway):
    asyncio.run(service.manual_escalation("000000001", StatusTag.ESCALATE_MANUAL))

    released = asyncio.run(service.release_escalation("000000001"))
    identified = asyncio.run(service.identify("000000001", "111"))

    assert released.raw["removido"] is True
    assert asyncio.run(store.get("000000001")).status_tag is StatusTag.OK_LISTED
    assert identified.raw["status"] == "exito"
    assert identified.raw["detalhe"][0]["valor"] == 1500.5
    assert gateway.count() > 0


def test_release_escalation_unknown_phone(service):
    assert asyncio.run(service.release_escalation("999999999")).status_code == 404


def test_clear_cache_requires_confirmation(service, store):
    asyncio.run(service.identify("000000001", "111"))

    refused = asyncio.run(service.clear_cache("sim"))
    assert refused.status_code == 400
    assert asyncio.run(store.count()) == 1

    cleared = asyncio.run(service.clear_cache("LIMPAR-CACHE"))
    assert cleared.raw["removidos"] == 1
    assert asyncio.run(store.count()) == 0


def test_envelope_shape(service):
    envelope = asyncio.run(service.identify("000000001", "111")).envelope()

    assert envelope["type"] == "markdown"
    assert envelope["markdown"].startswith("**Dívidas**\n\n")
    assert envelope["raw"]["status"] == "exito"
