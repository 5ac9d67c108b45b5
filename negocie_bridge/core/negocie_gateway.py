"""
Cliente da API Negocie (credor externo).

Duas bases:
- Autenticacao: POST /api/Login/v5/Authentication
- Negociacao:   busca-credores, busca-divida, busca-opcao-pagamento,
                resumo-boleto, emitir-boleto, busca-acordos,
                segunda-via-boleto

Regras:
- Sem retry aqui; politica de retry e do chamador.
- Resposta nao-2xx -> UpstreamError(status, mensagem)
- Sem resposta no timeout -> UpstreamTimeout
- Conexoes IPv4 com keep-alive (AsyncClient unico por base).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from negocie_bridge.core.errors import UpstreamError, UpstreamTimeout
from negocie_bridge.core.logging_config import mask_document

logger = logging.getLogger(__name__)

AUTH_PATH = "/api/Login/v5/Authentication"
CREDORES_PATH = "/api/v5/busca-credores"
DIVIDA_PATH = "/api/v5/busca-divida"
OPCOES_PATH = "/api/v5/busca-opcao-pagamento"
RESUMO_PATH = "/api/v5/resumo-boleto"
EMITIR_PATH = "/api/v5/emitir-boleto"
ACORDOS_PATH = "/api/v5/busca-acordos"
SEGUNDA_VIA_PATH = "/api/v5/segunda-via-boleto"


def _build_client(base_url: str, timeout: float) -> httpx.AsyncClient:
    # local_address 0.0.0.0 forca sockets IPv4
    transport = httpx.AsyncHTTPTransport(
        local_address="0.0.0.0",
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=60.0),
        verify=True,
    )
    return httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout), transport=transport)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "")[:300]
    if isinstance(payload, dict):
        for key in ("mensagem", "message", "error", "title", "detail"):
            if payload.get(key):
                return str(payload[key])
    return str(payload)[:300]


class NegocieGateway:
    """Cliente tipado das chamadas remotas usadas no fluxo de negociacao."""

    def __init__(
        self,
        auth_base_url: str,
        negocie_base_url: str,
        app_id: str = "",
        app_pass: str = "",
        timeout: float = 30.0,
        auth_client: Optional[httpx.AsyncClient] = None,
        negocie_client: Optional[httpx.AsyncClient] = None,
    ):
        self.app_id = app_id
        self.app_pass = app_pass
        self._auth = auth_client or _build_client(auth_base_url, timeout)
        self._api = negocie_client or _build_client(negocie_base_url, timeout)

    @classmethod
    def from_settings(cls, settings) -> "NegocieGateway":
        return cls(
            auth_base_url=settings.auth_base_url,
            negocie_base_url=settings.negocie_base_url,
            app_id=settings.app_id,
            app_pass=settings.app_pass,
            timeout=settings.http_timeout,
        )

    async def aclose(self) -> None:
        await self._auth.aclose()
        await self._api.aclose()

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            response = await client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"⏱️ Timeout em {method} {path}")
            raise UpstreamTimeout(f"Timeout em {path}", cause=e) from e
        except httpx.HTTPError as e:
            logger.warning(f"Falha de transporte em {method} {path}: {e}")
            raise UpstreamError(0, str(e)) from e

        if response.status_code < 200 or response.status_code >= 300:
            message = _error_message(response)
            logger.warning(f"❌ {method} {path} -> HTTP {response.status_code}: {message}")
            raise UpstreamError(response.status_code, message)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(response.status_code, "Resposta nao e JSON") from e

    # ==========================================================================
    # Chamadas remotas
    # ==========================================================================

    async def authenticate(self, document: str) -> str:
        data = await self._request(
            self._auth,
            "POST",
            AUTH_PATH,
            json={"AppId": self.app_id, "AppPass": self.app_pass, "Usuario": document},
        )
        token = data.get("token") or data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise UpstreamError(200, "Autenticacao sem token na resposta")
        logger.debug(f"Token obtido para {mask_document(document)}")
        return token

    async def list_creditors(self, token: str) -> Dict[str, Any]:
        data = await self._request(self._api, "GET", CREDORES_PATH, token=token)
        return data if isinstance(data, dict) else {"credores": data or []}

    async def list_debts(self, token: str, creditor: Dict[str, Any]) -> List[Dict[str, Any]]:
        body = {"financeira": creditor.get("financeira"), "crms": creditor.get("crms")}
        data = await self._request(self._api, "POST", DIVIDA_PATH, token=token, json=body)
        if isinstance(data, dict):
            return data.get("dividas") or []
        return data or []

    async def simulate_payment_options(
        self,
        token: str,
        crm: Any,
        carteira: Any,
        contracts: List[str],
        due_date: Optional[str] = None,
        down_payment: float = 0,
        installments: int = 0,
        installment_value: float = 0,
    ) -> Dict[str, Any]:
        body = {
            "Crm": crm,
            "Carteira": carteira,
            "Contratos": contracts,
            "DataVencimento": due_date,
            "ValorEntrada": down_payment,
            "QuantidadeParcela": installments,
            "ValorParcela": installment_value,
        }
        data = await self._request(self._api, "POST", OPCOES_PATH, token=token, json=body)
        return data if isinstance(data, dict) else {"opcoesPagamento": data or []}

    async def resolve_summary(
        self, token: str, crm: Any, carteira: Any, contract: str, identifier: str
    ) -> str:
        body = {"Crm": crm, "Carteira": carteira, "Contrato": contract, "Identificador": identifier}
        data = await self._request(self._api, "POST", RESUMO_PATH, token=token, json=body)
        fresh = data.get("identificador") if isinstance(data, dict) else None
        if not fresh:
            raise UpstreamError(200, "Resumo sem identificador")
        return str(fresh)

    async def issue_boleto(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request(self._api, "POST", EMITIR_PATH, token=token, json=payload)
        return data if isinstance(data, dict) else {}

    async def list_agreements(self, token: str, creditor: Dict[str, Any]) -> List[Dict[str, Any]]:
        body = {"financeira": creditor.get("financeira"), "crms": creditor.get("crms")}
        data = await self._request(self._api, "POST", ACORDOS_PATH, token=token, json=body)
        if isinstance(data, dict):
            return data.get("acordos") or []
        return data or []

    async def issue_second_copy(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request(self._api, "POST", SEGUNDA_VIA_PATH, token=token, json=payload)
        return data if isinstance(data, dict) else {}
