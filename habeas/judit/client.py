from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from habeas.config import settings
from habeas.judit.errors import JuditApiError

logger = structlog.get_logger(__name__)

RETRYABLE_EXCEPTIONS = (
    httpx.RequestError,
    httpx.HTTPStatusError,
)

QUOTA_PATH = "/publications/external/judit/quota"
PUBLIC_PREFIX = "/publications/external/judit-public"


def _is_retryable_status(e: BaseException) -> bool:
    """Verifica se o status HTTP da exceção justifica uma nova tentativa."""
    if isinstance(e, httpx.HTTPStatusError):
        status_code = e.response.status_code
        # 5xx para erros de servidor, 429 para limite de taxa
        return status_code >= 500 or status_code == 429
    return True  # timeouts, conexão recusada etc.


class JuditApiClient:
    """
    Cliente HTTP assíncrono para os endpoints Judit do backend Habeas Desk.

    - Um método por endpoint; o corpo JSON é devolvido sem interpretação
      (a normalização fica em `habeas.judit.normalizer`).
    - Retry com backoff exponencial para erros de rede, 5xx e 429.
    - Falhas definitivas viram `JuditApiError`.
    - Suporta `async with`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.HABEAS_API_BASE_URL).rstrip("/")
        if not self.base_url:
            raise ValueError("HABEAS_API_BASE_URL é necessário para o JuditApiClient.")

        token = token if token is not None else settings.HABEAS_API_TOKEN
        self._auth_headers = {"Authorization": f"Bearer {token}"} if token else {}

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout or settings.HABEAS_HTTP_TIMEOUT,
            transport=transport,
        )

    @retry(
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS) & retry_if_exception(_is_retryable_status),
        wait=wait_exponential(multiplier=1, min=2, max=10),  # 2s, 4s, 8s...
        stop=stop_after_attempt(3),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "judit_client.request.retry",
            attempt=retry_state.attempt_number,
            sleep=round(retry_state.next_action.sleep, 2),
        ),
    )
    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> httpx.Response:
        headers = self._auth_headers if auth else None
        response = await self.client.request(method, path, params=params, json=json, headers=headers)
        response.raise_for_status()
        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Dict[str, Any]:
        log = logger.bind(method=method, path=path)
        log.debug("judit_client.request.start", params=params)
        try:
            response = await self._send(method, path, params=params, json=json, auth=auth)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text
            log.error("judit_client.request.error", status=status, body=body[:500])
            raise JuditApiError(_error_message(e.response), status_code=status, body=body) from e
        except httpx.RequestError as e:
            log.error("judit_client.request.network_error", error=str(e))
            raise JuditApiError(f"Falha de rede ao acessar {path}: {e}") from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            log.warning("judit_client.request.non_json_body", body=response.text[:200])
            return {}
        return data if isinstance(data, dict) else {"data": data}

    # ───── Consultas (requests) ─────

    async def create_request(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/judit/requests", json=body)

    async def list_requests(self) -> Dict[str, Any]:
        return await self._request("GET", "/judit/requests")

    async def get_request(self, request_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/judit/requests/{request_id}")

    async def refresh_request(self, request_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/judit/requests/{request_id}/refresh")

    # ───── Monitoramentos (trackings) ─────

    async def register_tracking(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/judit/trackings", json=body)

    async def list_trackings(self, force_sync: bool = False) -> Dict[str, Any]:
        params = {"forceSync": "true"} if force_sync else None
        return await self._request("GET", "/judit/trackings", params=params)

    async def pause_tracking(self, tracking_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/judit/trackings/{tracking_id}/pause")

    async def resume_tracking(self, tracking_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/judit/trackings/{tracking_id}/resume")

    async def delete_tracking(self, tracking_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/judit/trackings/{tracking_id}")

    async def tracking_history(
        self, tracking_id: str, page: int = 1, page_size: int = 20, force_sync: bool = False
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "page_size": page_size}
        if force_sync:
            params["forceSync"] = "true"
        return await self._request("GET", f"/judit/trackings/{tracking_id}/history", params=params)

    async def history_item(self, response_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/judit/history/{response_id}")

    async def history_lookup(self, search_type: str, search_key: str) -> Dict[str, Any]:
        params = {"search_type": search_type, "search_key": search_key}
        return await self._request("GET", "/judit/history/lookup", params=params)

    # ───── Cota ─────

    async def quota(self) -> Dict[str, Any]:
        return await self._request("GET", QUOTA_PATH)

    # ───── Portal do cliente (sem autenticação) ─────

    async def public_create_request(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", PUBLIC_PREFIX, json=body, auth=False)

    async def public_history_lookup(self, search_type: str, search_key: str) -> Dict[str, Any]:
        params = {"search_type": search_type, "search_key": search_key}
        return await self._request("GET", f"{PUBLIC_PREFIX}/history/lookup", params=params, auth=False)

    async def close(self):
        """Fecha a sessão do cliente httpx."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _error_message(response: httpx.Response) -> str:
    """Extrai `error`/`message` do corpo JSON de erro, quando houver."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return f"HTTP {response.status_code}"
