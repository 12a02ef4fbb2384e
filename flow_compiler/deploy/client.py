"""
Thin async HTTP client for the execution engine's flow API.

Operations: create, update, list and delete flows, run a flow, and read a
run with its logs. Failures are never retried here; they surface as
DeploymentError with the engine's raw response attached.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from flow_compiler.errors import DeploymentError
from shared.config import config
from shared.logger import get_logger

logger = get_logger(__name__)


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class EngineClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base_url = base_url or config.engine_base_url
        if not base_url:
            raise DeploymentError("Execution engine base URL is not configured (set ENGINE_BASE_URL)")
        token = token if token is not None else config.engine_api_token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or config.engine_request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "EngineClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raw = _body(e.response)
            logger.error(f"Engine {method} {path} failed with {e.response.status_code}: {e.response.text[:200]}")
            raise DeploymentError(
                f"Engine {method} {path} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
                raw_response=raw,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Engine {method} {path} failed: {e}")
            raise DeploymentError(f"Engine {method} {path} failed: {e}") from e
        if response.status_code == 204 or not response.content:
            return None
        return _body(response)

    async def create_flow(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        return await self._expect_object("POST", "/flows", definition)

    async def run_flow(self, flow_id: str, input: Any = None) -> Dict[str, Any]:
        return await self._expect_object("POST", f"/flows/{flow_id}/run", {"input": input})

    async def get_run(self, run_id: str) -> Dict[str, Any]:
        return await self._expect_object("GET", f"/runs/{run_id}")

    async def update_flow(self, flow_id: str, definition: Dict[str, Any]) -> Dict[str, Any]:
        return await self._expect_object("PUT", f"/flows/{flow_id}", definition)

    async def list_flows(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/flows")
        # Paged responses wrap the items in ``data``.
        if isinstance(payload, dict):
            payload = payload.get("data")
        if not isinstance(payload, list):
            raise DeploymentError("Engine GET /flows returned no flow list", raw_response=payload)
        return [item for item in payload if isinstance(item, dict)]

    async def get_run_logs(self, run_id: str) -> List[str]:
        payload = await self._request("GET", f"/runs/{run_id}/logs")
        if isinstance(payload, dict):
            payload = payload.get("logs")
        if payload is None:
            return []
        if isinstance(payload, str):
            return [line for line in payload.splitlines() if line.strip()]
        if isinstance(payload, list):
            return [str(line) for line in payload]
        raise DeploymentError(f"Engine GET /runs/{run_id}/logs returned unreadable logs", raw_response=payload)

    async def delete_flow(self, flow_id: str) -> None:
        await self._request("DELETE", f"/flows/{flow_id}")

    async def _expect_object(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        payload = await self._request(method, path, json=json)
        if not isinstance(payload, dict):
            raise DeploymentError(f"Engine {method} {path} returned a non-object response", raw_response=payload)
        return payload
