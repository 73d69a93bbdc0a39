"""Minimal async JSON-RPC transport over httpx."""

import itertools
import logging
from typing import Any, Optional

import httpx

from fundrouter.chain.base import ChainUnavailableError

logger = logging.getLogger(__name__)


class JsonRpcError(ChainUnavailableError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: dict):
        self.method = method
        self.code = error.get("code")
        self.data = error.get("data")
        super().__init__(f"{method} failed: {error.get('message', error)}")


class JsonRpcClient:
    """JSON-RPC 2.0 client bound to one endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            rpc_url: HTTP(S) endpoint of the node
            timeout: Per-request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def call(self, method: str, params: list[Any]) -> Any:
        """Invoke a JSON-RPC method and return its ``result``.

        Raises:
            JsonRpcError: If the node returned an error object
            ChainUnavailableError: On transport failure or malformed reply
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._get_client().post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} transport error: {e}")
            raise ChainUnavailableError(f"{method}: {e}") from e
        except ValueError as e:
            raise ChainUnavailableError(f"{method}: invalid JSON response") from e

        if "error" in data:
            raise JsonRpcError(method, data["error"])
        if "result" not in data:
            raise ChainUnavailableError(f"{method}: response without result")
        return data["result"]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
