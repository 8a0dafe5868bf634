"""
Async client for the /trpc endpoint.

Every request carries the Authorization header of the current session:
"Bearer <access token>" when signed in, an empty string otherwise. Failed
calls raise RpcError with the server's code and message; nothing is retried.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from autocrm.core.errors import RpcError

logger = logging.getLogger(__name__)

NETWORK_ERROR = "NETWORK_ERROR"


def access_token_of(session: Any) -> Optional[str]:
    if session is None:
        return None
    if isinstance(session, dict):
        return session.get("access_token")
    return getattr(session, "access_token", None)


def authorization_header(session: Any) -> str:
    token = access_token_of(session)
    return f"Bearer {token}" if token else ""


def _error_from(body: Any, status_code: int) -> RpcError:
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return RpcError(error.get("message") or "Request failed", code=error.get("code"), data=error.get("data"))
    return RpcError(f"Request failed with status {status_code}")


def _data_of(body: Any) -> Any:
    result = body.get("result") if isinstance(body, dict) else None
    if not isinstance(result, dict) or "data" not in result:
        raise RpcError("Malformed response from server")
    return result["data"]


class RpcClient:
    def __init__(
        self,
        base_url: str,
        session_provider: Optional[Callable[[], Any]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_provider = session_provider
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _headers(self) -> Dict[str, str]:
        session = None
        if self.session_provider is not None:
            session = self.session_provider()
            if inspect.isawaitable(session):
                session = await session
        return {"Authorization": authorization_header(session)}

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        headers = await self._headers()
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"RPC transport error on {url}: {e}")
            raise RpcError(str(e) or "Network error", code=NETWORK_ERROR)
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.is_error:
            raise _error_from(body, response.status_code)
        return body

    async def query(self, name: str, input: Any = None) -> Any:
        params = {"input": json.dumps(input)} if input is not None else None
        body = await self._send("GET", f"{self.base_url}/{name}", params=params)
        return _data_of(body)

    async def mutate(self, name: str, input: Any = None) -> Any:
        body = await self._send("POST", f"{self.base_url}/{name}", json=input)
        return _data_of(body)

    async def batch(self, calls: List[Tuple[str, Any]]) -> List[Any]:
        """
        Run (procedure, input) pairs in one request. Returns one entry per call in
        order: the call's data, or the RpcError it failed with.
        """
        payload = [
            {"id": index, "procedure": name, "input": input}
            for index, (name, input) in enumerate(calls)
        ]
        body = await self._send("POST", self.base_url, json=payload)
        if not isinstance(body, list):
            raise RpcError("Malformed response from server")
        results: List[Any] = [None] * len(calls)
        for entry in body:
            if "error" in entry:
                results[entry["id"]] = _error_from(entry, 200)
            else:
                results[entry["id"]] = _data_of(entry)
        return results

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
