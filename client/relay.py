# client/relay.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from utils.env import build_relay_base_url


class RelayClientError(Exception):
    def __init__(self, status_code: int, error: str, detail: Optional[str] = None):
        super().__init__(f"{status_code} {error}: {detail or ''}".rstrip(": "))
        self.status_code = status_code
        self.error = error
        self.detail = detail


class CredentialsRejected(RelayClientError):
    """403: token or pair code no longer valid (rotated by a re-register). Drop them."""


def clamp_text(s: str, max_len: int = 280) -> str:
    t = s.replace("\r\n", "\n")
    return t[:max_len] if len(t) > max_len else t


class RelayClient:
    """
    Minimal client for the relay wire protocol.
    Base URL from RELAY_URL (or RELAY_SCHEME/HOST/PORT) unless given.
    """
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base = (base_url or build_relay_base_url()).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as cli:
            r = await cli.request(method, f"{self.base}{path}", json=json, params=params, headers=headers)
        if r.is_success:
            return r.json()
        try:
            body = r.json()
        except ValueError:
            body = {}
        error = body.get("error") or "HTTP_ERROR"
        detail = body.get("detail")
        if r.status_code == 403:
            raise CredentialsRejected(r.status_code, error, detail)
        raise RelayClientError(r.status_code, error, detail)

    # ===== Device =====
    async def register(self, device_id: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if device_id:
            payload["device_id"] = device_id
        if name:
            payload["name"] = name
        return await self._request("POST", "/register", json=payload)

    async def send(self, token: str, text: str) -> Dict[str, Any]:
        return await self._request("POST", "/send", json={"text": text}, token=token)

    async def pull(self, token: str, after: int = 0) -> Dict[str, Any]:
        return await self._request("GET", "/pull", params={"after": after}, token=token)

    # ===== Web =====
    async def web_send(self, thread_id: str, pair_code: str, text: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/web_send", json={"thread_id": thread_id, "pair_code": pair_code, "text": text}
        )

    async def web_pull(self, thread_id: str, pair_code: str, after: int = 0) -> Dict[str, Any]:
        return await self._request(
            "GET", "/web_pull", params={"thread_id": thread_id, "pair_code": pair_code, "after": after}
        )

    async def healthz(self) -> Dict[str, Any]:
        return await self._request("GET", "/healthz")
