# client/sessions.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from client.relay import CredentialsRejected, RelayClient, clamp_text

PullFn = Callable[[int], Awaitable[Dict[str, Any]]]


class ThreadView:
    """
    Local copy of one thread. Messages are merged by msg_id (duplicates from a
    retried pull are dropped) and kept ascending. `keep` bounds memory on small
    clients: only the newest `keep` messages stay.
    """
    def __init__(self, keep: Optional[int] = None):
        self.keep = keep
        self.latest = 0
        self.messages: List[Dict[str, Any]] = []

    def apply(self, page: Dict[str, Any]) -> List[Dict[str, Any]]:
        seen = {m["msg_id"] for m in self.messages}
        fresh = [m for m in page.get("msgs") or [] if m["msg_id"] not in seen and m["msg_id"] > self.latest]
        if fresh:
            self.messages.extend(fresh)
            self.messages.sort(key=lambda m: m["msg_id"])
            if self.keep is not None and len(self.messages) > self.keep:
                self.messages = self.messages[-self.keep:]
        latest = page.get("latest")
        if isinstance(latest, int) and latest > self.latest:
            self.latest = latest
        return fresh

    def reset(self) -> None:
        self.latest = 0
        self.messages = []


async def drain(view: ThreadView, pull: PullFn, max_pages: int = 50) -> List[Dict[str, Any]]:
    """Pull pages from view.latest until the server has nothing newer."""
    out: List[Dict[str, Any]] = []
    for _ in range(max_pages):
        before = view.latest
        page = await pull(before)
        out.extend(view.apply(page))
        if not page.get("msgs") or view.latest == before:
            break
    return out


class DeviceSession:
    """The embedded side: token auth, small pull pages, short local history."""

    def __init__(self, client: RelayClient, keep: int = 3):
        self.client = client
        self.view = ThreadView(keep=keep)
        self.device_id: Optional[str] = None
        self.thread_id: Optional[str] = None
        self.token: Optional[str] = None
        self.pair_code: Optional[str] = None
        self.poll_interval_ms = 2000

    @property
    def paired(self) -> bool:
        return self.token is not None

    async def register(self, device_id: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
        reg = await self.client.register(device_id or self.device_id, name)
        if reg["thread_id"] != self.thread_id:
            self.view.reset()
        self.device_id = reg.get("device_id") or device_id
        self.thread_id = reg["thread_id"]
        self.token = reg["token"]
        self.pair_code = reg["pair_code"]
        self.poll_interval_ms = reg.get("poll_interval_ms", self.poll_interval_ms)
        return reg

    def forget(self) -> None:
        self.token = None
        self.pair_code = None

    async def say(self, text: str) -> Dict[str, Any]:
        if self.token is None:
            raise RuntimeError("device is not registered")
        try:
            return await self.client.send(self.token, clamp_text(text))
        except CredentialsRejected:
            self.forget()
            raise

    async def sync(self) -> List[Dict[str, Any]]:
        if self.token is None:
            raise RuntimeError("device is not registered")
        token = self.token
        try:
            return await drain(self.view, lambda after: self.client.pull(token, after))
        except CredentialsRejected:
            self.forget()
            raise


class WebSession:
    """The browser side: thread_id + pair_code, larger pages, full history."""

    def __init__(self, client: RelayClient, thread_id: str, pair_code: str):
        self.client = client
        self.view = ThreadView()
        self.thread_id: Optional[str] = thread_id.strip()
        self.pair_code: Optional[str] = pair_code.strip()

    @property
    def paired(self) -> bool:
        return bool(self.thread_id and self.pair_code)

    def forget(self) -> None:
        self.thread_id = None
        self.pair_code = None
        self.view.reset()

    async def say(self, text: str) -> Optional[Dict[str, Any]]:
        if not self.paired:
            raise RuntimeError("not paired")
        text = clamp_text(text.strip())
        if not text:
            return None
        try:
            return await self.client.web_send(self.thread_id, self.pair_code, text)
        except CredentialsRejected:
            self.forget()
            raise

    async def sync(self) -> List[Dict[str, Any]]:
        if not self.paired:
            raise RuntimeError("not paired")
        thread_id, pair_code = self.thread_id, self.pair_code
        try:
            return await drain(self.view, lambda after: self.client.web_pull(thread_id, pair_code, after))
        except CredentialsRejected:
            self.forget()
            raise
