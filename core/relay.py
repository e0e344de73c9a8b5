# core/relay.py
import re
from typing import Any, Optional

import structlog

from core.credentials import CredentialStore
from core.errors import BadRequest, InternalError
from core.thread_log import ThreadLog
from data.models import Appended, PullResult, Registration, Role
from data.repo import Repo, StoreError
from utils.env import Settings

log = structlog.get_logger(__name__)

# message ids are stored as signed 64-bit integers
MAX_CURSOR = 2**63 - 1
_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def parse_cursor(raw: Any) -> int:
    """
    Lenient `after` parsing: the leading integer counts ("12abc" is 12, "2.0"
    is 2). Missing, junk or negative all mean 'from the start'. Values past
    the largest storable id are capped there and simply yield an empty page.
    """
    if raw is None:
        return 0
    m = _LEADING_INT.match(str(raw))
    if not m:
        return 0
    return min(max(int(m.group(0)), 0), MAX_CURSOR)


class Relay:
    """
    The five relay operations. Each call is stateless: credentials pick the one
    thread in scope, the caller carries its own cursor.
    """

    def __init__(self, repo: Repo, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.repo = repo
        self.credentials = CredentialStore(
            repo,
            poll_interval_ms=self.settings.poll_interval_ms,
            attempts=self.settings.tx_attempts,
        )
        self.threads = ThreadLog(
            repo,
            max_text_len=self.settings.max_text_len,
            attempts=self.settings.tx_attempts,
        )

    def register(self, device_id: Optional[str] = None, name: Optional[str] = None) -> Registration:
        try:
            return self.credentials.register(device_id, name)
        except StoreError as exc:
            log.error("relay.failed", op="register", error=str(exc))
            raise InternalError("Registration failed") from exc

    def device_send(self, token: Optional[str], text: Optional[str]) -> Appended:
        try:
            ctx = self.credentials.authenticate_by_token(token)
            return self.threads.append(ctx.thread_id, Role.DEVICE, text)
        except StoreError as exc:
            log.error("relay.failed", op="send", error=str(exc))
            raise InternalError("Send failed") from exc

    def device_pull(self, token: Optional[str], after: Any = 0) -> PullResult:
        try:
            ctx = self.credentials.authenticate_by_token(token)
            return self.threads.read_since(ctx.thread_id, parse_cursor(after), self.settings.device_pull_limit)
        except StoreError as exc:
            log.error("relay.failed", op="pull", error=str(exc))
            raise InternalError("Pull failed") from exc

    def web_send(self, thread_id: Optional[str], pair_code: Optional[str], text: Optional[str]) -> Appended:
        if not thread_id or not pair_code or not text:
            raise BadRequest("Missing fields")
        try:
            ctx = self.credentials.authenticate_by_pair(thread_id, pair_code)
            return self.threads.append(ctx.thread_id, Role.WEB, text)
        except StoreError as exc:
            log.error("relay.failed", op="web_send", error=str(exc))
            raise InternalError("Web send failed") from exc

    def web_pull(self, thread_id: Optional[str], pair_code: Optional[str], after: Any = 0) -> PullResult:
        try:
            ctx = self.credentials.authenticate_by_pair(thread_id, pair_code)
            return self.threads.read_since(ctx.thread_id, parse_cursor(after), self.settings.web_pull_limit)
        except StoreError as exc:
            log.error("relay.failed", op="web_pull", error=str(exc))
            raise InternalError("Web pull failed") from exc
