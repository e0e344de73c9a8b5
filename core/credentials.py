# core/credentials.py
import secrets
import time
import uuid
from typing import Optional

import structlog

from core.errors import BadRequest, Forbidden, Unauthorized
from data.models import DeviceContext, Registration
from data.repo import Repo, StoreConflict

log = structlog.get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_opaque_id() -> str:
    return uuid.uuid4().hex[:8]


def new_token() -> str:
    return secrets.token_hex(16)


def new_pair_code() -> str:
    return str(100000 + secrets.randbelow(900000))


class CredentialStore:
    """
    Device records: who owns which thread, and the two secrets that unlock it.

    The bearer token is the device's credential, the 6-digit pairing code is the
    web client's. Both are replaced on every register call for the same device.
    """

    def __init__(self, repo: Repo, poll_interval_ms: int = 2000, attempts: int = 5):
        self.repo = repo
        self.poll_interval_ms = poll_interval_ms
        self.attempts = max(1, attempts)

    def register(self, device_id: Optional[str] = None, name: Optional[str] = None) -> Registration:
        """
        Create or re-register a device.

        A known device keeps its thread_id; token and pair_code are redrawn and
        the old ones stop working at commit. Each attempt draws fresh values, so
        a collision on token, pair code, thread id or generated device id is
        resolved by retrying.

        Raises:
            StoreConflict: the store kept conflicting after all attempts
        """
        generated = not device_id
        last_exc: Optional[StoreConflict] = None
        for attempt in range(1, self.attempts + 1):
            if generated:
                device_id = new_opaque_id()
            token, pair_code = new_token(), new_pair_code()
            try:
                thread_id, created = self.repo.register_device(
                    device_id=device_id,
                    name=name,
                    token=token,
                    pair_code=pair_code,
                    new_thread_id=new_opaque_id(),
                    now=_now_ms(),
                    create_only=generated,
                )
            except StoreConflict as exc:
                last_exc = exc
                log.warning("store.retry", op="register", attempt=attempt, error=str(exc))
                time.sleep(0.005 * attempt)
                continue
            log.info("device.registered", device_id=device_id, thread_id=thread_id, created=created)
            return Registration(
                device_id=device_id,
                thread_id=thread_id,
                token=token,
                pair_code=pair_code,
                poll_interval_ms=self.poll_interval_ms,
            )
        raise last_exc

    def authenticate_by_token(self, token: Optional[str]) -> DeviceContext:
        if not token:
            raise Unauthorized("Missing token")
        dev = self.repo.device_by_token(token)
        if dev is None:
            log.info("auth.rejected", method="token")
            raise Forbidden("Invalid token")
        return DeviceContext(device_id=dev.device_id, thread_id=dev.thread_id)

    def authenticate_by_pair(self, thread_id: Optional[str], pair_code: Optional[str]) -> DeviceContext:
        # same answer for unknown thread and wrong code
        if not thread_id or not pair_code:
            raise BadRequest("Missing auth")
        dev = self.repo.device_by_pair(thread_id, pair_code)
        if dev is None:
            log.info("auth.rejected", method="pair_code")
            raise Forbidden("Invalid credentials")
        return DeviceContext(device_id=dev.device_id, thread_id=dev.thread_id)
