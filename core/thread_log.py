# core/thread_log.py
import time
from typing import Optional

import structlog

from core.errors import BadRequest, ThreadNotFound
from data.models import Appended, MessageOut, PullResult, Role
from data.repo import Repo, StoreConflict

log = structlog.get_logger(__name__)


class ThreadLog:
    """
    Append-only message log per thread. msg_id is the only ordering key:
    ids are handed out as last_msg_id + 1 inside the append transaction.
    """

    def __init__(self, repo: Repo, max_text_len: int = 280, attempts: int = 5):
        self.repo = repo
        self.max_text_len = max_text_len
        self.attempts = max(1, attempts)

    def validate_text(self, text: Optional[str]) -> str:
        if not isinstance(text, str) or not (1 <= len(text) <= self.max_text_len):
            raise BadRequest(f"Text invalid (1-{self.max_text_len} chars)")
        return text

    def append(self, thread_id: str, sender: Role, text: Optional[str]) -> Appended:
        text = self.validate_text(text)
        last_exc: Optional[StoreConflict] = None
        for attempt in range(1, self.attempts + 1):
            ts = int(time.time() * 1000)
            try:
                msg_id = self.repo.append_message(thread_id, Role(sender).value, text, ts)
            except KeyError:
                raise ThreadNotFound("Thread not found") from None
            except StoreConflict as exc:
                last_exc = exc
                log.warning("store.retry", op="append", thread_id=thread_id, attempt=attempt, error=str(exc))
                time.sleep(0.005 * attempt)
                continue
            log.info("message.appended", thread_id=thread_id, msg_id=msg_id, sender=Role(sender).value)
            return Appended(msg_id=msg_id, ts=ts)
        raise last_exc

    def read_since(self, thread_id: str, after: int, limit: int) -> PullResult:
        rows = self.repo.messages_after(thread_id, after, limit)
        msgs = [MessageOut.from_row(m) for m in rows]
        latest = msgs[-1].msg_id if msgs else after
        return PullResult(msgs=msgs, latest=latest)
