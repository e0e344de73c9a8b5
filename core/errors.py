# core/errors.py
from typing import Any, Dict, Optional


class RelayError(Exception):
    """Terminal failure of one relay request. Rendered as {ok:false, error, detail}."""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.code)
        self.detail = detail

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": False, "error": self.code}
        if self.detail:
            body["detail"] = self.detail
        return body


class BadRequest(RelayError):
    status_code = 400
    code = "BAD_REQUEST"


class Unauthorized(RelayError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(RelayError):
    status_code = 403
    code = "FORBIDDEN"


class InternalError(RelayError):
    status_code = 500
    code = "INTERNAL_ERROR"


class ThreadNotFound(InternalError):
    # threads are created at registration; a missing one means broken state
    pass
