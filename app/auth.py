# app/auth.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.relay import Relay

security = HTTPBearer(auto_error=False)


def get_relay(request: Request) -> Relay:
    return request.app.state.relay


def bearer_token(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    """Token from `Authorization: Bearer <token>`; None when absent or another scheme."""
    if creds is None or creds.scheme.lower() != "bearer":
        return None
    return creds.credentials
