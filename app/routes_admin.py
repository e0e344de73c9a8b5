from fastapi import APIRouter, Depends

from app.auth import get_relay
from core.errors import InternalError
from core.relay import Relay
from data.repo import StoreError

router = APIRouter()

@router.get("/healthz")
def health(relay: Relay = Depends(get_relay)):
    try:
        counts = relay.repo.debug_counts()
    except StoreError as exc:
        raise InternalError("Store unavailable") from exc
    return {"ok": True, **counts}
