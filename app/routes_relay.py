from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from app.auth import bearer_token, get_relay
from core.relay import Relay
from data.models import PullResult, Registration

router = APIRouter()

class RegisterIn(BaseModel):
    device_id: Optional[str] = None
    name: Optional[str] = None

class SendIn(BaseModel):
    text: Optional[str] = None

class WebSendIn(BaseModel):
    thread_id: Optional[str] = None
    pair_code: Optional[str] = None
    text: Optional[str] = None

class SendOut(BaseModel):
    ok: bool = True
    msg_id: int
    server_ts: int

class WebSendOut(BaseModel):
    ok: bool = True
    msg_id: int
    ts: int

# Device side: bearer token

@router.post("/register", response_model=Registration)
def register(body: Optional[RegisterIn] = Body(default=None), relay: Relay = Depends(get_relay)):
    body = body or RegisterIn()
    return relay.register(body.device_id, body.name)

@router.post("/send", response_model=SendOut)
def send(
    body: Optional[SendIn] = Body(default=None),
    token: Optional[str] = Depends(bearer_token),
    relay: Relay = Depends(get_relay),
):
    res = relay.device_send(token, (body or SendIn()).text)
    return SendOut(msg_id=res.msg_id, server_ts=res.ts)

@router.get("/pull", response_model=PullResult)
def pull(
    after: Optional[str] = None,
    token: Optional[str] = Depends(bearer_token),
    relay: Relay = Depends(get_relay),
):
    return relay.device_pull(token, after)

# Web side: thread_id + pair_code

@router.post("/web_send", response_model=WebSendOut)
def web_send(body: Optional[WebSendIn] = Body(default=None), relay: Relay = Depends(get_relay)):
    body = body or WebSendIn()
    res = relay.web_send(body.thread_id, body.pair_code, body.text)
    return WebSendOut(msg_id=res.msg_id, ts=res.ts)

@router.get("/web_pull", response_model=PullResult)
def web_pull(
    thread_id: Optional[str] = None,
    pair_code: Optional[str] = None,
    after: Optional[str] = None,
    relay: Relay = Depends(get_relay),
):
    return relay.web_pull(thread_id, pair_code, after)
