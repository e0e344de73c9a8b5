from enum import Enum
from typing import List
from pydantic import BaseModel, ConfigDict
from pydantic import Field as PField
from sqlmodel import SQLModel, Field

class Role(str, Enum):
    DEVICE = "device"
    WEB = "web"

# -----------------------------
# Tables
# -----------------------------

class Device(SQLModel, table=True):
    device_id: str = Field(primary_key=True)
    thread_id: str = Field(index=True, foreign_key="thread.thread_id")
    token: str = Field(unique=True, index=True)       # bearer credential, rotated on register
    pair_code: str = Field(unique=True, index=True)   # 6 digits, rotated on register
    name: str = "Unknown Device"
    created_at: int = 0
    updated_at: int = 0

class Thread(SQLModel, table=True):
    thread_id: str = Field(primary_key=True)
    last_msg_id: int = 0     # high-water mark; messages 1..last_msg_id exist
    created_at: int = 0
    updated_at: int = 0

class Message(SQLModel, table=True):
    thread_id: str = Field(primary_key=True, foreign_key="thread.thread_id")
    msg_id: int = Field(primary_key=True)
    sender: str              # device|web
    text: str
    ts: int = 0              # ms epoch, server assigned

# -----------------------------
# Value objects passed between core and transport
# -----------------------------

class DeviceContext(BaseModel):
    device_id: str
    thread_id: str

class Registration(BaseModel):
    device_id: str
    thread_id: str
    token: str
    pair_code: str
    poll_interval_ms: int

class Appended(BaseModel):
    msg_id: int
    ts: int

class MessageOut(BaseModel):
    msg_id: int
    sender: str = PField(alias="from")
    text: str
    ts: int
    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_row(cls, m: Message) -> "MessageOut":
        return cls(msg_id=m.msg_id, sender=m.sender, text=m.text, ts=m.ts)

class PullResult(BaseModel):
    msgs: List[MessageOut] = PField(default_factory=list)
    latest: int = 0
