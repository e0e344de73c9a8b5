import os
from typing import List
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv(override=False)  # loads .env if present

def env(key: str, default: str | None = None) -> str | None:
    return os.getenv(key, default)

def env_int(key: str, default: int) -> int:
    raw = env(key)
    if raw is None or not raw.strip():
        return default
    return int(raw)

class Settings(BaseModel):
    database_url: str = "sqlite:///./relay.db"
    poll_interval_ms: int = 2000
    device_pull_limit: int = 3      # microcontroller RAM
    web_pull_limit: int = 20
    max_text_len: int = 280
    tx_attempts: int = 5
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

def load_settings() -> Settings:
    origins = env("CORS_ORIGINS", "*") or "*"
    return Settings(
        database_url=env("RELAY_DB_URL", "sqlite:///./relay.db"),
        poll_interval_ms=env_int("POLL_INTERVAL_MS", 2000),
        device_pull_limit=env_int("DEVICE_PULL_LIMIT", 3),
        web_pull_limit=env_int("WEB_PULL_LIMIT", 20),
        max_text_len=env_int("MAX_TEXT_LEN", 280),
        tx_attempts=env_int("TX_ATTEMPTS", 5),
        log_level=(env("LOG_LEVEL", "INFO") or "INFO").upper(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )

def build_relay_base_url() -> str:
    # Prefer RELAY_URL. Else compose from scheme/host/port.
    url = env("RELAY_URL")
    if url:
        return url.rstrip("/")
    scheme = env("RELAY_SCHEME", "http")
    host = env("RELAY_HOST", "localhost")
    port = env("RELAY_PORT", "8000")
    return f"{scheme}://{host}:{port}".rstrip("/")
