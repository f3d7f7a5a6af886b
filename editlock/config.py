import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Expected period between heartbeats from an active editing client
HEARTBEAT_INTERVAL = int(os.getenv("HEARTBEAT_INTERVAL", "60"))


def _parse_ids(raw: str) -> List[int]:
    return [int(value.strip()) for value in raw.split(",") if value.strip()]


@dataclass(frozen=True)
class Settings:
    secret_key: str = "change-me"
    base_url: str = "http://localhost:8000"
    heartbeat_interval: int = HEARTBEAT_INTERVAL
    lock_window: int = HEARTBEAT_INTERVAL * 2
    nonce_lifetime: int = 86400
    purge_interval: int = 300
    admin_ids: List[int] = field(default_factory=list)


def load_settings() -> Settings:
    """Build settings from the environment"""
    heartbeat = int(os.getenv("HEARTBEAT_INTERVAL", str(HEARTBEAT_INTERVAL)))
    return Settings(
        secret_key=os.getenv("SECRET_KEY", "change-me"),
        base_url=os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
        heartbeat_interval=heartbeat,
        lock_window=int(os.getenv("LOCK_WINDOW", str(heartbeat * 2))),
        nonce_lifetime=int(os.getenv("NONCE_LIFETIME", "86400")),
        purge_interval=int(os.getenv("PURGE_INTERVAL", "300")),
        admin_ids=_parse_ids(os.getenv("ADMIN_IDS", "")),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
