"""Configuration loaded from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _get_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{keys[0]} must be a number, got {v!r}")


@dataclass(frozen=True)
class Settings:
    api_url: str
    email: Optional[str]
    password: Optional[str]
    token: Optional[str]
    session_file: str
    storage_file: str
    timeout: float

    @property
    def credentials(self) -> Optional[tuple[str, str]]:
        if self.email and self.password:
            return (self.email, self.password)
        return None

    @classmethod
    def from_env(cls) -> "Settings":
        home = Path.home()
        return cls(
            api_url=_get_env("STOREFRONT_API_URL", default="http://localhost:7000") or "",
            email=_get_env("STOREFRONT_EMAIL"),
            password=_get_env("STOREFRONT_PASSWORD"),
            token=_get_env("STOREFRONT_TOKEN"),
            session_file=_get_env(
                "STOREFRONT_SESSION_FILE", default=str(home / ".storefront_session.json")
            ) or "",
            storage_file=_get_env(
                "STOREFRONT_STORAGE_FILE", default=str(home / ".storefront_storage.json")
            ) or "",
            timeout=_get_float("STOREFRONT_TIMEOUT", default=30.0),
        )
