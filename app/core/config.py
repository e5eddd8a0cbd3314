from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Trade Contract Workflow Ledger"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── NOTIFICATIONS ───────────
    # JSON list in env, e.g. ADMIN_ADDRESSES='["0xabc...", "0xdef..."]'
    admin_addresses: List[str] = ["0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"]

    # ─────────── CHAIN (read-only receipt lookups) ───────────
    chain_rpc_url: str = "http://127.0.0.1:8545"
    chain_rpc_timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
