"""
Central configuration for SupplyProv.

This module provides a single, typed configuration object that reads from
environment variables (12-factor style) using pydantic-settings.

Usage:

    from supplyprov.core.settings import get_settings

    settings = get_settings()
    if settings.store.backend == "wal":
        ...
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUPPLYPROV_STORE_")

    backend: str = Field(
        default="memory",
        description="Record store backend: 'memory' or 'wal'.",
    )
    wal_dir: str = Field(
        default=".supplyprov/wal",
        description="Directory of the record write-ahead log (wal backend).",
    )
    wal_sync: bool = Field(
        default=True,
        description="fsync every WAL append (disable only for testing).",
    )

    @field_validator("backend")
    @classmethod
    def _normalize_backend(cls, v: str) -> str:
        v = (v or "memory").lower()
        if v not in ("memory", "wal"):
            raise ValueError("SUPPLYPROV_STORE_BACKEND must be 'memory' or 'wal'")
        return v


class ComputeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUPPLYPROV_COMPUTE_")

    key: str = Field(
        default="",
        description="32-byte hex master key of the local compute provider.",
    )
    context: str = Field(
        default="supplyprov-ledger",
        description="Recipient context ciphertexts are bound to.",
    )
    max_value: int = Field(
        default=2**32 - 1,
        description="Largest secret value the provider can represent.",
    )
    approval_delay_ms: int = Field(
        default=0,
        description="Simulated latency of the decryption round trip.",
    )
    authorized_contexts: str = Field(
        default="",
        description="Comma-separated contexts allowed to decrypt (empty = any).",
    )

    @field_validator("key")
    @classmethod
    def _validate_key(cls, v: str) -> str:
        v = (v or "").strip()
        if v:
            try:
                raw = bytes.fromhex(v)
            except ValueError:
                raise ValueError("SUPPLYPROV_COMPUTE_KEY must be hex")
            if len(raw) != 32:
                raise ValueError("SUPPLYPROV_COMPUTE_KEY must encode 32 bytes")
        return v

    @property
    def authorized_context_list(self) -> List[str]:
        return [x.strip() for x in self.authorized_contexts.split(",") if x.strip()]


class CoordinatorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUPPLYPROV_COORDINATOR_")

    max_commit_attempts: int = Field(
        default=8,
        ge=1,
        description="CAS retries when a concurrent attribute edit bumps the version.",
    )
    verification_timeout_s: Optional[float] = Field(
        default=None,
        description="Default time a caller waits for the decryption round trip.",
    )
    max_worker_threads: int = Field(
        default=8,
        ge=1,
        description="Thread pool size for timed decryption round trips.",
    )


class GatewaySettings(BaseSettings):
    """
    HTTP API settings (host/port).
    """

    model_config = SettingsConfigDict(env_prefix="SUPPLYPROV_HTTP_")

    host: str = Field(default="127.0.0.1", description="HTTP bind host.")
    port: int = Field(default=8000, description="HTTP bind port.")


class RuntimeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUPPLYPROV_")

    log_level: str = Field(
        default="INFO",
        description="Log level of the supplyprov logger (DEBUG/INFO/WARNING/ERROR).",
    )


class SupplyProvSettings(BaseSettings):
    """
    Root configuration object for SupplyProv.

    Aggregates:
      - Store
      - Compute
      - Coordinator
      - Gateway
      - Runtime
    """

    store: StoreSettings = Field(default_factory=StoreSettings)
    compute: ComputeSettings = Field(default_factory=ComputeSettings)
    coordinator: CoordinatorSettings = Field(default_factory=CoordinatorSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


@lru_cache(maxsize=1)
def get_settings() -> SupplyProvSettings:
    """
    Cached accessor for SupplyProvSettings.

    Usage:
        from supplyprov.core.settings import get_settings
        settings = get_settings()
    """
    return SupplyProvSettings()
