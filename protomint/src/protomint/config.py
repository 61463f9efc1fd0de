"""
Configuration management using pydantic-settings.

The Settings instance is built once at startup and passed to every component.
It is frozen: nothing mutates fee constants or provider order at runtime.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from protomint.constants import (
    BASE_TX_VSIZE,
    BROADCAST_TIMEOUT,
    DEFAULT_FEE_RATE,
    MIN_NETWORK_FEE,
    SERVICE_FEE_TX_VSIZE,
    STANDARD_DUST_LIMIT,
    UTXO_FETCH_TIMEOUT,
)

UTXO_PROVIDER_NAMES = ("sandshrew", "blockstream", "mempool")
BROADCAST_PROVIDER_NAMES = ("sandshrew", "blockstream", "mempool")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, frozen=True
    )

    network: Literal["mainnet", "testnet"] = "mainnet"
    environment: Literal["production", "development"] = "production"
    # Fabricate a placeholder txid when every broadcast provider fails.
    # Only honoured in development.
    allow_mock_broadcast: bool = False

    http_host: str = "0.0.0.0"
    http_port: int = 3001
    cors_origin: str = "*"

    log_level: str = "INFO"

    sandshrew_api_url: str = "https://mainnet.sandshrew.io/v2"
    sandshrew_project_id: str = ""
    blockstream_api_url: str = "https://blockstream.info/api"
    mempool_api_url: str = "https://mempool.space/api"

    # Comma-separated, highest priority first
    utxo_providers: str = "sandshrew,blockstream,mempool"
    broadcast_providers: str = "sandshrew,blockstream,mempool"

    utxo_timeout: float = Field(default=UTXO_FETCH_TIMEOUT, gt=0)
    broadcast_timeout: float = Field(default=BROADCAST_TIMEOUT, gt=0)

    dust_amount: int = Field(default=STANDARD_DUST_LIMIT, ge=1)
    min_network_fee: int = Field(default=MIN_NETWORK_FEE, ge=0)
    base_tx_vsize: int = Field(default=BASE_TX_VSIZE, ge=1)
    service_fee_tx_vsize: int = Field(default=SERVICE_FEE_TX_VSIZE, ge=1)
    default_fee_rate: float = Field(default=DEFAULT_FEE_RATE, gt=0)

    payload_encoder: Literal["runestone", "manual"] = "runestone"

    @model_validator(mode="after")
    def check_mock_broadcast(self) -> Settings:
        """Mock broadcast must never be reachable in production."""
        if self.allow_mock_broadcast and self.environment == "production":
            raise ValueError("allow_mock_broadcast cannot be enabled in production")
        return self

    @property
    def mock_broadcast_enabled(self) -> bool:
        return self.allow_mock_broadcast and self.environment == "development"

    def get_utxo_provider_names(self) -> list[str]:
        return _parse_provider_list(self.utxo_providers, UTXO_PROVIDER_NAMES)

    def get_broadcast_provider_names(self) -> list[str]:
        return _parse_provider_list(self.broadcast_providers, BROADCAST_PROVIDER_NAMES)


def _parse_provider_list(value: str, known: tuple[str, ...]) -> list[str]:
    names: list[str] = []
    for name in value.split(","):
        name = name.strip().lower()
        if not name:
            continue
        if name not in known:
            raise ValueError(f"Unknown provider '{name}', expected one of {', '.join(known)}")
        if name not in names:
            names.append(name)
    return names


def get_settings() -> Settings:
    return Settings()
