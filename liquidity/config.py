"""Pool configuration.

Read once at process start, from environment variables or explicit values:

- LIQUIDITY_COIN_ADDR: Coin address watched by the pool (required)
- LIQUIDITY_TOKEN_ADDR: Token custody address (required)
- LIQUIDITY_COIN_QTY_ORIGINAL: Curve calibration coin0 (default: 25)
- LIQUIDITY_TOKEN_QTY_ORIGINAL: Curve calibration K (default: 5000)
- LIQUIDITY_INDEXER_URL: REST indexer root (default: https://rest.bitcoin.com/v2/)
- LIQUIDITY_REQUEST_TIMEOUT: Per-request timeout in seconds (default: 30)
- LIQUIDITY_LOG_LEVEL: Log level (default: INFO)
- LIQUIDITY_LOG_JSON: Render logs as JSON (default: false)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from liquidity.clients.indexer import DEFAULT_TIMEOUT_SECONDS, IndexerClient
from liquidity.constants import DEFAULT_COIN_ORIGINAL, DEFAULT_TOKEN_ORIGINAL
from liquidity.pricing.curve import CurveConstants

ENV_PREFIX = "LIQUIDITY_"

DEFAULT_INDEXER_URL = "https://rest.bitcoin.com/v2/"

# Environment variable suffix -> PoolConfig field
ENV_FIELDS = {
    "COIN_ADDR": "coin_address",
    "TOKEN_ADDR": "token_address",
    "COIN_QTY_ORIGINAL": "coin_original",
    "TOKEN_QTY_ORIGINAL": "token_original",
    "INDEXER_URL": "indexer_url",
    "REQUEST_TIMEOUT": "request_timeout",
    "LOG_LEVEL": "log_level",
    "LOG_JSON": "log_json",
}

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class PoolConfig(BaseModel):
    """Configuration of one liquidity pool."""

    coin_address: str = Field(min_length=1, description="Coin address watched by the pool.")
    token_address: str = Field(min_length=1, description="Token custody address.")
    coin_original: Decimal = Field(default=DEFAULT_COIN_ORIGINAL, gt=0)
    token_original: Decimal = Field(default=DEFAULT_TOKEN_ORIGINAL, gt=0)
    indexer_url: str = DEFAULT_INDEXER_URL
    request_timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"frozen": True}

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PoolConfig:
        """Build a config from LIQUIDITY_* environment variables.

        Raises:
            pydantic.ValidationError: If a required variable is missing or a
                value is invalid
        """
        env = os.environ if environ is None else environ
        values = {
            field_name: env[ENV_PREFIX + suffix]
            for suffix, field_name in ENV_FIELDS.items()
            if ENV_PREFIX + suffix in env
        }
        return cls.model_validate(values)

    @property
    def curve_constants(self) -> CurveConstants:
        return CurveConstants(coin_original=self.coin_original, token_original=self.token_original)

    def open_indexer(self) -> IndexerClient:
        """Create an indexer client honouring the configured timeout."""
        return IndexerClient(self.indexer_url, timeout=self.request_timeout)
