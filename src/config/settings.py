"""
Configuration Management for Budget Ledger Reconciler

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external collaborator (ledger RPC, metadata gateway) and every
reconciliation threshold is visible in one place, and nothing is
hard-coded in the engine itself.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey


DEFAULT_PROGRAM_ID = "Hz5ZKTWQMRRcCGwMEjnqcQrLEkTp5E8qD2zZKPFxCmXf"


class LedgerSettings(BaseSettings):
    """Ledger JSON-RPC endpoint and program scope."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    rpc_url: str = Field(
        default="https://api.devnet.solana.com",
        description="JSON-RPC endpoint of the ledger"
    )
    program_id: str = Field(
        default=DEFAULT_PROGRAM_ID,
        description="Program scope under which record addresses are derived"
    )
    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="Commitment level for reads"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Per-request timeout"
    )

    @field_validator('program_id')
    @classmethod
    def validate_program_id(cls, v: str) -> str:
        """Program id must be a valid base58 32-byte identifier."""
        Pubkey.from_string(v)
        return v

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)


class MetadataSettings(BaseSettings):
    """Attribute document (off-ledger metadata) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="METADATA_",
        extra="ignore"
    )

    ipfs_gateway: str = Field(
        default="https://gateway.pinata.cloud/ipfs/",
        description="Gateway used to resolve ipfs:// URIs"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Per-request timeout for document fetches"
    )
    approved_amount_trait: str = Field(
        default="Approved Amount",
        min_length=1,
        description="trait_type carrying the canonical approved amount"
    )

    @field_validator('ipfs_gateway')
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else v + "/"


class ReconciliationSettings(BaseSettings):
    """Thresholds of the reconciliation validation policy."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILE_",
        extra="ignore"
    )

    warning_threshold_pct: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Share of the approved amount at which status becomes warning"
    )
    warning_inclusive: bool = Field(
        default=True,
        description="Whether spend exactly at the threshold counts as warning"
    )
    implausible_multiplier: int = Field(
        default=2,
        ge=1,
        description="Spend above approved * multiplier is treated as a corrupt reading"
    )
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum concurrent per-expense fetch pipelines"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def metadata(self) -> MetadataSettings:
        return MetadataSettings()

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, Optional[object]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus an
    {setting_name}_error entry for every section that failed.
    Useful for startup checks.
    """
    results: dict[str, Optional[object]] = {}

    settings = get_settings()

    for name in ("ledger", "metadata", "reconciliation", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
