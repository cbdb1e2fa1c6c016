"""
Configuration Management for SubShare

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration (receipt verification, bill scan, reminders)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger, workflow and guard settings.

    Loads configuration from SUBSHARE_* environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SUBSHARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Persistence
    store_path: str = Field(
        default="data/subshare.json",
        description="JSON file holding the serialized service collection"
    )
    store_namespace: str = Field(
        default="subshare_v13_services",
        min_length=1,
        description="Key the service collection is stored under"
    )
    audit_log_path: str = Field(
        default="",
        description="JSON-lines audit log file (empty = in-memory only)"
    )
    seed_demo_data: bool = Field(
        default=True,
        description="Seed a demo service when the store was never written"
    )

    # Money
    default_currency: str = Field(
        default="IDR",
        min_length=3,
        max_length=3,
        description="Currency for services created without one"
    )

    # Credential reveal guard
    reveal_duration: int = Field(
        default=10,
        ge=1,
        description="Number of ticks a revealed secret stays visible"
    )
    reveal_tick_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Seconds per reveal countdown tick"
    )

    # Verification workflow
    success_display_seconds: float = Field(
        default=1.5,
        ge=0.0,
        description="How long the success state is shown before returning to idle"
    )
    verifier_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Timeout for a single external verifier call"
    )
    max_receipt_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported receipt image formats"
    )

    @field_validator('default_currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_receipt_size_bytes(self) -> int:
        """Get max receipt size in bytes."""
        return self.max_receipt_size_mb * 1024 * 1024


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

    # Note: These are loaded lazily so the ledger works without an API key

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries for sections that failed to load. Useful for startup checks.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    for name in ("gemini", "ledger"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
