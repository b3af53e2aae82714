"""
Configuration Management for FinFree

Settings groups are pydantic-settings classes, one env prefix per integration.

DESIGN DECISION: Process-level configuration lives here. The user's own
configuration document (budgets, categories, balances) is data, not settings,
and is handled by finfree.models.document.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet transactions are synced to"
    )

    # One worksheet per record kind, plus planning data and the audit trail
    expenses_sheet_name: str = Field(default="Expenses")
    income_sheet_name: str = Field(default="Income")
    transfers_sheet_name: str = Field(default="Transfers")
    budgets_sheet_name: str = Field(default="Budgets")
    categories_sheet_name: str = Field(default="Categories")
    config_sheet_name: str = Field(default="Config")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Sync may be configured before the key file is in place; only warn."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before syncing."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini receipt extraction configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    # The key normally comes from the user's document; the env var is a fallback
    api_key: Optional[str] = Field(
        default=None,
        description="Fallback Gemini key when the document carries none"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Multimodal model used for receipt extraction"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Upper bound on extraction response length"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for extraction"
    )


class AppSettings(BaseSettings):
    """Ledger-wide settings, read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Local persistence
    data_dir: str = Field(
        default="~/.finfree",
        description="Directory holding the local document and transactions"
    )

    # Receipt limits
    max_receipt_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt image size in MB"
    )
    supported_image_types: str = Field(
        default="image/jpeg,image/png,image/webp,image/heic",
        description="Comma-separated list of accepted receipt MIME types"
    )
    min_extraction_confidence: str = Field(
        default="low",
        pattern="^(high|medium|low)$",
        description="Lowest extraction confidence still offered as a draft"
    )

    # Ledger
    legacy_bank_account_id: str = Field(
        default="bank",
        min_length=1,
        description="Account id that legacy 'bank' balances and card/bank payments map to"
    )
    currency_symbol: str = Field(
        default="¥",
        description="Display symbol for the single implicit currency"
    )

    @property
    def supported_types_list(self) -> list[str]:
        """Get supported MIME types as a list."""
        return [t.strip().lower() for t in self.supported_image_types.split(",")]

    @property
    def max_receipt_size_bytes(self) -> int:
        """Get max receipt size in bytes."""
        return self.max_receipt_size_mb * 1024 * 1024

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()


class Settings(BaseSettings):
    """Entry point to every settings group."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings load lazily so a partial configuration still works

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process; tests call get_settings.cache_clear()."""
    return Settings()


def check_integrations(gemini_key: str = "") -> dict[str, Any]:
    """
    Report which optional integrations can be used right now.

    Local ledger operations never depend on this. Sync needs the Google
    Sheets settings; receipt scanning needs a Gemini key, from the user's
    document or the environment.

    Returns:
        {"google_sheets": bool, "gemini": bool, "app": bool}, plus an
        "<name>_error" message for each group that failed to load.
    """
    settings = get_settings()
    status: dict[str, Any] = {}

    try:
        settings.google_sheets
        status["google_sheets"] = True
    except ValidationError as e:
        status["google_sheets"] = False
        status["google_sheets_error"] = f"{e.error_count()} missing or invalid values"

    try:
        status["gemini"] = bool(gemini_key or settings.gemini.api_key)
    except ValidationError as e:
        status["gemini"] = False
        status["gemini_error"] = f"{e.error_count()} missing or invalid values"

    try:
        settings.app
        status["app"] = True
    except ValidationError as e:
        status["app"] = False
        status["app_error"] = f"{e.error_count()} missing or invalid values"

    return status
