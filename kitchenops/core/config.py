"""Configuration management for kitchenops."""

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


if TYPE_CHECKING:
    from kitchenops.domain.provisioning import ProvisioningConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store Configuration
    sqlite_db_path: str = Field(default="./data/kitchenops.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Planner Sync Configuration (optional)
    planner_sync_url: str | None = Field(
        default=None, description="Endpoint of the event planning system that receives kitchen updates"
    )
    planner_sync_token: str | None = Field(default=None, description="Bearer token sent with planner sync requests")

    # Auto-Provisioning Defaults
    auto_create_indents: bool = Field(default=True, description="Create/refresh a DRAFT indent when an event changes")
    auto_create_cooking_tasks: bool = Field(
        default=False, description="Generate one cooking task per menu line when an event changes"
    )
    default_buffer_percentage: float = Field(
        default=10.0,
        ge=0,
        le=50,
        description="Safety buffer applied to categories without a specific buffer",
    )

    def provisioning_config(self) -> "ProvisioningConfig":
        """Build the default provisioning configuration from these settings."""
        from kitchenops.domain.provisioning import ProvisioningConfig, QuantityRules

        return ProvisioningConfig(
            auto_create_indents=self.auto_create_indents,
            auto_create_cooking_tasks=self.auto_create_cooking_tasks,
            rules=QuantityRules(default_buffer_percentage=self.default_buffer_percentage),
        )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Event Validation
    MIN_GUEST_COUNT: int = 1
    MAX_GUEST_COUNT: int = 1000
    MAX_EVENT_NAME_LENGTH: int = 100

    # Indent Validation
    MAX_INDENT_ITEMS: int = 100

    # Stock
    QUANTITY_PRECISION: int = 3  # Decimal places kept on stock quantities
    EXPIRY_WARNING_DAYS: int = 7

    # Planner Sync
    SYNC_TIMEOUT_SECONDS: int = 5

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
