"""Configuration management for taskmate."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    sqlite_db_path: str = Field(default="data/taskmate.db", description="SQLite file backing the document store")

    # Identity / sessions
    secret_key: str = Field(default="dev-secret-change-me", description="Key used to sign session tokens")
    session_max_age_seconds: int = Field(default=86400 * 30, description="Maximum age of a session token")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root level for records routed through Logfire")

    # Reminders
    notifications_enabled: bool = Field(
        default=True, description="Whether the platform grants permission to schedule reminders"
    )
    default_reminder_hour: int = Field(default=9, description="Reminder hour used when a task has no policy")
    default_reminder_minute: int = Field(default=0, description="Reminder minute used when a task has no policy")

    @property
    def is_production(self) -> bool:
        """Return True when running in production."""
        return self.environment == "production"

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Collections
    TASKS: str = "tasks"
    SHARED_TASKS: str = "shared_tasks"
    USERS: str = "users"
    GROUPS: str = "groups"
    NOTIFICATIONS: str = "notifications"
    SCHEDULED_NOTIFICATIONS: str = "scheduled_notifications"

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 500  # Upper bound for list queries (single-user data sets)

    # Shared task id markers
    SHARE_MARKER_USER: str = "user"
    SHARE_MARKER_GROUP: str = "group"

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
