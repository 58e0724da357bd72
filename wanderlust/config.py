"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Find .env file
# =============================================================================

def find_env_file() -> str:
    """Find the .env file relative to project root."""
    candidates = [
        "config/.env",
        ".env",
        Path(__file__).parent.parent / "config" / ".env",
    ]

    for candidate in candidates:
        path = Path(candidate)
        if path.exists():
            return str(path)

    return "config/.env"  # Default


ENV_FILE = find_env_file()


# =============================================================================
# Settings Classes
# =============================================================================


class SupabaseSettings(BaseSettings):
    """Hosted backend (PostgREST, Auth, Storage, Edge Functions) settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        env_prefix="SUPABASE_",
        extra="ignore",
    )

    url: str = "http://localhost:54321"
    anon_key: SecretStr = SecretStr("")
    timeout_seconds: int = 30

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class BookingSettings(BaseSettings):
    """Booking draft and checkout settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        env_prefix="BOOKING_",
        extra="ignore",
    )

    currency: str = "EGP"
    ticket_prefix: str = "TICK-"

    # "occupancy" = 1/2/3 people per single/double/triple room,
    # "uniform_double" = 2 people per room regardless of type
    capacity_policy: Literal["occupancy", "uniform_double"] = "occupancy"
    enforce_min_people_per_room: bool = True

    # "persist_first" writes the booking row before checkout,
    # "deferred" lets the checkout function create it
    submission_mode: Literal["persist_first", "deferred"] = "deferred"
    checkout_function: str = "create-checkout-session"


class ChatSettings(BaseSettings):
    """Support chat settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        env_prefix="CHAT_",
        extra="ignore",
    )

    pending_id_prefix: str = "temp-"
    send_function: str = "send-user-message"
    poll_interval_seconds: float = 2.0

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll interval must be positive")
        return v


class StorageSettings(BaseSettings):
    """Object storage buckets."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        env_prefix="STORAGE_",
        extra="ignore",
    )

    complaints_bucket: str = "complaints_attachments"


class AppSettings(BaseSettings):
    """Application-level settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"


class Settings(BaseSettings):
    """Main settings container with lazy loading."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache for sub-settings
    _supabase: SupabaseSettings | None = None
    _booking: BookingSettings | None = None
    _chat: ChatSettings | None = None
    _storage: StorageSettings | None = None
    _app: AppSettings | None = None

    @property
    def supabase(self) -> SupabaseSettings:
        if self._supabase is None:
            self._supabase = SupabaseSettings()
        return self._supabase

    @property
    def booking(self) -> BookingSettings:
        if self._booking is None:
            self._booking = BookingSettings()
        return self._booking

    @property
    def chat(self) -> ChatSettings:
        if self._chat is None:
            self._chat = ChatSettings()
        return self._chat

    @property
    def storage(self) -> StorageSettings:
        if self._storage is None:
            self._storage = StorageSettings()
        return self._storage

    @property
    def app(self) -> AppSettings:
        if self._app is None:
            self._app = AppSettings()
        return self._app

    # Convenience accessors
    @property
    def supabase_url(self) -> str:
        return self.supabase.url

    @property
    def supabase_anon_key(self) -> str:
        return self.supabase.anon_key.get_secret_value()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
