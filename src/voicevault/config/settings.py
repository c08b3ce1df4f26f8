"""Application settings loaded from environment variables.

Hey future me - every group below maps to an env prefix, e.g.
``VOICEVAULT_DATABASE__URL`` or ``VOICEVAULT_PLAYBACK__SPECTRUM_INTERVAL``.
Nested groups use ``__`` as delimiter (pydantic-settings convention).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Catalog database configuration."""

    url: str = "sqlite+aiosqlite:///./voicevault.db"
    echo: bool = False


class LibrarySettings(BaseModel):
    """Library scanner configuration."""

    root_path: Path | None = None
    # Hey future me - the default pattern matches DLsite-style product codes
    # (two letters + 6-8 digits). Match is case-insensitive, stored upper-cased.
    external_code_pattern: str = r"(?:RJ|BJ|VJ)\d{6,8}"
    # Threads used for mutagen duration probing
    scan_workers: int = Field(default=4, ge=1, le=32)


class EnrichmentSettings(BaseModel):
    """External metadata lookup configuration."""

    base_url: str = "http://127.0.0.1:8766/works"
    request_delay: float = Field(default=1.0, ge=0.0)
    timeout: float = Field(default=30.0, gt=0.0)
    user_agent: str = "voicevault/0.4"


class PlaybackSettings(BaseModel):
    """Playback engine configuration."""

    # Extensions that never go to the native backend first
    fallback_extensions: list[str] = Field(
        default_factory=lambda: [".m4a", ".aac", ".mp4", ".wma", ".ape", ".wv"]
    )
    spectrum_interval: float = Field(default=0.05, gt=0.0)
    native_spectrum_bins: int = Field(default=64, ge=8, le=512)
    fallback_spectrum_bins: int = Field(default=100, ge=8, le=512)
    sleep_timer_presets: list[int] = Field(
        default_factory=lambda: [15, 30, 45, 60, 90, 120]
    )
    default_volume: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("fallback_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized

    @field_validator("sleep_timer_presets")
    @classmethod
    def _check_presets(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("sleep_timer_presets must not be empty")
        if any(minutes <= 0 for minutes in value):
            raise ValueError("sleep timer presets must be positive minutes")
        return sorted(set(value))


class ObservabilitySettings(BaseModel):
    """Logging configuration."""

    log_level: str = "INFO"
    log_json_format: bool = False


class ApiSettings(BaseModel):
    """HTTP service boundary configuration."""

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="VOICEVAULT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "voicevault"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
