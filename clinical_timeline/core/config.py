"""Engine configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    Every field can be overridden with a ``CLINICAL_TIMELINE_`` prefixed
    environment variable (e.g. ``CLINICAL_TIMELINE_SIMILARITY_THRESHOLD=0.8``).
    Settings are frozen once constructed; build a new instance to change them.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLINICAL_TIMELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = "Clinical Timeline Engine"
    debug: bool = False

    # Knowledge base (None = packaged fixtures)
    fixtures_dir: str | None = None

    # Negation & temporal context
    reference_window_chars: int = Field(default=100, ge=1)
    date_window_chars: int = Field(default=200, ge=1)
    negation_word_window: int = Field(default=6, ge=1)
    negation_exclusion_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    # Identity resolution
    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    merge_same_date: bool = True
    preserve_references: bool = True

    # Relationship windows
    trigger_window_hours: float = Field(default=48.0, ge=0.0)
    urgent_window_hours: float = Field(default=24.0, ge=0.0)
    leads_to_window_days: float = Field(default=14.0, ge=0.0)
    leads_to_high_confidence_days: float = Field(default=7.0, ge=0.0)
    responds_to_window_days: float = Field(default=21.0, ge=0.0)
    infer_narrative_relationships: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()


settings = get_settings()
