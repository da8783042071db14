"""
Mail Tracker Configuration Settings
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Which tracker to run: "applications" or "proposals"
    tracker_profile: str = Field(
        default="applications",
        alias="TRACKER_PROFILE",
        description="Tracker profile name (applications | proposals)"
    )

    # Target spreadsheet (required for processing runs)
    spreadsheet_id: str = Field(default="", alias="TRACKER_SPREADSHEET_ID")
    sheet_tab: str = Field(
        default="",
        alias="TRACKER_SHEET_TAB",
        description="Override the profile's sheet tab name"
    )

    # Batch limits
    batch_size: int = Field(default=20, alias="TRACKER_BATCH_SIZE")  # threads per run
    deadline_seconds: float = Field(default=320.0, alias="TRACKER_DEADLINE_SECONDS")
    message_pause_seconds: float = Field(default=0.25, alias="TRACKER_MESSAGE_PAUSE")

    # Stale sweep (falls back to the profile threshold when unset)
    stale_weeks: Optional[int] = Field(default=None, alias="TRACKER_STALE_WEEKS")

    # Extractor (Gemini)
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    gemini_endpoint: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash-latest:generateContent",
        alias="TRACKER_GEMINI_ENDPOINT"
    )
    extractor_timeout: float = Field(default=30.0, alias="TRACKER_EXTRACTOR_TIMEOUT")
    extractor_max_attempts: int = Field(default=2, alias="TRACKER_EXTRACTOR_MAX_ATTEMPTS")
    extractor_body_limit: int = Field(
        default=12000,
        alias="TRACKER_EXTRACTOR_BODY_LIMIT",
        description="Body characters sent to the extractor"
    )
    ai_extraction_enabled: bool = Field(
        default=True,
        alias="TRACKER_AI_EXTRACTION",
        description="Disable to run the deterministic parser only"
    )

    # Google OAuth
    google_credentials_path: Path = Field(
        default=Path("./config/credentials.json"),
        alias="TRACKER_GOOGLE_CREDENTIALS"
    )
    google_token_path: Path = Field(
        default=Path("./config/token.json"),
        alias="TRACKER_GOOGLE_TOKEN"
    )

    # Optional YAML overrides for the selected profile
    profile_overrides_path: Optional[Path] = Field(
        default=None,
        alias="TRACKER_PROFILE_OVERRIDES"
    )

    # Local state (property store)
    data_path: Path = Field(default=Path("./data"), alias="TRACKER_DATA_PATH")

    @property
    def property_store_path(self) -> Path:
        """Path to the JSON property store."""
        return self.data_path / "properties.json"


settings = Settings()
