"""
Runtime configuration, read from TALLY_* environment variables (and .env).
"""
import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from models import PatternPreference

ENV_PREFIX = "TALLY_"

Autonomy = Literal["auto", "ask", "off"]


class Settings(BaseModel):
    # None keeps database.DATABASE_PATH
    database_path: Optional[str] = None

    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    suggestion_threshold: float = Field(default=0.2, ge=0.0, le=1.0)

    postpone_threshold: int = Field(default=3, gt=0)
    deadline_threshold_days: int = Field(default=2, ge=0)
    postpone_autonomy: Autonomy = "ask"
    deadline_autonomy: Autonomy = "ask"
    auto_client_autonomy: Autonomy = "off"

    max_suggestions_per_day: int = Field(default=3, gt=0)
    max_suggestions_per_week: int = Field(default=10, gt=0)

    detection_interval_seconds: float = Field(default=300, gt=0)
    debounce_seconds: float = Field(default=2, ge=0)
    scheduler_enabled: bool = True

    expert_mode: bool = False
    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: list[str] = ["http://localhost:5173"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    def default_preferences(self) -> list[PatternPreference]:
        return [
            PatternPreference(pattern_type="postpone", autonomy=self.postpone_autonomy,
                              threshold=self.postpone_threshold),
            PatternPreference(pattern_type="deadlineWarning", autonomy=self.deadline_autonomy,
                              threshold=self.deadline_threshold_days),
            PatternPreference(pattern_type="autoClient", autonomy=self.auto_client_autonomy),
        ]


def load_settings(env: dict = None) -> Settings:
    """Build Settings from the environment. Invalid values raise pydantic.ValidationError."""
    if env is None:
        load_dotenv()
        env = os.environ
    values = {}
    for name in Settings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in env:
            values[name] = env[key]
    return Settings(**values)
