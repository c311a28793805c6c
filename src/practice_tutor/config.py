"""Settings loaded from the environment, with defaults for local use."""
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from practice_tutor.db import DEFAULT_DB_PATH
from practice_tutor.models import SessionConfig


class Settings(BaseSettings):
    """Application settings, read from PRACTICE_TUTOR_* variables or a .env file."""

    db_path: str = Field(default=DEFAULT_DB_PATH, description="SQLite database file")
    user_id: str = Field(default="local", description="Student whose attempts are recorded")

    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("PRACTICE_TUTOR_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="OpenAI API key, required for reasoning feedback",
    )
    feedback_model: str = Field(default="gpt-4o-mini", description="Model used for reasoning feedback")
    feedback_timeout: float = Field(default=60.0, description="Per-request timeout in seconds")

    time_per_question: int = Field(default=60, gt=0)
    questions_per_leaf: int = Field(default=4, gt=0)
    max_leaves_for_error_history: int = Field(default=10, gt=0)

    log_level: str = Field(default="WARNING", description="Logging level")

    model_config = SettingsConfigDict(
        env_prefix="PRACTICE_TUTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def session_defaults(self) -> SessionConfig:
        return SessionConfig(
            time_per_question=self.time_per_question,
            questions_per_leaf=self.questions_per_leaf,
            max_leaves_for_error_history=self.max_leaves_for_error_history,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
