"""
Settings Configuration
Pydantic-based configuration, read from the environment and an optional .env file
"""
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class UpdateJobSettings(BaseSettings):
    """Batch update orchestrator tuning"""
    batch_size: int = Field(default=20, ge=1, description="Countries per batch")
    skip_window_hours: float = Field(default=24.0, ge=0, description="Skip countries updated within this many hours")
    delay_between_llm_calls_sec: float = Field(default=60.0, ge=0, description="Pause between model calls")
    delay_between_batches_sec: float = Field(default=120.0, ge=0, description="Pause between batches")
    error_threshold: int = Field(default=5, ge=1, description="First-pass failures that trigger retry rounds")
    max_retries: int = Field(default=3, ge=1, description="Highest attempt number per country")
    retry_delay_sec: float = Field(default=30 * 60.0, ge=0, description="Cooldown before each retry round")
    save_every: int = Field(default=5, ge=1, description="Checkpoint job counters every N attempts")
    pacing_jitter_sec: float = Field(default=0.0, ge=0, description="Random extra pause added to each delay")

    class Config:
        env_prefix = "UPDATE_"


class ScheduleSettings(BaseSettings):
    """Automatic trigger configuration (AIRAC-aligned cycle or simple interval)"""
    enabled: bool = Field(default=False, description="Start the trigger with the web app")
    first_run: datetime = Field(
        default=datetime(2026, 1, 23, 2, 0, tzinfo=timezone.utc),
        description="Anchor of the first cycle",
    )
    cycle_days: int = Field(default=28, ge=1, description="Cycle length in days")
    check_hour: int = Field(default=2, ge=0, le=23, description="Wall-clock hour of day-interval runs")
    tolerance_minutes: int = Field(default=60, ge=1, description="How close to a boundary counts as due")
    interval: Optional[str] = Field(default=None, description="Simple mode: '<N>d', '<N>h' or '<N>m'")
    timezone: str = Field(default="UTC", description="Timezone of interval-mode runs")

    class Config:
        env_prefix = "SCHEDULE_"


class LLMSettings(BaseSettings):
    """Summary generator model configuration"""
    provider: str = Field(default="gemini", description="LLM provider (gemini)")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    top_p: float = Field(default=0.8)
    top_k: int = Field(default=30)
    max_tokens: int = Field(default=16384, description="Max output tokens")
    timeout_sec: float = Field(default=120.0, description="Per-call timeout")
    grounding: bool = Field(default=True, description="Enable Google Search grounding")

    class Config:
        env_prefix = "LLM_"


class StorageSettings(BaseSettings):
    """Storage configuration"""
    backend: str = Field(default="json", description="json or memory")
    data_dir: str = Field(default="./data", description="Directory of JSON snapshots")

    class Config:
        env_prefix = "STORAGE_"


class SourceSettings(BaseSettings):
    """Regulatory source fetching"""
    request_timeout: float = Field(default=60.0, description="HTTP timeout (seconds)")
    max_retries: int = Field(default=3, ge=1, description="HTTP attempts per fetch")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; MowBriefs/1.0)",
        description="User-Agent header",
    )

    class Config:
        env_prefix = "SOURCE_"


class Settings(BaseSettings):
    """Root settings aggregating every section"""

    update: UpdateJobSettings = Field(default_factory=UpdateJobSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying the given .env file"""
        if env_path is None:
            # config/.env by default
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            update=UpdateJobSettings(),
            schedule=ScheduleSettings(),
            llm=LLMSettings(),
            storage=StorageSettings(),
            source=SourceSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_update_settings() -> UpdateJobSettings:
    return get_settings().update


def get_schedule_settings() -> ScheduleSettings:
    return get_settings().schedule


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_source_settings() -> SourceSettings:
    return get_settings().source
