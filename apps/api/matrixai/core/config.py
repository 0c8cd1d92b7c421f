"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    store_backend: Literal["memory", "supabase"] = "memory"
    worker_provider: Literal["mock", "live"] = "mock"

    supabase_url: str | None = None
    supabase_service_key: str | None = None
    storage_bucket: str = "user-uploads"

    deepgram_api_url: str = "https://api.deepgram.com/v1/listen"
    deepgram_api_key: str | None = None
    dashscope_api_key: str | None = None
    dashscope_base_url: str = "https://dashscope.aliyuncs.com/api/v1"
    dashscope_video_model: str = "wanx2.1-t2v-turbo"

    poll_interval_seconds: float = 10.0
    poll_timeout_seconds: float = 300.0
    http_timeout_seconds: float = 60.0
    stale_job_grace_seconds: float = 60.0

    video_cost_coins: int = 25
    min_transcription_coins: int = 2
    max_input_url_length: int = 255
    max_prompt_length: int = 1000
    default_video_size: str = "1280*720"
    default_language: str = "en-GB"

    # Memory backend only: starting balances for local development.
    initial_balances: dict[str, int] = {}

    model_config = SettingsConfigDict(env_prefix="MATRIXAI_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
