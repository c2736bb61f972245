"""
Settings Configuration
Pydantic settings for the generation service, pipeline limits, events, storage and server.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMSettings(BaseSettings):
    """Generation service (LLM) settings"""
    provider: str = Field(default="gemini", description="LLM provider: gemini, openai, anthropic")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    temperature: float = Field(default=0.9, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Max output tokens")
    timeout: float = Field(default=60.0, description="Per-call timeout in seconds")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")

    class Config:
        env_prefix = "LLM_"


class PipelineSettings(BaseSettings):
    """Idea count defaults and ceilings"""
    default_n: int = Field(default=6, ge=1, description="Ideas requested when the seed gives no count")
    default_k: int = Field(default=3, ge=1, description="Ideas packaged when the seed gives no top-K")
    max_ideas: int = Field(default=6, ge=1, description="Hard ceiling on ideas per run")

    class Config:
        env_prefix = "PIPELINE_"


class EventSettings(BaseSettings):
    """Live event stream settings"""
    keepalive_interval: float = Field(default=25.0, gt=0, description="Seconds between subscriber keep-alives")
    cleanup_grace: float = Field(default=60.0, ge=0, description="Seconds a finished run's channel stays open")
    subscriber_queue_size: int = Field(default=256, ge=1, description="Pending events buffered per subscriber")

    class Config:
        env_prefix = "EVENTS_"


class StorageSettings(BaseSettings):
    """Run artifact storage"""
    runs_dir: str = Field(default="./runs", description="Directory holding one folder per run")

    class Config:
        env_prefix = "STORAGE_"


class ServerSettings(BaseSettings):
    """HTTP server"""
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=4000, description="Bind port")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    class Config:
        env_prefix = "SERVER_"


class Settings(BaseSettings):
    """Aggregated settings"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    events: EventSettings = Field(default_factory=EventSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after exporting the given .env file (config/.env by default)."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            llm=LLMSettings(),
            pipeline=PipelineSettings(),
            events=EventSettings(),
            storage=StorageSettings(),
            server=ServerSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_event_settings() -> EventSettings:
    return get_settings().events


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_server_settings() -> ServerSettings:
    return get_settings().server
