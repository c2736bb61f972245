"""
Configuration Management Module
Environment-driven settings for every layer of the service.
"""
from .settings import (
    EventSettings,
    LLMSettings,
    PipelineSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    get_event_settings,
    get_llm_settings,
    get_pipeline_settings,
    get_server_settings,
    get_settings,
    get_storage_settings,
)

__all__ = [
    "EventSettings",
    "LLMSettings",
    "PipelineSettings",
    "ServerSettings",
    "Settings",
    "StorageSettings",
    "get_event_settings",
    "get_llm_settings",
    "get_pipeline_settings",
    "get_server_settings",
    "get_settings",
    "get_storage_settings",
]
