"""
Configuration Management Module
"""
from .settings import (
    LLMSettings,
    ScheduleSettings,
    Settings,
    SourceSettings,
    StorageSettings,
    UpdateJobSettings,
    get_llm_settings,
    get_schedule_settings,
    get_settings,
    get_source_settings,
    get_storage_settings,
    get_update_settings,
)

__all__ = [
    "LLMSettings",
    "ScheduleSettings",
    "Settings",
    "SourceSettings",
    "StorageSettings",
    "UpdateJobSettings",
    "get_llm_settings",
    "get_schedule_settings",
    "get_settings",
    "get_source_settings",
    "get_storage_settings",
    "get_update_settings",
]
