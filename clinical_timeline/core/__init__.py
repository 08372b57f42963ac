"""Core engine configuration and utilities."""

from clinical_timeline.core.config import Settings, get_settings, settings
from clinical_timeline.core.errors import (
    DateParseError,
    KnowledgeBaseError,
    MalformedMentionError,
    TimelineEngineError,
    component_boundary,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Errors
    "DateParseError",
    "KnowledgeBaseError",
    "MalformedMentionError",
    "TimelineEngineError",
    "component_boundary",
]
