"""Suggestion subsystem for canvas documents: analysis, lifecycle and scheduling."""

from .engine import EngineConfig, SuggestionEngine
from .models import (
    Anchor,
    Rect,
    RailSnapshot,
    Suggestion,
    SuggestionCandidate,
    SuggestionScope,
    WhitespaceZone,
)
from .pipeline import SuggestionAssistant
from .scheduling import SchedulerConfig, SingleFlight
from .store import SuggestionStore
from .text_cache import PageTextCache
from .whitespace import analyze_page_image, analyze_widget

__all__ = [
    "SuggestionAssistant",
    "SuggestionEngine",
    "EngineConfig",
    "SuggestionStore",
    "SchedulerConfig",
    "SingleFlight",
    "PageTextCache",
    "analyze_page_image",
    "analyze_widget",
    "Anchor",
    "Rect",
    "RailSnapshot",
    "Suggestion",
    "SuggestionCandidate",
    "SuggestionScope",
    "WhitespaceZone",
]
