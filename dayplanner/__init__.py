# Day Planner Mind - conversational command interpreter
"""
Exports for embedding processes.
"""

from .models import ActionType, AIResponse, ParsedEventTime, Suggestion, TimeWindow, Utterance
from .store import InMemoryMindStore

__all__ = [
    "ActionType",
    "AIResponse",
    "ParsedEventTime",
    "Suggestion",
    "TimeWindow",
    "Utterance",
    "InMemoryMindStore",
]
