"""Interactive layer helpers."""

from .session import GameState, StorySession
from .workflow import DetailedOutlineWorkflow, OutlineCycleState

__all__ = [
    "DetailedOutlineWorkflow",
    "GameState",
    "OutlineCycleState",
    "StorySession",
]
