"""
AI chat modes (planner, generator, healer) for test authoring.
"""

from .chatmodes import (
    ChatMessage,
    ChatMode,
    ChatModeAgent,
    ChatModeError,
    ChatModeManager,
    GeneratorAgent,
    HealerAgent,
    HealingSuggestion,
    PlannerAgent,
    TestCode,
    TestPlan,
)

__all__ = [
    "ChatMessage",
    "ChatMode",
    "ChatModeAgent",
    "ChatModeError",
    "ChatModeManager",
    "GeneratorAgent",
    "HealerAgent",
    "HealingSuggestion",
    "PlannerAgent",
    "TestCode",
    "TestPlan",
]
