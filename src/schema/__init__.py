"""Schema 模块 - 数据模型定义"""
from .story import (
    ChapterStatus,
    CharacterProfile,
    GeneratedChapter,
    StoryOptions,
    StoryOutline,
    WorldCategory,
    WorldEntry,
)
from .outline import (
    DetailedOutlineAnalysis,
    FinalDetailedOutline,
    ImprovementSuggestion,
    OptimizationHistoryEntry,
    OutlineCritique,
    ScoreItem,
)

__all__ = [
    "ChapterStatus",
    "CharacterProfile",
    "GeneratedChapter",
    "StoryOptions",
    "StoryOutline",
    "WorldCategory",
    "WorldEntry",
    "DetailedOutlineAnalysis",
    "FinalDetailedOutline",
    "ImprovementSuggestion",
    "OptimizationHistoryEntry",
    "OutlineCritique",
    "ScoreItem",
]
