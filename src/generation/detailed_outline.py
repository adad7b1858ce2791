"""
章节细纲

OutlineHistory 按章节标题保存信标包裹的最终细纲字符串；
DetailedOutlineGenerator 负责单次 生成 / 评估 调用。
"""
import logging
from typing import Any, Dict, List, Optional

from errors import JSONPayloadError, MissingConfigurationError, StoryAgentError
from schema.outline import DetailedOutlineAnalysis, FinalDetailedOutline, OptimizationHistoryEntry, OutlineCritique
from schema.story import GeneratedChapter, StoryOptions, StoryOutline
from utils.abort import AbortSignal

from .extract import DETAILED_OUTLINE_END, DETAILED_OUTLINE_START, extract_marked_json, wrap_marked_json
from .outline import PLANNING_MODEL_MISSING

logger = logging.getLogger(__name__)


class OutlineHistory:
    """章节标题 -> 最终细纲（信标包裹的 JSON 字符串）。"""

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, str] = dict(entries or {})

    def __contains__(self, title: str) -> bool:
        return title in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def titles(self) -> List[str]:
        return list(self._entries)

    def raw(self, title: str) -> Optional[str]:
        return self._entries.get(title)

    def get(self, title: str) -> Optional[FinalDetailedOutline]:
        """解析某章的最终细纲；不存在返回 None，数据损坏直接抛错。"""
        text = self._entries.get(title)
        if text is None:
            return None
        step = f"细纲《{title}》"
        data = extract_marked_json(text, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, step)
        if not isinstance(data, dict):
            raise JSONPayloadError(step, text, "细纲数据不是一个JSON对象")
        return FinalDetailedOutline.from_dict(data)

    def latest_version(self, title: str) -> int:
        final = self.get(title)
        return final.final_version if final else 0

    def store(self, title: str, final: FinalDetailedOutline) -> str:
        text = wrap_marked_json(final.to_dict(), DETAILED_OUTLINE_START, DETAILED_OUTLINE_END)
        self._entries[title] = text
        return text

    def discard(self, title: str) -> None:
        self._entries.pop(title, None)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OutlineHistory':
        data = data if isinstance(data, dict) else {}
        return cls({str(k): str(v) for k, v in data.items() if isinstance(v, str)})


class DetailedOutlineGenerator:
    """细纲 创作 / 评估 两个动作的封装。"""

    def __init__(self, bridge: Any, options: StoryOptions):
        self.bridge = bridge
        self.options = options

    def _require_planning_model(self) -> None:
        if not self.options.planning_model:
            raise MissingConfigurationError(PLANNING_MODEL_MISSING)

    def generate(
        self,
        story_outline: StoryOutline,
        chapters: List[GeneratedChapter],
        chapter_title: str,
        previous: Optional[OptimizationHistoryEntry] = None,
        user_input: str = "",
        abort: Optional[AbortSignal] = None,
    ) -> DetailedOutlineAnalysis:
        self._require_planning_model()
        previous_attempt = None
        if previous is not None:
            previous_attempt = {
                "outline": previous.outline.to_dict(),
                "critique": previous.critique.to_dict(),
            }
        response = self.bridge.call(
            "generateDetailedOutline",
            {
                "outline": story_outline.to_dict(),
                "chapters": [c.to_dict() for c in chapters],
                "chapterTitle": chapter_title,
                "previousAttempt": previous_attempt,
                "userInput": user_input,
                "options": self.options.to_dict(),
            },
            abort,
        )
        outline = response.get("outline")
        if not isinstance(outline, dict):
            raise StoryAgentError("细纲生成失败：AI返回的细纲不是一个JSON对象。")
        return DetailedOutlineAnalysis.from_dict(outline)

    def critique(
        self,
        analysis: DetailedOutlineAnalysis,
        story_outline: StoryOutline,
        chapter_title: str,
        abort: Optional[AbortSignal] = None,
    ) -> OutlineCritique:
        self._require_planning_model()
        response = self.bridge.call(
            "critiqueDetailedOutline",
            {
                "outlineToCritique": analysis.to_dict(),
                "storyOutline": story_outline.to_dict(),
                "chapterTitle": chapter_title,
                "options": self.options.to_dict(),
            },
            abort,
        )
        critique = response.get("critique")
        if not isinstance(critique, dict):
            raise StoryAgentError("细纲评估失败：AI返回的评估不是一个JSON对象。")
        return OutlineCritique.from_dict(critique)
