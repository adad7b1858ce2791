"""
创作规划

研究与规划：故事核心 -> 结构化创作简报（总纲、角色、世界书），
以及按篇幅上限生成章节标题。
"""
import logging
from typing import Any, Dict, List, Optional

from errors import MissingConfigurationError, OutlineValidationError, StoryAgentError
from schema.story import GeneratedChapter, StoryOptions, StoryOutline
from utils.abort import AbortSignal

from .extract import parse_loose_json

logger = logging.getLogger(__name__)

PLANNING_STEP = "研究与规划"
MAX_CHAPTERS_REACHED = "已达到当前篇幅设定的最大章节数。请在设置中调整篇幅，或直接开始创作。"
PLANNING_MODEL_MISSING = "未配置规划模型。请在“设置”中选择一个模型（建议使用 Flash 模型以获得更快的速度）。"


def parse_story_outline(text: str) -> StoryOutline:
    """
    解析并校验研究与规划步骤的输出

    宽松截取最外层 JSON；剧情大纲、角色、世界书任一缺失都视为失败。
    """
    data = parse_loose_json(text, PLANNING_STEP)
    if not isinstance(data, dict):
        raise OutlineValidationError("JSON验证失败：AI生成的内容不是一个JSON对象。")

    outline = StoryOutline.from_dict(data)
    missing = outline.missing_sections()
    if missing:
        logger.error("outline validation failed, missing=%s", missing)
        raise OutlineValidationError("JSON验证失败：AI生成的JSON中缺少必要的结构（剧情大纲、角色、世界书）。")
    return outline


def refine_core(story_core: str, instruction: str) -> str:
    """把优化指令追加到故事核心之后，作为重新规划的输入。"""
    return f"{story_core}\n\n---\n**优化指令:**\n{instruction}"


class OutlineGenerator:
    """创作简报与章节标题生成器。"""

    def __init__(self, bridge: Any, options: StoryOptions):
        self.bridge = bridge
        self.options = options

    def _payload(self, **fields: Any) -> Dict[str, Any]:
        payload = dict(fields)
        payload["options"] = self.options.to_dict()
        return payload

    def plan_story(self, story_core: str, abort: Optional[AbortSignal] = None) -> StoryOutline:
        if not story_core.strip():
            raise StoryAgentError("请输入故事核心。")
        response = self.bridge.call("performSearch", self._payload(storyCore=story_core), abort)
        text = response.get("text") or ""
        if not text.strip():
            raise StoryAgentError("AI未能生成创作简报。请重试。")
        return parse_story_outline(text)

    def remaining_title_slots(self, existing_titles: List[str]) -> int:
        return max(0, self.options.max_chapters - len(existing_titles))

    def generate_chapter_titles(
        self,
        outline: StoryOutline,
        chapters: List[GeneratedChapter],
        existing_titles: List[str],
        abort: Optional[AbortSignal] = None,
    ) -> List[str]:
        """生成下一批章节标题，超出篇幅上限的部分直接截掉。"""
        if not self.options.planning_model:
            raise MissingConfigurationError(PLANNING_MODEL_MISSING)
        slots = self.remaining_title_slots(existing_titles)
        if slots <= 0:
            raise StoryAgentError(MAX_CHAPTERS_REACHED)

        response = self.bridge.call(
            "generateChapterTitles",
            self._payload(
                outline=outline.to_dict(),
                chapters=[c.to_dict() for c in chapters],
            ),
            abort,
        )
        titles = response.get("titles")
        if not isinstance(titles, list):
            raise StoryAgentError("章节标题格式无效：AI没有返回一个标题数组。")

        titles = [str(t).strip() for t in titles if str(t).strip()]
        if len(titles) > slots:
            logger.warning("model returned %d titles, only %d slots left; truncated", len(titles), slots)
        return titles[:slots]
