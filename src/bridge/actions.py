"""
动作注册表

每个动作声明：使用哪个模型选项、如何构造消息、是否流式、结果如何包装。
请求载荷保持前端约定的 camelCase 字段。
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from errors import UnknownActionError
from generation import prompts
from models import Messages
from schema.outline import DetailedOutlineAnalysis, OutlineCritique
from schema.story import CharacterProfile, GeneratedChapter, StoryOptions, StoryOutline

# 结果处理模式
RESULT_RAW = "raw"              # {key: 原文}
RESULT_SEARCH = "search"        # {text: 原文, citations: []}
RESULT_JSON = "json"            # {key: 解析后的 JSON}
RESULT_JSON_TEXT = "json_text"  # {key: JSON 文本}，仅做校验


@dataclass(frozen=True)
class ActionSpec:
    name: str
    model_key: str
    build: Callable[[Dict[str, Any], StoryOptions], Messages]
    streaming: bool = False
    result_mode: str = RESULT_RAW
    result_key: str = "text"

    @property
    def parses_json(self) -> bool:
        return self.result_mode in (RESULT_JSON, RESULT_JSON_TEXT)


def _outline(payload: Dict[str, Any], key: str) -> StoryOutline:
    return StoryOutline.from_dict(payload.get(key) or {})


def _chapters(payload: Dict[str, Any], key: str) -> List[GeneratedChapter]:
    return [GeneratedChapter.from_dict(c) for c in payload.get(key) or [] if isinstance(c, dict)]


def _analysis(payload: Dict[str, Any], key: str) -> DetailedOutlineAnalysis:
    return DetailedOutlineAnalysis.from_dict(payload.get(key) or {})


def _character(payload: Dict[str, Any], key: str) -> CharacterProfile:
    return CharacterProfile.from_dict(payload.get(key) or {})


def _previous_attempt(payload: Dict[str, Any]):
    attempt = payload.get("previousAttempt")
    if not isinstance(attempt, dict):
        return None
    return {
        "outline": DetailedOutlineAnalysis.from_dict(attempt.get("outline") or {}),
        "critique": OutlineCritique.from_dict(attempt.get("critique") or {}),
    }


def _search(payload, options):
    return prompts.build_search_messages(str(payload.get("storyCore") or ""), options)


def _chapter(payload, options):
    return prompts.build_chapter_messages(
        _outline(payload, "outline"),
        _chapters(payload, "historyChapters"),
        options,
        _analysis(payload, "detailedChapterOutline"),
    )


def _titles(payload, options):
    return prompts.build_chapter_titles_messages(
        _outline(payload, "outline"), _chapters(payload, "chapters"), options,
    )


def _detailed_outline(payload, options):
    return prompts.build_detailed_outline_messages(
        _outline(payload, "outline"),
        _chapters(payload, "chapters"),
        str(payload.get("chapterTitle") or ""),
        options,
        previous_attempt=_previous_attempt(payload),
        user_input=str(payload.get("userInput") or ""),
    )


def _critique(payload, options):
    return prompts.build_critique_messages(
        _analysis(payload, "outlineToCritique"),
        _outline(payload, "storyOutline"),
        str(payload.get("chapterTitle") or ""),
        options,
    )


def _edit(payload, options):
    return prompts.build_edit_chapter_messages(
        str(payload.get("originalText") or ""), str(payload.get("instruction") or ""), options,
    )


def _interaction(payload, options):
    return prompts.build_character_interaction_messages(
        _character(payload, "char1"), _character(payload, "char2"), _outline(payload, "outline"), options,
    )


def _new_character(payload, options):
    return prompts.build_new_character_messages(
        _outline(payload, "storyOutline"), str(payload.get("characterPrompt") or ""), options,
    )


def _worldbook(payload, options):
    return prompts.build_worldbook_suggestion_messages(_outline(payload, "storyOutline"), options)


def _character_arc(payload, options):
    return prompts.build_character_arc_messages(
        _character(payload, "character"), _outline(payload, "storyOutline"), options,
    )


def _toolbox(payload, options):
    return prompts.build_narrative_toolbox_messages(
        _analysis(payload, "detailedOutline"), _outline(payload, "storyOutline"), options,
    )


LIST_MODELS = "listModels"

ACTIONS: Dict[str, ActionSpec] = {
    spec.name: spec
    for spec in (
        ActionSpec("performSearch", "searchModel", _search, result_mode=RESULT_SEARCH),
        ActionSpec("generateChapter", "writingModel", _chapter, streaming=True),
        ActionSpec("generateChapterTitles", "planningModel", _titles, result_mode=RESULT_JSON, result_key="titles"),
        ActionSpec("generateDetailedOutline", "planningModel", _detailed_outline,
                   result_mode=RESULT_JSON, result_key="outline"),
        ActionSpec("critiqueDetailedOutline", "planningModel", _critique,
                   result_mode=RESULT_JSON, result_key="critique"),
        ActionSpec("editChapterText", "writingModel", _edit),
        ActionSpec("generateCharacterInteraction", "planningModel", _interaction, streaming=True),
        ActionSpec("generateNewCharacterProfile", "planningModel", _new_character, result_mode=RESULT_JSON_TEXT),
        ActionSpec("getWorldbookSuggestions", "planningModel", _worldbook),
        ActionSpec("getCharacterArcSuggestions", "planningModel", _character_arc),
        ActionSpec("getNarrativeToolboxSuggestions", "planningModel", _toolbox),
    )
}


def get_action(name: str) -> ActionSpec:
    spec = ACTIONS.get(name)
    if spec is None:
        raise UnknownActionError(name)
    return spec
