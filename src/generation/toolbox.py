"""创作工具箱：世界观深化、角色弧光、叙事工具箱、新角色档案、角色互动。"""
import json
from typing import Any, Dict, Generator, Optional

from errors import StoryAgentError
from schema.outline import DetailedOutlineAnalysis
from schema.story import CharacterProfile, StoryOptions, StoryOutline
from utils.abort import AbortSignal


class CreativeToolbox:
    def __init__(self, bridge: Any, options: StoryOptions):
        self.bridge = bridge
        self.options = options

    def _text(self, action: str, abort: Optional[AbortSignal] = None, **fields: Any) -> str:
        payload: Dict[str, Any] = dict(fields)
        payload["options"] = self.options.to_dict()
        return str(self.bridge.call(action, payload, abort).get("text") or "")

    def worldbook_suggestions(self, story_outline: StoryOutline, abort: Optional[AbortSignal] = None) -> str:
        return self._text("getWorldbookSuggestions", abort, storyOutline=story_outline.to_dict())

    def character_arc_suggestions(
        self,
        character: CharacterProfile,
        story_outline: StoryOutline,
        abort: Optional[AbortSignal] = None,
    ) -> str:
        return self._text(
            "getCharacterArcSuggestions", abort,
            character=character.to_dict(), storyOutline=story_outline.to_dict(),
        )

    def narrative_toolbox(
        self,
        detailed_outline: DetailedOutlineAnalysis,
        story_outline: StoryOutline,
        abort: Optional[AbortSignal] = None,
    ) -> str:
        return self._text(
            "getNarrativeToolboxSuggestions", abort,
            detailedOutline=detailed_outline.to_dict(), storyOutline=story_outline.to_dict(),
        )

    def new_character_profile(
        self,
        story_outline: StoryOutline,
        character_prompt: str,
        abort: Optional[AbortSignal] = None,
    ) -> CharacterProfile:
        """根据一句话概念生成完整角色档案。"""
        if not character_prompt.strip():
            raise StoryAgentError("请输入角色概念。")
        text = self._text(
            "generateNewCharacterProfile", abort,
            storyOutline=story_outline.to_dict(), characterPrompt=character_prompt,
        )
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoryAgentError(f"角色档案格式无效：{exc}") from exc
        if not isinstance(data, dict):
            raise StoryAgentError("角色档案格式无效：AI没有返回一个JSON对象。")
        return CharacterProfile.from_dict(data)

    def character_interaction(
        self,
        char1: CharacterProfile,
        char2: CharacterProfile,
        story_outline: StoryOutline,
        abort: Optional[AbortSignal] = None,
    ) -> Generator[str, None, None]:
        """流式产出两个角色之间的互动场景。"""
        payload = {
            "char1": char1.to_dict(),
            "char2": char2.to_dict(),
            "outline": story_outline.to_dict(),
            "options": self.options.to_dict(),
        }
        for chunk in self.bridge.open_stream("generateCharacterInteraction", payload, abort):
            if chunk.get("error"):
                raise StoryAgentError(chunk["error"])
            text = chunk.get("text")
            if isinstance(text, str):
                yield text
