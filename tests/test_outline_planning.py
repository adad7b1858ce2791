import json
import os
import sys
from typing import Any, Dict, List

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from errors import MissingConfigurationError, OutlineValidationError, StoryAgentError
from generation.outline import (
    MAX_CHAPTERS_REACHED,
    OutlineGenerator,
    parse_story_outline,
    refine_core,
)
from schema.story import StoryOptions, StoryOutline

CYBER_DETECTIVE = {
    "title": "霓虹下的遗忘",
    "genreAnalysis": "科幻 (赛博朋克)，悬疑推理",
    "worldConcept": "义体与记忆交易泛滥的巨型都市",
    "plotSynopsis": "失去记忆的侦探在追查连环失踪案时，发现自己就是案件的关键证人。",
    "characters": [
        {
            "role": "主角",
            "name": "林默",
            "coreConcept": "失忆的赛博侦探",
            "immediateGoal": "找回被删除的记忆",
            "longTermAmbition": "揭开记忆公司的阴谋",
            "hiddenBurden": "曾亲手删除自己的记忆",
            "storyFunction": "推动主线",
            "catchphrase": "数据不会说谎",
        }
    ],
    "worldCategories": [
        {"name": "势力", "entries": [{"key": "忆象公司", "value": "垄断记忆交易"}]}
    ],
    "writingMethodology": {"pacing": "快"},
}


class MockBridge:
    def __init__(self, responses: Dict[str, Any]):
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    def call(self, action, payload, abort=None):
        self.calls.append({"action": action, "payload": payload})
        return self.responses[action]


def test_parse_story_outline_accepts_chatter_around_json():
    text = "这是为你准备的创作简报：\n" + json.dumps(CYBER_DETECTIVE, ensure_ascii=False) + "\n祝创作顺利！"
    outline = parse_story_outline(text)

    assert outline.title == "霓虹下的遗忘"
    assert "赛博朋克" in outline.genre_analysis
    assert outline.characters[0].name == "林默"
    assert outline.characters[0].extra == {"catchphrase": "数据不会说谎"}
    assert outline.world_categories[0].entries[0].key == "忆象公司"


@pytest.mark.parametrize("missing", ["plotSynopsis", "characters", "worldCategories"])
def test_parse_story_outline_rejects_missing_sections(missing):
    data = dict(CYBER_DETECTIVE)
    data.pop(missing)
    with pytest.raises(OutlineValidationError) as exc_info:
        parse_story_outline(json.dumps(data, ensure_ascii=False))
    assert "剧情大纲、角色、世界书" in str(exc_info.value)


def test_parse_story_outline_rejects_non_object():
    with pytest.raises(OutlineValidationError):
        parse_story_outline('["只是一个数组"]')


def test_refine_core_appends_instruction():
    assert refine_core("赛博侦探", "更黑暗一些") == "赛博侦探\n\n---\n**优化指令:**\n更黑暗一些"


def test_plan_story_uses_search_action():
    bridge = MockBridge({"performSearch": {"text": json.dumps(CYBER_DETECTIVE), "citations": []}})
    generator = OutlineGenerator(bridge, StoryOptions(search_model="search-m"))

    outline = generator.plan_story("一个失去记忆的赛博朋克侦探")
    assert outline.title == "霓虹下的遗忘"
    assert bridge.calls[0]["payload"]["storyCore"] == "一个失去记忆的赛博朋克侦探"
    assert bridge.calls[0]["payload"]["options"]["searchModel"] == "search-m"


def test_plan_story_empty_response_fails():
    generator = OutlineGenerator(MockBridge({"performSearch": {"text": "  "}}), StoryOptions())
    with pytest.raises(StoryAgentError) as exc_info:
        generator.plan_story("赛博侦探")
    assert "创作简报" in str(exc_info.value)


def test_chapter_titles_are_capped_by_length_setting():
    titles = [f"第{i}章" for i in range(1, 11)]
    bridge = MockBridge({"generateChapterTitles": {"titles": titles}})
    options = StoryOptions(planning_model="plan-m", length="短篇(15-30章)")
    generator = OutlineGenerator(bridge, options)

    existing = [f"旧{i}" for i in range(26)]
    result = generator.generate_chapter_titles(StoryOutline(), [], existing)
    assert result == ["第1章", "第2章", "第3章", "第4章"]


def test_chapter_titles_at_cap_raise_without_calling_model():
    bridge = MockBridge({})
    generator = OutlineGenerator(bridge, StoryOptions(planning_model="plan-m", length="短篇(15-30章)"))
    with pytest.raises(StoryAgentError) as exc_info:
        generator.generate_chapter_titles(StoryOutline(), [], [f"旧{i}" for i in range(30)])
    assert str(exc_info.value) == MAX_CHAPTERS_REACHED
    assert bridge.calls == []


def test_chapter_titles_require_planning_model():
    generator = OutlineGenerator(MockBridge({}), StoryOptions())
    with pytest.raises(MissingConfigurationError):
        generator.generate_chapter_titles(StoryOutline(), [], [])


def test_max_chapters_follows_length_label():
    assert StoryOptions(length="中篇(30-100章)").max_chapters == 100
    assert StoryOptions(length="长篇(100章以上)").max_chapters == 2000
    assert StoryOptions(length="自定义").max_chapters == 30
