import json
import os
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx
import openai
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from bridge import BridgeService
from errors import BridgeError, ChapterIncompleteError, MissingConfigurationError, SessionBusyError, StoryAgentError
from interactive import GameState, StorySession
from models import OpenAICompatibleModel
from schema.story import ChapterStatus, GeneratedChapter, StoryOptions

THOUGHT = "[START_THOUGHT_PROCESS]"
CONTENT = "[START_CHAPTER_CONTENT]"

PLAN = {
    "title": "霓虹下的遗忘",
    "genreAnalysis": "科幻 (赛博朋克)",
    "worldConcept": "记忆可以买卖的城市",
    "plotSynopsis": "失忆侦探追查连环失踪案。",
    "characters": [
        {"role": "主角", "name": "林默", "coreConcept": "失忆侦探"},
        {"role": "配角", "name": "白鸦", "coreConcept": "地下黑客"},
    ],
    "worldCategories": [{"name": "势力", "entries": [{"key": "忆象公司", "value": "记忆交易"}]}],
}

DETAILED = {"plotPoints": [{"summary": "雨夜苏醒"}], "nextChapterPreview": {}}
CRITIQUE = {"overallScore": 8.2, "scoringBreakdown": [], "improvementSuggestions": []}


class MockBridge:
    def __init__(self):
        self.responses: Dict[str, Any] = {
            "performSearch": {"text": json.dumps(PLAN, ensure_ascii=False), "citations": []},
            "generateChapterTitles": {"titles": ["雨夜苏醒", "失落芯片", "白鸦"]},
            "generateDetailedOutline": {"outline": DETAILED},
            "critiqueDetailedOutline": {"critique": CRITIQUE},
            "editChapterText": {"text": "修改后的正文"},
            "generateNewCharacterProfile": {"text": '{"name": "老K", "role": "反派", "coreConcept": "记忆商人"}'},
            "getWorldbookSuggestions": {"text": "建议增加地下市场"},
        }
        self.streams: Dict[str, Any] = {
            "generateChapter": [{"text": THOUGHT + "构思"}, {"text": CONTENT + "霓虹闪烁。"}],
            "generateCharacterInteraction": [{"text": "林默："}, {"text": "你是谁？"}],
        }
        self.hooks: Dict[str, Callable[[], None]] = {}
        self.calls: List[str] = []

    def call(self, action, payload, abort=None):
        self.calls.append(action)
        if action in self.hooks:
            self.hooks[action]()
        response = self.responses[action]
        if isinstance(response, Exception):
            raise response
        return response

    def open_stream(self, action, payload, abort=None):
        self.calls.append(action)
        stream = self.streams[action]
        return stream() if callable(stream) else iter(stream)


def _options(**overrides) -> StoryOptions:
    fields = dict(
        api_base_url="https://api.example.com",
        api_key="sk-test",
        search_model="search-m",
        planning_model="plan-m",
        writing_model="write-m",
    )
    fields.update(overrides)
    return StoryOptions(**fields)


def _planned_session(bridge: Optional[MockBridge] = None) -> StorySession:
    session = StorySession(_options(), bridge=bridge or MockBridge())
    session.start_planning("一个失去记忆的赛博朋克侦探")
    return session


def test_planning_success_generates_initial_titles():
    session = _planned_session()
    assert session.game_state == GameState.PLANNING_COMPLETE
    assert session.story_outline.title == "霓虹下的遗忘"
    assert session.generated_titles == ["雨夜苏醒", "失落芯片", "白鸦"]
    assert session.last_error is None
    assert session.running is None


def test_planning_requires_credentials():
    session = StorySession(_options(api_key=""), bridge=MockBridge())
    with pytest.raises(MissingConfigurationError):
        session.start_planning("赛博侦探")
    assert session.game_state == GameState.INITIAL


def test_title_failure_after_planning_keeps_the_plan():
    bridge = MockBridge()
    bridge.responses["generateChapterTitles"] = BridgeError(429, "已达到API速率限制 (Rate Limit Exceeded)。请稍后重试。")
    session = StorySession(_options(), bridge=bridge)

    session.start_planning("赛博侦探")
    assert session.game_state == GameState.PLANNING_COMPLETE
    assert session.generated_titles == []
    assert session.last_error.startswith("自动生成初始章节标题失败: ")


def test_failed_replanning_restores_previous_outline():
    bridge = MockBridge()
    session = _planned_session(bridge)
    bridge.responses["performSearch"] = BridgeError(504, "模型 [search-m] 响应超时 (Gateway Timeout)。")

    with pytest.raises(BridgeError):
        session.refine_plan("更黑暗一些")

    assert session.game_state == GameState.PLANNING_COMPLETE
    assert session.story_outline.title == "霓虹下的遗忘"
    assert session.story_core == "一个失去记忆的赛博朋克侦探"
    assert session.generated_titles == ["雨夜苏醒", "失落芯片", "白鸦"]
    assert "Gateway Timeout" in session.last_error


def test_only_one_operation_at_a_time():
    bridge = MockBridge()
    session = StorySession(_options(), bridge=bridge)
    seen: List[Exception] = []

    def try_second_operation():
        try:
            session.worldbook_suggestions()
        except StoryAgentError as exc:
            seen.append(exc)

    bridge.hooks["generateChapterTitles"] = try_second_operation
    session.start_planning("赛博侦探")

    assert len(seen) == 1
    assert isinstance(seen[0], SessionBusyError)
    assert session.abort() is False


def test_write_flow_reaches_chapter_complete():
    session = _planned_session()
    final = session.generate_detailed_outline("雨夜苏醒")
    assert final.final_version == 1
    assert session.active_outline_title == "雨夜苏醒"

    snapshots = list(session.write_chapter())
    assert snapshots[-1].status == ChapterStatus.COMPLETE
    assert session.game_state == GameState.CHAPTER_COMPLETE
    assert len(session.chapters) == 1
    assert session.chapters[0].content == "霓虹闪烁。"
    assert session.chapters[0].thought == "构思"
    assert session.next_chapter_title() == "失落芯片"


def test_write_without_detailed_outline_is_rejected():
    session = _planned_session()
    with pytest.raises(StoryAgentError) as exc_info:
        list(session.write_chapter())
    assert "细纲" in str(exc_info.value)
    assert session.chapters == []


def test_stream_error_restores_state():
    bridge = MockBridge()
    session = _planned_session(bridge)
    session.generate_detailed_outline("雨夜苏醒")
    bridge.streams["generateChapter"] = [{"text": CONTENT + "半截"}, {"error": "上游API服务器错误 (状态码: 503)。请稍后重试。"}]

    with pytest.raises(StoryAgentError):
        list(session.write_chapter())
    assert session.chapters == []
    assert session.game_state == GameState.PLANNING_COMPLETE
    assert "503" in session.last_error


def test_thought_only_chapter_is_kept_and_flagged():
    bridge = MockBridge()
    session = _planned_session(bridge)
    session.generate_detailed_outline("雨夜苏醒")
    bridge.streams["generateChapter"] = [{"text": THOUGHT + "只想不写"}]

    with pytest.raises(ChapterIncompleteError):
        list(session.write_chapter())
    assert session.game_state == GameState.CHAPTER_COMPLETE
    assert session.chapters[0].content == ""
    assert session.chapters[0].thought == "只想不写"
    assert "重新生成" in session.last_error


def test_regenerate_replaces_last_chapter():
    bridge = MockBridge()
    session = _planned_session(bridge)
    session.generate_detailed_outline("雨夜苏醒")
    list(session.write_chapter())

    bridge.streams["generateChapter"] = [{"text": CONTENT + "新版本正文。"}]
    list(session.regenerate_last_chapter())
    assert len(session.chapters) == 1
    assert session.chapters[0].content == "新版本正文。"


def test_edit_last_chapter_replaces_content():
    session = _planned_session()
    session.generate_detailed_outline("雨夜苏醒")
    list(session.write_chapter())

    edited = session.edit_last_chapter("精简对话")
    assert edited.content == "修改后的正文"
    assert session.chapters[-1].content == "修改后的正文"
    assert session.chapters[-1].thought == "构思"


def test_toolbox_actions():
    session = _planned_session()
    assert session.worldbook_suggestions() == "建议增加地下市场"

    character = session.create_character("一个贩卖记忆的商人")
    assert character.name == "老K"
    assert session.story_outline.find_character("老K") is character

    assert "".join(session.character_interaction("林默", "白鸦")) == "林默：你是谁？"
    with pytest.raises(StoryAgentError):
        session.character_arc_suggestions("不存在的人")


def test_snapshot_never_contains_api_key():
    session = _planned_session()
    snapshot = session.to_dict()
    assert snapshot["storyOptions"]["apiKey"] == ""
    assert snapshot["gameState"] == int(GameState.PLANNING_COMPLETE)
    assert snapshot["generatedTitles"] == ["雨夜苏醒", "失落芯片", "白鸦"]


def test_from_dict_settles_in_flight_states():
    session = _planned_session()
    snapshot = session.to_dict()
    snapshot["gameState"] = int(GameState.PLANNING)

    restored = StorySession.from_dict(snapshot, options=_options(), bridge=MockBridge())
    assert restored.game_state == GameState.PLANNING_COMPLETE
    assert restored.options.api_key == "sk-test"

    snapshot["gameState"] = int(GameState.WRITING)
    snapshot["chapters"] = [GeneratedChapter(id=1, title="雨夜苏醒", content="半截").to_dict()]
    restored = StorySession.from_dict(snapshot, options=_options(), bridge=MockBridge())
    assert restored.chapters == []
    assert restored.game_state == GameState.PLANNING_COMPLETE


def test_from_dict_without_outline_goes_back_to_initial():
    restored = StorySession.from_dict({"gameState": 1}, bridge=MockBridge())
    assert restored.game_state == GameState.INITIAL


def test_reset_plan_keeps_core():
    session = _planned_session()
    session.reset_plan()
    assert session.game_state == GameState.INITIAL
    assert session.story_outline is None
    assert session.generated_titles == []
    assert session.story_core == "一个失去记忆的赛博朋克侦探"


class BrokenStream:
    """SDK 流的替身：逐个产出 chunk，可被 close。"""

    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __iter__(self):
        return self.chunks

    def close(self):
        self.closed = True


def _committed_session(bridge: MockBridge) -> StorySession:
    session = _planned_session(bridge)
    session.generate_detailed_outline("雨夜苏醒")
    list(session.write_chapter())
    return session


def test_regenerate_failing_through_real_client_keeps_committed_chapter():
    session = _committed_session(MockBridge())
    committed = list(session.chapters)

    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")

    def broken_stream():
        yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=CONTENT + "半截正文"))])
        raise openai.APIError("upstream overloaded", request, body=None)

    completions = SimpleNamespace(create=lambda **kwargs: BrokenStream(broken_stream()))
    model = OpenAICompatibleModel(api_key="sk-test", base_url="https://api.example.com")
    model.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    session.bridge = BridgeService(client_factory=lambda options: model)

    with pytest.raises(StoryAgentError):
        list(session.regenerate_last_chapter())

    assert session.chapters == committed
    assert session.game_state == GameState.CHAPTER_COMPLETE
    assert "upstream overloaded" in session.last_error
    assert session.running is None


def test_unexpected_error_mid_stream_restores_and_records():
    bridge = MockBridge()
    session = _committed_session(bridge)
    committed = list(session.chapters)

    def exploding_stream():
        yield {"text": CONTENT + "写到一半"}
        raise RuntimeError("socket reset")

    bridge.streams["generateChapter"] = exploding_stream
    with pytest.raises(RuntimeError):
        list(session.regenerate_last_chapter())

    assert session.chapters == committed
    assert session.game_state == GameState.CHAPTER_COMPLETE
    assert "socket reset" in session.last_error


def test_abandoned_stream_restores_previous_chapter():
    bridge = MockBridge()
    session = _committed_session(bridge)
    committed = list(session.chapters)

    bridge.streams["generateChapter"] = [{"text": CONTENT + "新"}, {"text": "版本"}]
    stream = session.regenerate_last_chapter()
    next(stream)
    next(stream)
    assert session.chapters[-1].status == ChapterStatus.STREAMING
    stream.close()

    assert session.chapters == committed
    assert session.running is None
