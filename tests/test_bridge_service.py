import json
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from bridge import ACTIONS, BridgeService, get_action
from errors import BridgeError, GenerationAborted, UnknownActionError, UpstreamAPIError
from schema.story import StoryOptions
from utils.abort import AbortSignal

OPTIONS = {
    "apiBaseUrl": "https://api.example.com/some/path",
    "apiKey": "sk-test",
    "searchModel": "search-m",
    "planningModel": "plan-m",
    "writingModel": "write-m",
}


class MockClient:
    def __init__(self, reply: str = "", deltas: Optional[List[Any]] = None, error: Optional[Exception] = None):
        self.reply = reply
        self.deltas = deltas or []
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def chat(self, messages, model, options, abort=None):
        self.calls.append({"messages": messages, "model": model})
        if self.error is not None:
            raise self.error
        return self.reply

    def stream_chat(self, messages, model, options, abort=None):
        self.calls.append({"messages": messages, "model": model})
        for delta in self.deltas:
            if isinstance(delta, Exception):
                raise delta
            yield delta

    def list_models(self):
        return ["a-model", "b-model"]


def _service(client: MockClient):
    seen: List[StoryOptions] = []

    def factory(options: StoryOptions):
        seen.append(options)
        return client

    return BridgeService(client_factory=factory), seen


def _payload(**fields):
    data = dict(fields)
    data["options"] = dict(OPTIONS)
    return data


def test_registry_covers_every_action():
    assert set(ACTIONS) == {
        "performSearch",
        "generateChapter",
        "generateChapterTitles",
        "generateDetailedOutline",
        "critiqueDetailedOutline",
        "editChapterText",
        "generateCharacterInteraction",
        "generateNewCharacterProfile",
        "getWorldbookSuggestions",
        "getCharacterArcSuggestions",
        "getNarrativeToolboxSuggestions",
    }
    assert get_action("generateChapter").model_key == "writingModel"
    assert get_action("editChapterText").model_key == "writingModel"
    assert get_action("performSearch").model_key == "searchModel"
    assert get_action("critiqueDetailedOutline").model_key == "planningModel"
    assert {name for name, spec in ACTIONS.items() if spec.streaming} == {
        "generateChapter",
        "generateCharacterInteraction",
    }


def test_perform_search_returns_text_and_empty_citations():
    client = MockClient(reply='{"title": "霓虹"}')
    service, seen = _service(client)
    result = service.call("performSearch", _payload(storyCore="一个失去记忆的赛博朋克侦探"))

    assert result == {"text": '{"title": "霓虹"}', "citations": []}
    assert client.calls[0]["model"] == "search-m"
    assert "一个失去记忆的赛博朋克侦探" in client.calls[0]["messages"][-1]["content"]
    assert seen[0].api_key == "sk-test"


def test_chapter_titles_parse_json_inside_chatter():
    client = MockClient(reply='好的，以下是标题：\n```json\n["雨夜苏醒", "失落芯片"]\n```')
    service, _ = _service(client)
    result = service.call("generateChapterTitles", _payload(outline={"title": "赛博侦探"}, chapters=[]))
    assert result == {"titles": ["雨夜苏醒", "失落芯片"]}
    assert client.calls[0]["model"] == "plan-m"


def test_new_character_profile_returns_validated_json_text():
    client = MockClient(reply='前言 {"name": "白鸦", "role": "配角"} 后记')
    service, _ = _service(client)
    result = service.call("generateNewCharacterProfile", _payload(storyOutline={}, characterPrompt="黑客"))
    assert json.loads(result["text"]) == {"name": "白鸦", "role": "配角"}


def test_raw_actions_wrap_text():
    service, _ = _service(MockClient(reply="修改后的正文"))
    result = service.call("editChapterText", _payload(originalText="原文", instruction="精简"))
    assert result == {"text": "修改后的正文"}


def test_invalid_json_is_a_500_with_preview():
    reply = "这不是JSON {还是不是" + "字" * 600
    service, _ = _service(MockClient(reply=reply))
    with pytest.raises(BridgeError) as exc_info:
        service.call("critiqueDetailedOutline", _payload(outlineToCritique={}, storyOutline={}))

    error = exc_info.value
    assert error.status_code == 500
    assert "Model [plan-m] Output Error" in str(error)
    assert "... (truncated)" in str(error)


def test_unknown_action_is_rejected():
    service, _ = _service(MockClient())
    with pytest.raises(BridgeError) as exc_info:
        service.call("summonDragon", _payload())
    assert exc_info.value.status_code == 500
    assert str(exc_info.value) == "Unknown action: summonDragon"
    assert isinstance(exc_info.value.__cause__, UnknownActionError)


def test_missing_model_is_reported_before_any_request():
    client = MockClient(reply="unused")
    service, _ = _service(client)
    payload = _payload()
    payload["options"]["writingModel"] = ""

    with pytest.raises(BridgeError) as exc_info:
        service.call("editChapterText", payload)
    assert "No model selected for action: editChapterText" in str(exc_info.value)
    assert client.calls == []


def test_upstream_errors_are_classified():
    service, _ = _service(MockClient(error=UpstreamAPIError(524, "")))
    with pytest.raises(BridgeError) as exc_info:
        service.call("getWorldbookSuggestions", _payload(storyOutline={}))
    assert exc_info.value.status_code == 504
    assert "plan-m" in str(exc_info.value)


def test_abort_is_not_converted():
    service, _ = _service(MockClient(error=GenerationAborted()))
    with pytest.raises(GenerationAborted):
        service.call("getWorldbookSuggestions", _payload(storyOutline={}), AbortSignal())


def test_stream_relays_text_chunks():
    service, _ = _service(MockClient(deltas=["第一段", "第二段"]))
    chunks = list(service.open_stream("generateCharacterInteraction", _payload(char1={}, char2={}, outline={})))
    assert chunks == [{"text": "第一段"}, {"text": "第二段"}]


def test_stream_failure_becomes_single_error_chunk():
    service, _ = _service(MockClient(deltas=["开头", UpstreamAPIError(429, "")]))
    chunks = list(service.open_stream("generateChapter", _payload(outline={}, historyChapters=[])))
    assert chunks[0] == {"text": "开头"}
    assert len(chunks) == 2
    assert "Rate Limit" in chunks[1]["error"]


def test_stream_setup_errors_raise_eagerly():
    service, _ = _service(MockClient())
    payload = _payload()
    payload["options"]["writingModel"] = ""
    with pytest.raises(BridgeError):
        service.open_stream("generateChapter", payload)


def test_is_streaming_handles_unknown_actions():
    assert BridgeService.is_streaming("generateChapter") is True
    assert BridgeService.is_streaming("performSearch") is False
    assert BridgeService.is_streaming(None) is False


def test_list_models():
    service, _ = _service(MockClient())
    assert service.list_models(StoryOptions.from_dict(OPTIONS)) == ["a-model", "b-model"]
