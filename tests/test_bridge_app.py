import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from bridge.app import create_app
from bridge.service import BridgeService
from errors import UpstreamAPIError

OPTIONS = {
    "apiBaseUrl": "https://api.example.com",
    "apiKey": "sk-test",
    "searchModel": "search-m",
    "planningModel": "plan-m",
    "writingModel": "write-m",
}


class MockClient:
    def __init__(self, reply="", deltas=None, error=None):
        self.reply = reply
        self.deltas = deltas or []
        self.error = error

    def chat(self, messages, model, options, abort=None):
        if self.error is not None:
            raise self.error
        return self.reply

    def stream_chat(self, messages, model, options, abort=None):
        for delta in self.deltas:
            yield delta

    def list_models(self):
        return ["deepseek-chat", "gemini-flash"]


def _client(mock: MockClient):
    app = create_app(BridgeService(client_factory=lambda options: mock))
    app.config["TESTING"] = True
    return app.test_client()


def _post(client, action, **payload):
    payload["options"] = dict(OPTIONS)
    return client.post("/api", json={"action": action, "payload": payload})


def test_non_streaming_action_returns_json():
    client = _client(MockClient(reply='["雨夜苏醒", "失落芯片"]'))
    response = _post(client, "generateChapterTitles", outline={}, chapters=[])
    assert response.status_code == 200
    assert response.get_json() == {"titles": ["雨夜苏醒", "失落芯片"]}


def test_list_models_returns_plain_list():
    client = _client(MockClient())
    response = _post(client, "listModels")
    assert response.status_code == 200
    assert response.get_json() == ["deepseek-chat", "gemini-flash"]


def test_streaming_action_returns_ndjson_lines():
    client = _client(MockClient(deltas=["你好", "，世界"]))
    response = _post(client, "generateChapter", outline={}, historyChapters=[])
    assert response.status_code == 200
    assert response.mimetype == "application/x-ndjson"

    lines = [line for line in response.get_data(as_text=True).split("\n") if line]
    assert [json.loads(line) for line in lines] == [{"text": "你好"}, {"text": "，世界"}]
    assert "你好" in lines[0]


def test_classified_error_sets_http_status():
    client = _client(MockClient(error=UpstreamAPIError(401, "invalid key")))
    response = _post(client, "getWorldbookSuggestions", storyOutline={})
    assert response.status_code == 401
    assert "API密钥" in response.get_json()["error"]


def test_unknown_action_is_500():
    client = _client(MockClient())
    response = _post(client, "doSomethingElse")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Unknown action: doSomethingElse"}


def test_missing_body_is_unknown_action():
    client = _client(MockClient())
    response = client.post("/api", data="not json", content_type="text/plain")
    assert response.status_code == 500
    assert response.get_json()["error"] == "Unknown action: None"


def test_non_object_body_is_a_400():
    client = _client(MockClient())
    for body in (["generateChapter"], "generateChapter", 42):
        response = client.post("/api", json=body)
        assert response.status_code == 400
        assert "JSON对象" in response.get_json()["error"]


def test_non_object_payload_is_a_400():
    client = _client(MockClient())
    response = client.post("/api", json={"action": "listModels", "payload": ["options"]})
    assert response.status_code == 400
    assert "payload" in response.get_json()["error"]
