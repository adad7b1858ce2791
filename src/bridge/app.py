"""HTTP 入口：单一的 POST /api 端点。"""
import json
from typing import Iterator, Optional

from flask import Flask, Response, jsonify, request, stream_with_context

from errors import BridgeError
from schema.story import StoryOptions

from .actions import LIST_MODELS
from .service import BridgeService

NDJSON_MIMETYPE = "application/x-ndjson; charset=utf-8"


def _ndjson(chunks: Iterator[dict]) -> Iterator[str]:
    for chunk in chunks:
        yield json.dumps(chunk, ensure_ascii=False) + "\n"


def create_app(service: Optional[BridgeService] = None) -> Flask:
    app = Flask(__name__)
    app.json.ensure_ascii = False
    bridge = service or BridgeService()

    @app.route("/api", methods=["POST"])
    def api():
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            return jsonify({"error": "请求体必须是一个JSON对象。"}), 400
        action = body.get("action")
        payload = body.get("payload") or {}
        if not isinstance(payload, dict):
            return jsonify({"error": "payload 必须是一个JSON对象。"}), 400

        try:
            if action == LIST_MODELS:
                options = StoryOptions.from_dict(payload.get("options"))
                return jsonify(bridge.list_models(options))
            if bridge.is_streaming(action):
                chunks = bridge.open_stream(action, payload)
                return Response(stream_with_context(_ndjson(chunks)), content_type=NDJSON_MIMETYPE)
            return jsonify(bridge.call(action, payload))
        except BridgeError as exc:
            return jsonify({"error": str(exc)}), exc.status_code

    return app
