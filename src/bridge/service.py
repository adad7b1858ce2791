"""
Bridge 服务

把 "动作 + 载荷" 翻译成一次 OpenAI 兼容接口调用：
- 非流式：一次请求，按动作要求解析结果中的 JSON；
- 流式：逐段产出 {"text": ...}，出错时产出一个 {"error": ...} 后结束。
"""
import json
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from errors import BridgeError, GenerationAborted, MissingConfigurationError, ModelOutputError, StoryAgentError
from generation.extract import extract_json_text
from models import BaseChatModel, Messages, get_client
from schema.story import StoryOptions
from utils.abort import AbortSignal
from utils.text import truncated_preview

from .actions import ACTIONS, RESULT_JSON, RESULT_JSON_TEXT, RESULT_SEARCH, ActionSpec, get_action
from .errors import classify_error

logger = logging.getLogger(__name__)

ClientFactory = Callable[[StoryOptions], BaseChatModel]


class BridgeService:
    """动作分发器；模型客户端按每次请求携带的选项创建。"""

    def __init__(self, client_factory: ClientFactory = get_client):
        self.client_factory = client_factory

    # ==================== 公共入口 ====================

    @staticmethod
    def is_streaming(action: str) -> bool:
        spec = ACTIONS.get(action)
        return bool(spec and spec.streaming)

    def call(self, action: str, payload: Dict[str, Any], abort: Optional[AbortSignal] = None) -> Dict[str, Any]:
        """非流式动作，返回结果字典。失败时抛出已分类的 BridgeError。"""
        model = ""
        try:
            spec, options, model, messages = self._prepare(action, payload)
            client = self.client_factory(options)
            text = client.chat(messages, model, options, abort=abort)
            return self._package(spec, model, text)
        except GenerationAborted:
            raise
        except StoryAgentError as exc:
            raise self._fail(action, model, exc) from exc

    def open_stream(
        self,
        action: str,
        payload: Dict[str, Any],
        abort: Optional[AbortSignal] = None,
    ) -> Iterator[Dict[str, str]]:
        """
        流式动作

        动作、模型、凭据的校验在这里同步完成并直接抛错；
        返回的迭代器只会产出 {"text"} 和 {"error"} 两种数据块。
        """
        model = ""
        try:
            _, options, model, messages = self._prepare(action, payload)
            client = self.client_factory(options)
        except StoryAgentError as exc:
            raise self._fail(action, model, exc) from exc
        return self._relay(client, action, model, messages, options, abort)

    def list_models(self, options: StoryOptions) -> List[str]:
        try:
            return self.client_factory(options).list_models()
        except StoryAgentError as exc:
            raise self._fail("listModels", "", exc) from exc

    # ==================== 内部实现 ====================

    def _prepare(self, action: str, payload: Dict[str, Any]) -> Tuple[ActionSpec, StoryOptions, str, Messages]:
        spec = get_action(action)
        payload = payload if isinstance(payload, dict) else {}
        options = StoryOptions.from_dict(payload.get("options"))
        model = options.model_for(spec.model_key)
        if not model:
            raise MissingConfigurationError(f"No model selected for action: {action}. Please check your settings.")
        return spec, options, model, spec.build(payload, options)

    def _relay(
        self,
        client: BaseChatModel,
        action: str,
        model: str,
        messages: Messages,
        options: StoryOptions,
        abort: Optional[AbortSignal],
    ) -> Iterator[Dict[str, str]]:
        try:
            for delta in client.stream_chat(messages, model, options, abort=abort):
                yield {"text": delta}
        except GenerationAborted:
            raise
        except StoryAgentError as exc:
            yield {"error": str(self._fail(action, model, exc))}

    def _package(self, spec: ActionSpec, model: str, text: str) -> Dict[str, Any]:
        if spec.result_mode == RESULT_SEARCH:
            return {"text": text, "citations": []}
        if spec.result_mode not in (RESULT_JSON, RESULT_JSON_TEXT):
            return {spec.result_key: text}

        json_text = extract_json_text(text)
        try:
            parsed = json.loads(json_text)
        except json.JSONDecodeError as exc:
            logger.error("JSON Parsing Failed for Model [%s]", model)
            logger.error("Raw output: %s", text)
            raise ModelOutputError(model, str(exc), truncated_preview(text)) from exc

        if spec.result_mode == RESULT_JSON_TEXT:
            return {spec.result_key: json_text}
        return {spec.result_key: parsed}

    @staticmethod
    def _fail(action: str, model: str, exc: StoryAgentError) -> BridgeError:
        if isinstance(exc, BridgeError):
            return exc
        status, message = classify_error(exc, model)
        logger.error("Action: %s | Model: %s | Status: %s | Error: %s", action or "unknown", model, status, message)
        return BridgeError(status, message, action=action, model=model)
