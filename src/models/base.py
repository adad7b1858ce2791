"""共享模型基类，封装 OpenAI 兼容接口的通用逻辑。"""

import logging
from typing import Any, Dict, Generator, List, Optional
from urllib.parse import urlsplit

import httpx
from openai import APIConnectionError, APIError, APIStatusError, OpenAI

from errors import EmptyResponseError, GenerationAborted, MissingConfigurationError, StoryAgentError, UpstreamAPIError
from schema.story import StoryOptions
from utils.abort import AbortSignal, check_abort

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


def api_root(base_url: str) -> str:
    """只保留协议与主机，路径固定为 /v1（与 new URL('/v1/...', base) 行为一致）。"""
    parts = urlsplit((base_url or "").strip())
    if not parts.scheme or not parts.netloc:
        raise MissingConfigurationError(f"API 地址无效: {base_url!r}")
    return f"{parts.scheme}://{parts.netloc}/v1"


def _upstream_error(exc: APIError) -> StoryAgentError:
    """把 SDK 异常转换为领域异常：状态码错误保留响应体，其余只保留消息。"""
    if isinstance(exc, APIStatusError):
        response = getattr(exc, "response", None)
        body = response.text if response is not None else ""
        return UpstreamAPIError(exc.status_code, body or str(exc.message))
    if isinstance(exc, APIConnectionError):
        return StoryAgentError(f"无法连接到上游API: {exc}")
    return StoryAgentError(f"上游API返回错误: {exc.message}")


class BaseChatModel:
    """基于 OpenAI SDK 的通用对话模型封装。"""

    def __init__(self, api_key: Optional[str], base_url: str, missing_key_error: str):
        self.api_key = api_key
        if not self.api_key:
            raise MissingConfigurationError(missing_key_error)

        self.base_url = api_root(base_url)
        # 不做客户端超时与自动重试，重试永远由用户手动触发
        self.client = OpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0, timeout=None)

    @staticmethod
    def _sampling_kwargs(options: StoryOptions) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "temperature": options.temperature,
            "top_p": options.top_p,
        }
        if options.top_k > 0:
            kwargs["extra_body"] = {"top_k": options.top_k}
        return kwargs

    def chat(
        self,
        messages: Messages,
        model: str,
        options: StoryOptions,
        abort: Optional[AbortSignal] = None,
    ) -> str:
        """同步对话接口，返回完整文本。"""
        check_abort(abort)
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                stream=False,
                **self._sampling_kwargs(options),
            )
        except APIError as exc:
            raise _upstream_error(exc) from exc
        check_abort(abort)

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        if not content:
            raise EmptyResponseError("上游API返回了空响应。")
        return content

    def stream_chat(
        self,
        messages: Messages,
        model: str,
        options: StoryOptions,
        abort: Optional[AbortSignal] = None,
    ) -> Generator[str, None, None]:
        """流式对话接口，逐个产出增量文本。"""
        check_abort(abort)
        try:
            stream = self.client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                **self._sampling_kwargs(options),
            )
        except APIError as exc:
            raise _upstream_error(exc) from exc

        try:
            for chunk in stream:
                if abort is not None and abort.aborted:
                    logger.info("stream aborted by user (model=%s)", model)
                    raise GenerationAborted()
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except APIError as exc:
            raise _upstream_error(exc) from exc
        except httpx.HTTPError as exc:
            raise StoryAgentError(f"与上游API的连接中断: {exc}") from exc
        finally:
            stream.close()

    def list_models(self) -> List[str]:
        try:
            page = self.client.models.list()
        except APIError as exc:
            raise _upstream_error(exc) from exc
        return sorted(model.id for model in page)
