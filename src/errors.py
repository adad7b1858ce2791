"""
异常定义

所有错误最终都以一条可读的中文消息呈现给用户；没有任何自动重试。
"""
from typing import Any, Optional


class StoryAgentError(Exception):
    """所有业务错误的基类。"""


class MissingConfigurationError(StoryAgentError):
    """缺少 API 地址、密钥或模型配置。"""


class UnknownActionError(StoryAgentError):
    def __init__(self, action: Optional[str]):
        self.action = action
        super().__init__(f"Unknown action: {action}")


class MarkerNotFoundError(StoryAgentError):
    """输出中缺少起始或结束信标。"""

    def __init__(self, step: str, message: Optional[str] = None):
        self.step = step
        super().__init__(message or f"在\"{step}\"的输出中未能找到完整的数据块 (缺少起始或结束信标)。")


class JSONPayloadError(StoryAgentError):
    """信标之间的内容不是合法 JSON。"""

    def __init__(self, step: str, raw: str, reason: str):
        self.step = step
        self.raw = raw
        self.reason = reason
        super().__init__(f"解析来自\"{step}\"的JSON数据时失败: {reason}\n原始内容: {raw}")


class OutlineValidationError(StoryAgentError):
    """创作简报缺少必要结构。"""


class ModelOutputError(StoryAgentError):
    """模型返回的内容无法按动作要求解析。"""

    def __init__(self, model: str, reason: str, preview: str):
        self.model = model
        self.reason = reason
        self.preview = preview
        super().__init__(
            f"Model [{model}] Output Error: The model returned invalid JSON. \n\n"
            f"Error: {reason}\n\nRaw Output Preview:\n{preview}"
        )


class EmptyResponseError(StoryAgentError):
    """上游返回了空内容。"""


class UpstreamAPIError(StoryAgentError):
    """上游 HTTP 错误，保留状态码和原始响应体用于分类。"""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = int(status_code)
        self.body = body or ""
        super().__init__(f"Upstream API Error: {self.status_code} - {self.body}")


class GenerationAborted(StoryAgentError):
    """用户中止了当前生成；不作为失败呈现。"""

    def __init__(self, message: str = "操作已中止。"):
        super().__init__(message)


class ChapterIncompleteError(StoryAgentError):
    """模型只输出了思考过程，没有正文。"""

    def __init__(self, chapter: Any):
        self.chapter = chapter
        super().__init__("错误: AI在完成思考过程后停止了，未能生成正文。请尝试【重新生成】。")


class SessionBusyError(StoryAgentError):
    """同一时间只允许一个生成任务。"""

    def __init__(self, running: str):
        self.running = running
        super().__init__(f"当前已有任务在运行（{running}），请等待完成或先中止。")


class BridgeError(StoryAgentError):
    """Bridge 对外呈现的错误：已分类的 HTTP 状态码 + 用户可读消息。"""

    def __init__(self, status_code: int, message: str, action: Optional[str] = None, model: str = ""):
        self.status_code = status_code
        self.action = action
        self.model = model
        super().__init__(message)
