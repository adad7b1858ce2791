"""上游错误分类：把异常转换为 (HTTP 状态码, 面向用户的消息)。"""
import json
from typing import Tuple

from errors import UpstreamAPIError

DEFAULT_BAD_REQUEST = "上游API报告了一个请求错误。"


def _bad_request_detail(body: str) -> str:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return DEFAULT_BAD_REQUEST
    error = data.get("error") if isinstance(data, dict) else None
    message = error.get("message") if isinstance(error, dict) else None
    return message or body


def classify_error(exc: BaseException, model: str = "") -> Tuple[int, str]:
    if not isinstance(exc, UpstreamAPIError):
        return 500, str(exc) or "An unknown error occurred"

    status = exc.status_code
    if status in (504, 524):
        return 504, (
            f"模型 [{model}] 响应超时 (Gateway Timeout)。建议：\n"
            "1. 减少“最大优化次数”。\n"
            "2. 尝试使用更快的模型（如Flash）。"
        )
    if status == 401:
        return 401, "API密钥无效或未授权。请在设置中检查您的API密钥。"
    if status == 429:
        return 429, "已达到API速率限制 (Rate Limit Exceeded)。请稍后重试。"
    if status == 400:
        return 400, f"请求错误 (Bad Request): {_bad_request_detail(exc.body)}"
    return (502 if status >= 500 else 500), f"上游API服务器错误 (状态码: {status})。请稍后重试。"
