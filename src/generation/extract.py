"""
信标提取器

从模型的自由文本输出中截取 JSON 数据块：
- 严格模式：按一对字面信标截取，缺失即失败（不会返回默认值）；
- 宽松模式：取第一个 { / [ 到最后一个 } / ] 的最宽片段，容忍前后闲聊。
"""
import json
import re
from typing import Any

from errors import JSONPayloadError, MarkerNotFoundError, StoryAgentError

DETAILED_OUTLINE_START = "[START_DETAILED_OUTLINE_JSON]"
DETAILED_OUTLINE_END = "[END_DETAILED_OUTLINE_JSON]"

_FENCE_HEAD = re.compile(r"^```(?:json)?\s*")
_FENCE_TAIL = re.compile(r"\s*```$")
_FENCED_BLOCK = re.compile(r"```\w*\s*([\s\S]*?)\s*```")


def strip_code_fence(text: str) -> str:
    return _FENCE_TAIL.sub("", _FENCE_HEAD.sub("", text))


def extract_marked_json(text: Any, start_marker: str, end_marker: str, step: str) -> Any:
    """
    截取两个信标之间的第一段内容并严格解析为 JSON

    :param text: 模型输出全文
    :param start_marker: 起始信标（字面值）
    :param end_marker: 结束信标（字面值）
    :param step: 步骤名，出现在错误消息中
    """
    if not isinstance(text, str):
        raise StoryAgentError(
            f"在\"{step}\"步骤中，用于解析的输入文本无效 (预期为字符串，但接收到 {type(text).__name__})。"
        )

    pattern = re.compile(re.escape(start_marker) + r"([\s\S]*?)" + re.escape(end_marker))
    match = pattern.search(text)
    if not match or not match.group(1):
        raise MarkerNotFoundError(step)

    payload = strip_code_fence(match.group(1).strip())
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise JSONPayloadError(step, payload, str(exc)) from exc


def wrap_marked_json(payload: Any, start_marker: str, end_marker: str) -> str:
    """把数据序列化并包裹在信标之间，与 extract_marked_json 互逆。"""
    body = json.dumps(payload, ensure_ascii=False, indent=2)
    return f"{start_marker}\n{body}\n{end_marker}"


def find_json_span(text: str) -> str:
    """
    返回最宽的 JSON 候选片段；找不到时返回空串

    对象和数组看哪个起始符号先出现。字符串值里恰好出现在最外侧的括号
    或多个独立 JSON 块都无法区分。
    """
    first_brace = text.find("{")
    first_bracket = text.find("[")

    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        last_brace = text.rfind("}")
        if last_brace > first_brace:
            return text[first_brace:last_brace + 1]
    elif first_bracket != -1:
        last_bracket = text.rfind("]")
        if last_bracket > first_bracket:
            return text[first_bracket:last_bracket + 1]
    return ""


def extract_json_text(text: str) -> str:
    """Bridge 使用：代码块优先，其次最宽片段，最后原样返回（让解析错误带上原文）。"""
    fenced = _FENCED_BLOCK.search(text)
    if fenced and fenced.group(1):
        return fenced.group(1).strip()
    return find_json_span(text) or text


def parse_loose_json(text: str, step: str) -> Any:
    """宽松模式解析；没有候选片段或解析失败都会抛出带步骤名的错误。"""
    span = find_json_span(text or "")
    if not span:
        raise MarkerNotFoundError(step, f"在\"{step}\"的输出中未能找到有效的JSON对象结构。")
    try:
        return json.loads(span)
    except json.JSONDecodeError as exc:
        raise JSONPayloadError(step, span, str(exc)) from exc
