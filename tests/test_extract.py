import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from errors import JSONPayloadError, MarkerNotFoundError, StoryAgentError
from generation.extract import (
    DETAILED_OUTLINE_END,
    DETAILED_OUTLINE_START,
    extract_json_text,
    extract_marked_json,
    find_json_span,
    parse_loose_json,
    wrap_marked_json,
)


def test_extract_marked_json_reads_first_block_between_markers():
    text = (
        "先说几句闲话。\n"
        f"{DETAILED_OUTLINE_START}\n"
        '{"plotPoints": [{"summary": "雨夜追踪"}], "nextChapterPreview": {}}\n'
        f"{DETAILED_OUTLINE_END}\n"
        f"{DETAILED_OUTLINE_START}{{\"plotPoints\": []}}{DETAILED_OUTLINE_END}"
    )
    data = extract_marked_json(text, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "细纲")
    assert data["plotPoints"][0]["summary"] == "雨夜追踪"


def test_extract_marked_json_strips_code_fence_inside_markers():
    text = f"{DETAILED_OUTLINE_START}\n```json\n{{\"a\": 1}}\n```\n{DETAILED_OUTLINE_END}"
    assert extract_marked_json(text, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "细纲") == {"a": 1}


def test_extract_marked_json_missing_end_marker_names_step():
    text = f"{DETAILED_OUTLINE_START}{{\"a\": 1}}"
    with pytest.raises(MarkerNotFoundError) as exc_info:
        extract_marked_json(text, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "章节写作")
    assert exc_info.value.step == "章节写作"
    assert "章节写作" in str(exc_info.value)


def test_extract_marked_json_invalid_payload_keeps_raw_text():
    text = f"{DETAILED_OUTLINE_START}{{plotPoints: 缺引号}}{DETAILED_OUTLINE_END}"
    with pytest.raises(JSONPayloadError) as exc_info:
        extract_marked_json(text, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "细纲")
    assert "{plotPoints: 缺引号}" in exc_info.value.raw


def test_extract_marked_json_rejects_non_string_input():
    with pytest.raises(StoryAgentError) as exc_info:
        extract_marked_json(None, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "细纲")
    assert "NoneType" in str(exc_info.value)


def test_wrapped_payload_can_be_extracted_again():
    payload = {"finalVersion": 2, "plotPoints": [{"summary": "反转"}]}
    wrapped = wrap_marked_json(payload, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END)
    assert wrapped.startswith(DETAILED_OUTLINE_START)
    assert "反转" in wrapped  # ensure_ascii=False
    assert extract_marked_json(wrapped, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "细纲") == payload


def test_find_json_span_prefers_whichever_opener_comes_first():
    assert find_json_span('好的：{"a": [1, 2]} 结束') == '{"a": [1, 2]}'
    assert find_json_span('标题如下 ["一", "二"] 完') == '["一", "二"]'
    assert find_json_span("没有任何结构") == ""


def test_extract_json_text_prefers_fenced_block():
    text = '说明 {不算数}\n```json\n{"name": "林默"}\n```\n结尾'
    assert extract_json_text(text) == '{"name": "林默"}'
    assert extract_json_text("纯文本") == "纯文本"


def test_parse_loose_json_tolerates_chatter():
    data = parse_loose_json('当然可以！\n{"title": "霓虹下的遗忘"}\n希望你喜欢。', "研究与规划")
    assert data == {"title": "霓虹下的遗忘"}


def test_parse_loose_json_without_structure_fails_with_step():
    with pytest.raises(MarkerNotFoundError) as exc_info:
        parse_loose_json("抱歉，我无法完成。", "研究与规划")
    assert "研究与规划" in str(exc_info.value)
