"""Text helpers shared by the bridge, generators and surfaces."""

from __future__ import annotations

import re

_CJK_PATTERN = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")
_EN_WORD_PATTERN = re.compile(r"[a-zA-Z]+")
_DIGIT_PATTERN = re.compile(r"[0-9０-９]")


def count_story_words(text: str) -> int:
    """中文小说口径字数：汉字、英文单词、数字各算一字，标点不计。"""
    if not text:
        return 0
    return (
        len(_CJK_PATTERN.findall(text))
        + len(_EN_WORD_PATTERN.findall(text))
        + len(_DIGIT_PATTERN.findall(text))
    )


def clip_head(text: str, max_chars: int, suffix: str = "...") -> str:
    """Return the head of text with bounded length, marking truncation."""
    if not text:
        return ""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + suffix


def truncated_preview(text: str, max_chars: int = 500) -> str:
    """Preview used in model-output error messages."""
    return clip_head(text, max_chars, suffix="... (truncated)")
