"""Utils 模块"""
from .abort import AbortSignal, check_abort
from .text import clip_head, count_story_words, truncated_preview

__all__ = ['AbortSignal', 'check_abort', 'clip_head', 'count_story_words', 'truncated_preview']
