"""
Generation 模块 - 生成层

包含所有 Prompt 模板、信标提取器和生成器。
"""
from .chapter import ChapterStreamParser, ChapterWriter, ParsedChapter, split_chapter_text
from .detailed_outline import DetailedOutlineGenerator, OutlineHistory
from .extract import extract_marked_json, parse_loose_json, wrap_marked_json
from .outline import OutlineGenerator, parse_story_outline, refine_core
from .toolbox import CreativeToolbox

__all__ = [
    "ChapterStreamParser", "ChapterWriter", "ParsedChapter", "split_chapter_text",
    "DetailedOutlineGenerator", "OutlineHistory",
    "extract_marked_json", "parse_loose_json", "wrap_marked_json",
    "OutlineGenerator", "parse_story_outline", "refine_core",
    "CreativeToolbox",
]
