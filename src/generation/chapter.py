"""
章节生成器

流式正文：模型先输出思考过程，再输出正文，两段由信标分隔。
每收到一段文本都重新扫描整个缓冲区，刷新可见的 思考 / 正文。
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional, Tuple

from errors import ChapterIncompleteError, StoryAgentError
from schema.outline import DetailedOutlineAnalysis
from schema.story import ChapterStatus, GeneratedChapter, StoryOptions, StoryOutline
from utils.abort import AbortSignal, check_abort

from .extract import DETAILED_OUTLINE_END, DETAILED_OUTLINE_START, extract_marked_json
from .prompts import CONTENT_MARKER, THOUGHT_MARKER

logger = logging.getLogger(__name__)

TITLE_PATTERN = re.compile(r"(?:章节标题：|Chapter Title:)\s*(.*)")
INVALID_OUTLINE_MESSAGE = "无法写入章节，细纲数据无效。请重新生成细纲。"


def split_chapter_text(text: str) -> Tuple[str, str]:
    """流式过程中的 (思考, 正文)；还没出现正文信标时正文为空。"""
    content_index = text.find(CONTENT_MARKER)
    thought_index = text.find(THOUGHT_MARKER)

    if content_index != -1:
        thought = ""
        if thought_index != -1 and thought_index < content_index:
            thought = text[thought_index + len(THOUGHT_MARKER):content_index].strip()
        return thought, text[content_index + len(CONTENT_MARKER):].lstrip()

    if thought_index != -1:
        return text[thought_index + len(THOUGHT_MARKER):].strip(), ""
    return "", ""


@dataclass
class ParsedChapter:
    thought: str = ""
    content: str = ""
    title: Optional[str] = None
    stopped_after_thought: bool = False


class ChapterStreamParser:
    """把文本块折叠成 思考 / 正文 两段。"""

    def __init__(self):
        self.buffer = ""
        self.thought = ""
        self.content = ""

    def feed(self, chunk: str) -> Tuple[str, str]:
        self.buffer += chunk
        self.thought, self.content = split_chapter_text(self.buffer)
        return self.thought, self.content

    def finalize(self) -> ParsedChapter:
        """
        结束时再解析一次

        - 正文开头若有 "章节标题：xxx" 行，取出作为标题；
        - 有思考无正文，标记为"思考后停止"；
        - 没有任何信标时整段缓冲区都是正文。
        """
        text = self.buffer
        has_content = CONTENT_MARKER in text
        has_thought = THOUGHT_MARKER in text

        if not has_content and not has_thought:
            return ParsedChapter(content=text)

        thought, body = split_chapter_text(text)
        if not has_content:
            return ParsedChapter(thought=thought, stopped_after_thought=True)

        title = None
        match = TITLE_PATTERN.match(body)
        if match:
            title = match.group(1).strip() or None
            body = body[match.end():].lstrip()

        stopped = not body.strip() and bool(thought.strip())
        return ParsedChapter(
            thought=thought,
            content="" if stopped else body,
            title=title,
            stopped_after_thought=stopped,
        )


def parse_outline_entry(outline_entry: str) -> DetailedOutlineAnalysis:
    """从信标包裹的最终细纲中取出剧情点与下一章预告。"""
    try:
        data = extract_marked_json(outline_entry, DETAILED_OUTLINE_START, DETAILED_OUTLINE_END, "chapter writing")
    except StoryAgentError as exc:
        raise StoryAgentError(INVALID_OUTLINE_MESSAGE) from exc
    if not isinstance(data, dict):
        raise StoryAgentError(INVALID_OUTLINE_MESSAGE)
    return DetailedOutlineAnalysis.from_dict(data)


class ChapterWriter:
    """章节正文与微调。"""

    def __init__(self, bridge: Any, options: StoryOptions):
        self.bridge = bridge
        self.options = options

    def write_chapter(
        self,
        story_outline: StoryOutline,
        history_chapters: List[GeneratedChapter],
        chapter_title: str,
        outline_entry: str,
        abort: Optional[AbortSignal] = None,
    ) -> Generator[GeneratedChapter, None, None]:
        """
        流式写一章，逐步产出章节快照，最后一个快照状态为 complete

        :param history_chapters: 作为前情提要的已完成章节
        :param outline_entry: 该章的最终细纲（信标包裹的字符串）
        """
        analysis = parse_outline_entry(outline_entry)
        chapter_id = (history_chapters[-1].id if history_chapters else 0) + 1
        payload: Dict[str, Any] = {
            "outline": story_outline.to_dict(),
            "historyChapters": [c.to_dict() for c in history_chapters],
            "detailedChapterOutline": analysis.to_dict(),
            "options": self.options.to_dict(),
        }

        logger.info("writing chapter %d: %s", chapter_id, chapter_title)
        parser = ChapterStreamParser()
        yield GeneratedChapter(id=chapter_id, title=chapter_title)

        for chunk in self.bridge.open_stream("generateChapter", payload, abort):
            if chunk.get("error"):
                raise StoryAgentError(chunk["error"])
            text = chunk.get("text")
            if not isinstance(text, str):
                continue
            thought, content = parser.feed(text)
            yield GeneratedChapter(id=chapter_id, title=chapter_title, content=content, thought=thought)
        check_abort(abort)

        parsed = parser.finalize()
        chapter = GeneratedChapter(
            id=chapter_id,
            title=parsed.title or chapter_title,
            content=parsed.content,
            thought=parsed.thought,
            status=ChapterStatus.COMPLETE,
        )
        yield chapter
        if parsed.stopped_after_thought:
            logger.error("chapter %d: model stopped after the thought process", chapter_id)
            raise ChapterIncompleteError(chapter)

    def edit_chapter_text(self, original_text: str, instruction: str, abort: Optional[AbortSignal] = None) -> str:
        if not instruction.strip():
            raise StoryAgentError("请输入修改指令。")
        response = self.bridge.call(
            "editChapterText",
            {"originalText": original_text, "instruction": instruction, "options": self.options.to_dict()},
            abort,
        )
        return str(response.get("text") or "")
