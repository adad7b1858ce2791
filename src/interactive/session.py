"""
故事会话

INITIAL -> PLANNING -> PLANNING_COMPLETE -> WRITING -> CHAPTER_COMPLETE -> WRITING ...
同一时间只允许一个生成任务；中止或失败时回到任务开始前的状态，
已提交的大纲、章节、细纲不会丢失。
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional

from bridge import BridgeService
from errors import (
    ChapterIncompleteError,
    GenerationAborted,
    MissingConfigurationError,
    SessionBusyError,
    StoryAgentError,
)
from generation import (
    ChapterWriter,
    CreativeToolbox,
    DetailedOutlineGenerator,
    OutlineGenerator,
    OutlineHistory,
    refine_core,
)
from schema.outline import FinalDetailedOutline
from schema.story import CharacterProfile, ChapterStatus, GeneratedChapter, StoryOptions, StoryOutline
from utils.abort import AbortSignal
from utils.text import count_story_words

from .workflow import DetailedOutlineWorkflow

logger = logging.getLogger(__name__)

LOG_LIMIT = 100
CREDENTIALS_MISSING = "API 地址和密钥为必填项。请在“设置”中填写您的 API 凭据。"


class GameState(IntEnum):
    INITIAL = 0
    PLANNING = 1
    PLANNING_COMPLETE = 2
    WRITING = 3
    CHAPTER_COMPLETE = 4


def _settled_state(state: GameState, has_outline: bool, has_chapters: bool) -> GameState:
    """进行中的状态落到最近的已完成状态。"""
    if state == GameState.PLANNING:
        return GameState.PLANNING_COMPLETE if has_outline else GameState.INITIAL
    if state == GameState.WRITING:
        if has_chapters:
            return GameState.CHAPTER_COMPLETE
        return GameState.PLANNING_COMPLETE if has_outline else GameState.INITIAL
    return state


class StorySession:
    """一部小说的创作会话。"""

    def __init__(
        self,
        options: StoryOptions,
        bridge: Optional[Any] = None,
    ):
        self.options = options
        self.bridge = bridge or BridgeService()

        self.game_state = GameState.INITIAL
        self.story_core = ""
        self.story_outline: Optional[StoryOutline] = None
        self.chapters: List[GeneratedChapter] = []
        self.generated_titles: List[str] = []
        self.outline_history = OutlineHistory()
        self.active_outline_title: Optional[str] = None
        self.logs: List[Dict[str, str]] = []
        self.last_error: Optional[str] = None

        self._running: Optional[str] = None
        self._abort: Optional[AbortSignal] = None

    # ==================== 基础设施 ====================

    @property
    def running(self) -> Optional[str]:
        return self._running

    def log(self, message: str, level: str = "info") -> None:
        logger.log(logging.ERROR if level == "error" else logging.INFO, message)
        self.logs.append({
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "level": level,
            "message": message,
        })
        del self.logs[:-LOG_LIMIT]

    def clear_logs(self) -> None:
        self.logs = []
        self.log("日志已清除。")

    def abort(self) -> bool:
        """中止当前任务；没有任务在运行时返回 False。"""
        if self._abort is None:
            return False
        self._abort.abort()
        return True

    @contextmanager
    def _operation(self, name: str) -> Iterator[AbortSignal]:
        if self._running:
            raise SessionBusyError(self._running)
        self._running = name
        self._abort = AbortSignal()
        self.last_error = None
        try:
            yield self._abort
        finally:
            self._running = None
            self._abort = None

    def _capture(self) -> Dict[str, Any]:
        return {
            "game_state": self.game_state,
            "story_core": self.story_core,
            "story_outline": self.story_outline,
            "chapters": list(self.chapters),
            "generated_titles": list(self.generated_titles),
            "outline_history": OutlineHistory(self.outline_history.to_dict()),
            "active_outline_title": self.active_outline_title,
        }

    def _restore(self, captured: Dict[str, Any]) -> None:
        for key, value in captured.items():
            setattr(self, key, value)

    def _fail(self, exc: StoryAgentError, prefix: str = "") -> None:
        if isinstance(exc, GenerationAborted):
            self.log("操作已中止。")
            return
        self.last_error = f"{prefix}{exc}"
        self.log(self.last_error, "error")

    def _require_credentials(self) -> None:
        if not self.options.api_base_url or not self.options.api_key:
            raise MissingConfigurationError(CREDENTIALS_MISSING)

    def _require_outline(self) -> StoryOutline:
        if self.story_outline is None:
            raise StoryAgentError("还没有创作计划，请先启动规划。")
        return self.story_outline

    # ==================== 规划 ====================

    def start_planning(self, story_core: Optional[str] = None) -> StoryOutline:
        """研究与规划，成功后自动生成第一批章节标题。"""
        core = story_core if story_core is not None else self.story_core
        if not core.strip():
            raise StoryAgentError("请输入故事核心。")
        self._require_credentials()

        with self._operation("planning") as abort:
            captured = self._capture()
            self.story_core = core
            self.game_state = GameState.PLANNING
            self.log(f"启动AI代理，核心创意: \"{core[:50]}...\"")
            try:
                outline = OutlineGenerator(self.bridge, self.options).plan_story(core, abort)
            except StoryAgentError as exc:
                self._restore(captured)
                self._fail(exc)
                raise

            self.story_outline = outline
            self.chapters = []
            self.generated_titles = []
            self.outline_history = OutlineHistory()
            self.active_outline_title = None
            self.game_state = GameState.PLANNING_COMPLETE
            self.log("创作计划生成成功。", "success")

            self.log("开始自动生成初始章节标题...")
            try:
                self._extend_titles(abort)
            except StoryAgentError as exc:
                self._fail(exc, "自动生成初始章节标题失败: ")
        return outline

    def refine_plan(self, instruction: str) -> StoryOutline:
        if not instruction.strip() or not self.story_core:
            raise StoryAgentError("请输入优化指令。")
        return self.start_planning(refine_core(self.story_core, instruction))

    def reset_plan(self) -> None:
        """清除大纲、章节和细纲，保留故事核心和设置。"""
        if self._running:
            raise SessionBusyError(self._running)
        self.story_outline = None
        self.chapters = []
        self.generated_titles = []
        self.outline_history = OutlineHistory()
        self.active_outline_title = None
        self.last_error = None
        self.game_state = GameState.INITIAL
        self.log("项目已重置，保留核心创意和设置。")

    def _extend_titles(self, abort: AbortSignal) -> List[str]:
        titles = OutlineGenerator(self.bridge, self.options).generate_chapter_titles(
            self._require_outline(), self.chapters, self.generated_titles, abort,
        )
        self.generated_titles.extend(titles)
        self.log(f"已生成 {len(titles)} 个章节标题。", "success")
        return titles

    def generate_titles(self) -> List[str]:
        self._require_outline()
        with self._operation("titles") as abort:
            self.active_outline_title = None
            try:
                return self._extend_titles(abort)
            except StoryAgentError as exc:
                self._fail(exc)
                raise

    # ==================== 细纲 ====================

    def get_detailed_outline(self, title: str) -> Optional[FinalDetailedOutline]:
        return self.outline_history.get(title)

    def generate_detailed_outline(
        self,
        title: str,
        user_input: str = "",
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> FinalDetailedOutline:
        """为某章执行一次 生成 -> 评估 循环，产出下一个版本。"""
        story_outline = self._require_outline()
        if not title.strip():
            raise StoryAgentError("请选择一个章节标题。")

        def report(message: str) -> None:
            self.log(f"《{title}》{message}")
            if on_progress is not None:
                on_progress(message)

        with self._operation("outline") as abort:
            self.active_outline_title = title
            workflow = DetailedOutlineWorkflow(
                DetailedOutlineGenerator(self.bridge, self.options),
                self.outline_history,
                on_progress=report,
            )
            try:
                return workflow.run(story_outline, self.chapters, title, user_input=user_input, abort=abort)
            except StoryAgentError as exc:
                self._fail(exc)
                raise

    def discard_detailed_outline(self, title: str) -> None:
        self.outline_history.discard(title)
        self.log(f"已丢弃章节“{title}”的细纲。")

    # ==================== 正文 ====================

    def next_chapter_title(self) -> Optional[str]:
        index = len(self.chapters)
        if index < len(self.generated_titles):
            return self.generated_titles[index]
        return None

    def write_chapter(
        self,
        title: Optional[str] = None,
        explicit_history: Optional[List[GeneratedChapter]] = None,
    ) -> Generator[GeneratedChapter, None, None]:
        """流式写作一章，逐步产出章节快照。"""
        story_outline = self._require_outline()
        title = title or self.next_chapter_title()
        if not title:
            raise StoryAgentError("没有可写的章节标题，请先生成章节标题。")
        outline_entry = self.outline_history.raw(title)
        if outline_entry is None:
            raise StoryAgentError(f"章节“{title}”还没有细纲，请先生成细纲。")

        with self._operation("writing") as abort:
            captured = self._capture()
            history_chapters = list(self.chapters if explicit_history is None else explicit_history)
            self.game_state = GameState.WRITING
            self.log(f"开始撰写章节: \"{title}\"")
            writer = ChapterWriter(self.bridge, self.options)
            try:
                for snapshot in writer.write_chapter(story_outline, history_chapters, title, outline_entry, abort):
                    self.chapters = history_chapters + [snapshot]
                    yield snapshot
            except ChapterIncompleteError as exc:
                self.chapters = history_chapters + [exc.chapter]
                self.game_state = GameState.CHAPTER_COMPLETE
                self.last_error = str(exc)
                self.log("章节生成失败: AI仅生成了思考过程。", "error")
                raise
            except StoryAgentError as exc:
                self._restore(captured)
                self._fail(exc)
                raise
            except Exception as exc:
                self._restore(captured)
                self._fail(StoryAgentError(f"章节生成失败: {exc}"))
                raise
            except BaseException:
                # GeneratorExit / KeyboardInterrupt：中途放弃，不记录错误
                self._restore(captured)
                raise

            self.game_state = GameState.CHAPTER_COMPLETE
            self.log(f"章节 \"{self.chapters[-1].title}\" 创作完成。", "success")

    def regenerate_last_chapter(self) -> Generator[GeneratedChapter, None, None]:
        if not self.chapters:
            raise StoryAgentError("还没有可重新生成的章节。")
        index = len(self.chapters) - 1
        if index >= len(self.generated_titles) or self.generated_titles[index] not in self.outline_history:
            raise StoryAgentError(f"无法重新生成第 {index + 1} 章，缺少对应的细纲。请先在“细纲”模块中生成。")
        return self.write_chapter(self.generated_titles[index], explicit_history=self.chapters[:-1])

    def edit_last_chapter(self, instruction: str) -> GeneratedChapter:
        """按指令局部修改最新章节。"""
        if not self.chapters or self.chapters[-1].status != ChapterStatus.COMPLETE:
            raise StoryAgentError("没有可修改的已完成章节。")
        last = self.chapters[-1]

        with self._operation("editing") as abort:
            self.log(f"开始微调最新章节... 指令: {instruction}")
            try:
                content = ChapterWriter(self.bridge, self.options).edit_chapter_text(last.content, instruction, abort)
            except StoryAgentError as exc:
                self._fail(exc, "文本修改失败: ")
                raise
            edited = GeneratedChapter(
                id=last.id, title=last.title, content=content, thought=last.thought, status=last.status,
            )
            self.chapters = self.chapters[:-1] + [edited]
            self.log("文本微调成功。", "success")
            return edited

    # ==================== 工具箱 ====================

    def _toolbox_call(self, name: str, call: Callable[[CreativeToolbox, AbortSignal], Any]) -> Any:
        with self._operation(name) as abort:
            try:
                return call(CreativeToolbox(self.bridge, self.options), abort)
            except StoryAgentError as exc:
                self._fail(exc)
                raise

    def _require_character(self, name: str) -> CharacterProfile:
        character = self._require_outline().find_character(name)
        if character is None:
            raise StoryAgentError(f"找不到角色: {name}")
        return character

    def worldbook_suggestions(self) -> str:
        outline = self._require_outline()
        return self._toolbox_call("worldbook", lambda box, abort: box.worldbook_suggestions(outline, abort))

    def character_arc_suggestions(self, name: str) -> str:
        outline = self._require_outline()
        character = self._require_character(name)
        return self._toolbox_call(
            "character-arc", lambda box, abort: box.character_arc_suggestions(character, outline, abort),
        )

    def narrative_toolbox(self, title: str) -> str:
        outline = self._require_outline()
        final = self.outline_history.get(title)
        if final is None:
            raise StoryAgentError("无法使用工具，需要先生成一个有效的细纲。")
        return self._toolbox_call(
            "toolbox", lambda box, abort: box.narrative_toolbox(final.analysis, outline, abort),
        )

    def create_character(self, character_prompt: str) -> CharacterProfile:
        """生成新角色并加入角色档案。"""
        outline = self._require_outline()
        character = self._toolbox_call(
            "character", lambda box, abort: box.new_character_profile(outline, character_prompt, abort),
        )
        outline.characters.append(character)
        self.log(f"新角色“{character.name}”已加入角色档案。", "success")
        return character

    def character_interaction(self, name1: str, name2: str) -> Generator[str, None, None]:
        outline = self._require_outline()
        char1 = self._require_character(name1)
        char2 = self._require_character(name2)
        with self._operation("interaction") as abort:
            try:
                yield from CreativeToolbox(self.bridge, self.options).character_interaction(
                    char1, char2, outline, abort,
                )
            except StoryAgentError as exc:
                self._fail(exc)
                raise

    # ==================== 状态与快照 ====================

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.game_state.name,
            "title": self.story_outline.title if self.story_outline else None,
            "chapter_count": len(self.chapters),
            "total_words": sum(count_story_words(c.content) for c in self.chapters),
            "title_count": len(self.generated_titles),
            "max_chapters": self.options.max_chapters,
            "next_title": self.next_chapter_title(),
            "outlined_titles": self.outline_history.titles(),
            "running": self._running,
            "last_error": self.last_error,
        }

    def to_dict(self) -> Dict[str, Any]:
        """会话快照；不包含 API 密钥。"""
        return {
            "gameState": int(self.game_state),
            "storyOutline": self.story_outline.to_dict() if self.story_outline else None,
            "chapters": [c.to_dict() for c in self.chapters],
            "storyOptions": self.options.to_dict(include_secret=False),
            "storyCore": self.story_core,
            "generatedTitles": list(self.generated_titles),
            "outlineHistory": self.outline_history.to_dict(),
            "activeOutlineTitle": self.active_outline_title,
            "logs": list(self.logs),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        options: Optional[StoryOptions] = None,
        bridge: Optional[Any] = None,
    ) -> 'StorySession':
        """
        从快照恢复

        快照里的选项优先；API 凭据和未选择的模型由 options 补齐。
        进行中的状态与未完成的章节都会被落到最近的已完成状态。
        """
        restored = StoryOptions.from_dict(data.get("storyOptions"))
        if options is not None:
            restored.api_key = options.api_key
            restored.api_base_url = restored.api_base_url or options.api_base_url
            restored.search_model = restored.search_model or options.search_model
            restored.planning_model = restored.planning_model or options.planning_model
            restored.writing_model = restored.writing_model or options.writing_model

        session = cls(restored, bridge=bridge)
        outline = data.get("storyOutline")
        session.story_outline = StoryOutline.from_dict(outline) if isinstance(outline, dict) else None
        session.chapters = [
            GeneratedChapter.from_dict(c)
            for c in data.get("chapters") or []
            if isinstance(c, dict) and c.get("status", "complete") == ChapterStatus.COMPLETE.value
        ]
        session.story_core = str(data.get("storyCore") or "")
        session.generated_titles = [str(t) for t in data.get("generatedTitles") or []]
        session.outline_history = OutlineHistory.from_dict(data.get("outlineHistory"))
        session.active_outline_title = data.get("activeOutlineTitle")
        session.logs = [entry for entry in data.get("logs") or [] if isinstance(entry, dict)][-LOG_LIMIT:]

        try:
            state = GameState(int(data.get("gameState", 0)))
        except (TypeError, ValueError):
            state = GameState.INITIAL
        session.game_state = _settled_state(state, session.story_outline is not None, bool(session.chapters))
        return session
