"""Chainlit web entrypoint for Story Agent."""

from __future__ import annotations

import asyncio
from typing import Any, Iterator, Optional, Tuple

import chainlit as cl

from config import config, configure_logging
from errors import ChapterIncompleteError, GenerationAborted, StoryAgentError
from interactive import StorySession
from storage import StorageManager

configure_logging()

_DONE = object()

HELP_TEXT = """可用命令：
/new <故事核心>            研究与规划（自动生成第一批章节标题）
/refine <优化指令>         追加指令后重新规划
/titles                    生成下一批章节标题
/outline <标题或序号> [| 指令]  生成或优化章节细纲
/write [标题或序号]        流式写作下一章
/regen                     重新生成最新一章
/edit <指令>               微调最新章节
/world                     世界观深化建议
/arc <角色名>              角色弧光建议
/toolbox <标题或序号>      叙事工具箱建议
/character <角色概念>      生成新角色并加入档案
/scene <角色A> <角色B>     角色互动场景
/models                    列出可用模型
/status                    查看会话状态
/help                      查看帮助
点击停止按钮可中止当前任务。"""


def _parse_command(text: str) -> Tuple[str, str]:
    raw = text.strip()
    if not raw.startswith("/"):
        return "", ""
    parts = raw.split(maxsplit=1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""
    return cmd, arg


def _session() -> StorySession:
    session = cl.user_session.get("story_session")
    if session is None:
        session = StorySession(config.to_options())
        cl.user_session.set("story_session", session)
    return session


def _storage() -> StorageManager:
    storage = cl.user_session.get("storage")
    if storage is None:
        storage = StorageManager(config.output_dir)
        cl.user_session.set("storage", storage)
    return storage


def _persist(session: StorySession) -> None:
    if session.story_outline is None:
        return
    _storage().save_session(session.story_outline.title, session.to_dict())


def _resolve_title(session: StorySession, value: str) -> Optional[str]:
    value = value.strip()
    if value.isdigit():
        index = int(value) - 1
        if 0 <= index < len(session.generated_titles):
            return session.generated_titles[index]
        return None
    return value or None


def _preview(text: str, limit: int = 1500) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


async def _iterate(stream: Iterator[Any]):
    """在工作线程里逐个拉取同步生成器的结果。"""
    while True:
        item = await asyncio.to_thread(next, stream, _DONE)
        if item is _DONE:
            return
        yield item


def _format_titles(session: StorySession) -> str:
    lines = []
    for i, title in enumerate(session.generated_titles, 1):
        mark = " ✅" if title in session.outline_history else ""
        lines.append(f"{i}. {title}{mark}")
    return "\n".join(lines) or "暂无章节标题"


async def _run_plan(session: StorySession, core: str, refine: bool = False) -> None:
    await cl.Message(content="📝 正在研究与规划...").send()
    if refine:
        outline = await asyncio.to_thread(session.refine_plan, core)
    else:
        outline = await asyncio.to_thread(session.start_planning, core)
    characters = "、".join(c.name for c in outline.characters)
    content = (
        f"✅ 《{outline.title}》\n\n{_preview(outline.plot_synopsis)}\n\n"
        f"👥 角色：{characters}\n\n章节标题：\n{_format_titles(session)}"
    )
    if session.last_error:
        content += f"\n\n⚠️ {session.last_error}"
    await cl.Message(content=content).send()


async def _run_outline(session: StorySession, arg: str) -> None:
    target, _, instruction = arg.partition("|")
    title = _resolve_title(session, target)
    if not title:
        await cl.Message(content="❌ 用法：/outline <标题或序号> [| 优化指令]").send()
        return

    await cl.Message(content=f"⏳ 《{title}》细纲生成中...").send()
    final = await asyncio.to_thread(session.generate_detailed_outline, title, instruction.strip())

    entry = final.latest_entry
    lines = [f"✅ 《{title}》细纲 v{final.final_version}，共 {len(final.analysis.plot_points)} 个剧情点"]
    for i, point in enumerate(final.analysis.plot_points, 1):
        lines.append(f"{i}. {point.get('summary', '')}")
    if entry is not None:
        lines.append(f"\n📊 综合评分：{entry.critique.overall_score:.1f}")
        for suggestion in entry.critique.improvement_suggestions:
            lines.append(f"- {suggestion.area}：{suggestion.suggestion}")
    await cl.Message(content="\n".join(lines)).send()


async def _run_write(session: StorySession, stream: Iterator[Any]) -> None:
    reply = cl.Message(content="")
    await reply.send()
    shown = ""
    chapter = None
    try:
        async for chapter in _iterate(stream):
            if chapter.content.startswith(shown) and len(chapter.content) > len(shown):
                await reply.stream_token(chapter.content[len(shown):])
                shown = chapter.content
    except ChapterIncompleteError as exc:
        await cl.Message(content=f"❌ {exc}").send()
        return
    finally:
        _persist(session)

    if chapter is not None:
        reply.content = chapter.content
        await reply.update()
        if chapter.thought:
            await cl.Message(content=f"🤔 写作思考：\n{_preview(chapter.thought, 1200)}").send()
        await cl.Message(content=f"✅ 第{chapter.id}章《{chapter.title}》创作完成").send()


async def _run_scene(session: StorySession, arg: str) -> None:
    names = arg.split()
    if len(names) != 2:
        await cl.Message(content="❌ 用法：/scene <角色A> <角色B>").send()
        return
    reply = cl.Message(content="")
    await reply.send()
    async for token in _iterate(session.character_interaction(names[0], names[1])):
        await reply.stream_token(token)
    await reply.update()


async def _dispatch(session: StorySession, cmd: str, arg: str) -> None:
    if cmd in {"/help", "/"}:
        await cl.Message(content=HELP_TEXT).send()
    elif cmd == "/new":
        if not arg:
            await cl.Message(content="❌ 用法：/new <故事核心>").send()
            return
        await _run_plan(session, arg)
    elif cmd == "/refine":
        await _run_plan(session, arg, refine=True)
    elif cmd == "/titles":
        titles = await asyncio.to_thread(session.generate_titles)
        await cl.Message(content=f"✅ 新增 {len(titles)} 个章节标题\n\n{_format_titles(session)}").send()
    elif cmd == "/outline":
        await _run_outline(session, arg)
    elif cmd == "/write":
        title = _resolve_title(session, arg) if arg else None
        await _run_write(session, session.write_chapter(title))
    elif cmd == "/regen":
        await _run_write(session, session.regenerate_last_chapter())
    elif cmd == "/edit":
        chapter = await asyncio.to_thread(session.edit_last_chapter, arg)
        await cl.Message(content=f"✅ 文本微调成功\n\n{_preview(chapter.content, 3000)}").send()
    elif cmd == "/world":
        await cl.Message(content=await asyncio.to_thread(session.worldbook_suggestions)).send()
    elif cmd == "/arc":
        await cl.Message(content=await asyncio.to_thread(session.character_arc_suggestions, arg)).send()
    elif cmd == "/toolbox":
        title = _resolve_title(session, arg) or ""
        await cl.Message(content=await asyncio.to_thread(session.narrative_toolbox, title)).send()
    elif cmd == "/character":
        character = await asyncio.to_thread(session.create_character, arg)
        await cl.Message(content=f"✅ 新角色：{character.name}（{character.role}）\n{character.core_concept}").send()
    elif cmd == "/scene":
        await _run_scene(session, arg)
    elif cmd == "/models":
        models = await asyncio.to_thread(session.bridge.list_models, session.options)
        await cl.Message(content="\n".join(models) or "没有可用模型").send()
    elif cmd == "/status":
        info = session.status()
        await cl.Message(
            content=(
                f"📚 《{info['title'] or '未规划'}》 状态：{info['state']}\n"
                f"📖 章节数：{info['chapter_count']} / 标题 {info['title_count']}（上限 {info['max_chapters']}）\n"
                f"📝 总字数：{info['total_words']}\n"
                f"➡️ 下一章：{info['next_title'] or '无'}\n\n{_format_titles(session)}"
            )
        ).send()
    else:
        await cl.Message(content=f"❓ 未知命令: {cmd}，输入 /help 查看帮助。").send()
        return
    _persist(session)


@cl.on_chat_start
async def on_chat_start() -> None:
    cl.user_session.set("story_session", StorySession(config.to_options()))
    _storage()
    await cl.Message(
        content=(
            "Story Agent 已启动。\n"
            "输入 `/new 故事核心` 开始规划，输入 `/help` 查看全部命令。"
        )
    ).send()


@cl.on_stop
async def on_stop() -> None:
    session = cl.user_session.get("story_session")
    if session is not None and session.abort():
        await cl.Message(content="⏹️ 正在中止当前任务...").send()


@cl.on_message
async def on_message(message: cl.Message) -> None:
    cmd, arg = _parse_command(message.content)
    if not cmd:
        await cl.Message(content="请输入命令，例如 `/new 故事核心`。输入 `/help` 查看帮助。").send()
        return

    session = _session()
    try:
        await _dispatch(session, cmd, arg)
    except GenerationAborted:
        await cl.Message(content="⏹️ 操作已中止。").send()
    except StoryAgentError as exc:
        await cl.Message(content=f"❌ {exc}").send()
