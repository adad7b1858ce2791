#!/usr/bin/env python3
"""
Story Agent CLI - 命令行入口

每个子命令都会读取并回写项目的会话快照。
"""
import argparse
import os
import shutil
import subprocess
import sys

# 添加 src 到路径
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bridge import BridgeService
from config import config, configure_logging
from errors import ChapterIncompleteError, GenerationAborted, StoryAgentError
from interactive import StorySession
from storage import StorageManager


def _open_session(args):
    storage = StorageManager(args.output)
    snapshot = storage.load_session(args.project)
    options = config.to_options()
    if snapshot is None:
        return StorySession(options), storage
    return StorySession.from_dict(snapshot, options=options), storage


def _resolve_title(session: StorySession, value: str) -> str:
    """章节可以用序号（从 1 开始）或完整标题指定。"""
    if value.isdigit():
        index = int(value) - 1
        if not 0 <= index < len(session.generated_titles):
            raise StoryAgentError(f"章节序号超出范围: {value}（共 {len(session.generated_titles)} 个标题）")
        return session.generated_titles[index]
    return value


def _print_titles(session: StorySession):
    for i, title in enumerate(session.generated_titles, 1):
        marks = []
        if title in session.outline_history:
            marks.append("细纲")
        if i <= len(session.chapters):
            marks.append("已写")
        suffix = f"  [{', '.join(marks)}]" if marks else ""
        print(f"  {i:>3}. {title}{suffix}")


def cmd_plan(args):
    """研究与规划"""
    session, storage = _open_session(args)
    try:
        if args.refine:
            print("🔁 按优化指令重新规划中...")
            outline = session.refine_plan(args.refine)
        else:
            print("📝 研究与规划中...")
            outline = session.start_planning(args.core)
    finally:
        storage.save_session(args.project, session.to_dict())

    print(f"\n《{outline.title}》\n")
    print(outline.plot_synopsis)
    print(f"\n👥 角色: {', '.join(c.name for c in outline.characters)}")
    print(f"🌍 世界书分类: {', '.join(c.name for c in outline.world_categories)}")
    if session.last_error:
        print(f"\n⚠️ {session.last_error}")
    if session.generated_titles:
        print("\n章节标题:")
        _print_titles(session)


def cmd_titles(args):
    """生成下一批章节标题"""
    session, storage = _open_session(args)
    try:
        titles = session.generate_titles()
    finally:
        storage.save_session(args.project, session.to_dict())
    print(f"✅ 新增 {len(titles)} 个章节标题")
    _print_titles(session)


def cmd_outline(args):
    """生成 / 优化某章细纲"""
    session, storage = _open_session(args)
    title = _resolve_title(session, args.chapter)
    try:
        if args.discard:
            session.discard_detailed_outline(title)
            print(f"🗑️ 已丢弃《{title}》的细纲")
            return
        final = session.generate_detailed_outline(
            title,
            user_input=args.instruction or "",
            on_progress=lambda message: print(f"⏳ {message}"),
        )
    finally:
        storage.save_session(args.project, session.to_dict())

    entry = final.latest_entry
    print(f"\n✅ 《{title}》细纲 v{final.final_version}，共 {len(final.analysis.plot_points)} 个剧情点")
    if entry is not None:
        print(f"📊 综合评分: {entry.critique.overall_score:.1f}")
        for item in entry.critique.scoring_breakdown:
            print(f"  - {item.dimension}: {item.score:.1f}  {item.reason}")
        if entry.critique.improvement_suggestions:
            print("\n💡 优化建议:")
            for suggestion in entry.critique.improvement_suggestions:
                print(f"  - {suggestion.area}: {suggestion.suggestion}")


def cmd_write(args):
    """流式写作下一章（或重新生成最新一章）"""
    session, storage = _open_session(args)
    chapter = None
    stream = None
    try:
        if args.regen:
            stream = session.regenerate_last_chapter()
        else:
            stream = session.write_chapter(_resolve_title(session, args.chapter) if args.chapter else None)

        shown = ""
        thinking_shown = False
        for chapter in stream:
            if chapter.thought and not thinking_shown and not chapter.content:
                print("🤔 思考中...", flush=True)
                thinking_shown = True
            if chapter.content.startswith(shown):
                print(chapter.content[len(shown):], end="", flush=True)
                shown = chapter.content
    except ChapterIncompleteError as exc:
        print(f"\n❌ {exc}")
    except KeyboardInterrupt:
        # 关闭生成器，会话回到写作前的状态后再保存
        if stream is not None:
            stream.close()
        raise GenerationAborted("已中止，本次生成未保存。")
    finally:
        storage.save_session(args.project, session.to_dict())

    if chapter is not None and chapter.content and session.chapters and session.chapters[-1] is chapter:
        path = storage.save_chapter(args.project, chapter.id, chapter.title, chapter.content)
        print(f"\n\n✅ 第{chapter.id}章《{chapter.title}》已保存: {path}")


def cmd_edit(args):
    """按指令微调最新章节"""
    session, storage = _open_session(args)
    try:
        chapter = session.edit_last_chapter(args.instruction)
    finally:
        storage.save_session(args.project, session.to_dict())
    path = storage.save_chapter(args.project, chapter.id, chapter.title, chapter.content)
    print(chapter.content)
    print(f"\n✅ 已保存: {path}")


def cmd_status(args):
    """查看项目状态"""
    session, _ = _open_session(args)
    info = session.status()

    print(f"📚 项目: {args.project}  《{info['title'] or '未规划'}》")
    print(f"🧭 状态: {info['state']}")
    print(f"📖 章节数: {info['chapter_count']} / 标题 {info['title_count']} (上限 {info['max_chapters']})")
    print(f"📝 总字数: {info['total_words']}")
    if info["next_title"]:
        print(f"➡️ 下一章: {info['next_title']}")
    if info["last_error"]:
        print(f"⚠️ 最近错误: {info['last_error']}")
    if session.generated_titles:
        print("\n章节标题:")
        _print_titles(session)
    if args.logs:
        print("\n日志:")
        for entry in session.logs[-args.logs:]:
            print(f"  [{entry.get('timestamp')}] {entry.get('level')}: {entry.get('message')}")


def cmd_models(args):
    """列出上游可用模型"""
    for model_id in BridgeService().list_models(config.to_options()):
        print(model_id)


def cmd_export(args):
    """导出完整小说"""
    session, storage = _open_session(args)
    title = session.story_outline.title if session.story_outline else None
    path = storage.export_full_novel(args.project, novel_title=title)
    print(f"✅ 小说已导出: {path}")


def cmd_serve(args):
    """启动 HTTP Bridge（POST /api）。"""
    from bridge.app import create_app

    app = create_app()
    print(f"🌐 Bridge 监听 http://{args.host}:{args.port}/api")
    app.run(host=args.host, port=args.port, debug=config.debug)


def cmd_web(args):
    """启动 Chainlit Web 交互模式。"""
    chainlit_bin = shutil.which("chainlit")
    if chainlit_bin is None:
        print("❌ 未检测到 chainlit 命令。请先安装：pip install chainlit")
        return

    app_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "chainlit_app.py")
    command = [chainlit_bin, "run", app_path]
    if args.watch:
        command.append("-w")
    if args.host:
        command.extend(["--host", args.host])
    if args.port:
        command.extend(["--port", str(args.port)])

    print("🌐 启动 Web 交互模式中...")
    subprocess.run(command, check=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Story Agent - AI 长篇小说创作工作台",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 研究与规划（自动生成第一批章节标题）
  python cli.py plan "赛博侦探" "一个失去记忆的赛博朋克侦探"

  # 为第 1 章生成细纲，再优化一轮
  python cli.py outline "赛博侦探" 1
  python cli.py outline "赛博侦探" 1 --instruction "加强反转"

  # 写下一章 / 重新生成最新一章
  python cli.py write "赛博侦探"
  python cli.py write "赛博侦探" --regen
""",
    )
    parser.add_argument("-o", "--output", default=config.output_dir, help="输出目录")
    parser.add_argument("--log-level", default=None, help="日志级别")

    subparsers = parser.add_subparsers(dest="command")

    p_plan = subparsers.add_parser("plan", help="研究与规划")
    p_plan.add_argument("project", help="项目名称")
    p_plan.add_argument("core", nargs="?", default=None, help="故事核心（省略时沿用已保存的核心）")
    p_plan.add_argument("--refine", help="优化指令，追加到故事核心后重新规划")
    p_plan.set_defaults(func=cmd_plan)

    p_titles = subparsers.add_parser("titles", help="生成下一批章节标题")
    p_titles.add_argument("project", help="项目名称")
    p_titles.set_defaults(func=cmd_titles)

    p_outline = subparsers.add_parser("outline", help="生成或优化章节细纲")
    p_outline.add_argument("project", help="项目名称")
    p_outline.add_argument("chapter", help="章节序号或标题")
    p_outline.add_argument("--instruction", help="额外的优化指令")
    p_outline.add_argument("--discard", action="store_true", help="丢弃该章已有细纲")
    p_outline.set_defaults(func=cmd_outline)

    p_write = subparsers.add_parser("write", help="流式写作章节")
    p_write.add_argument("project", help="项目名称")
    p_write.add_argument("chapter", nargs="?", default=None, help="章节序号或标题（默认下一章）")
    p_write.add_argument("--regen", action="store_true", help="重新生成最新一章")
    p_write.set_defaults(func=cmd_write)

    p_edit = subparsers.add_parser("edit", help="按指令微调最新章节")
    p_edit.add_argument("project", help="项目名称")
    p_edit.add_argument("instruction", help="修改指令")
    p_edit.set_defaults(func=cmd_edit)

    p_status = subparsers.add_parser("status", help="查看项目状态")
    p_status.add_argument("project", help="项目名称")
    p_status.add_argument("--logs", type=int, default=0, help="显示最近 N 条日志")
    p_status.set_defaults(func=cmd_status)

    p_models = subparsers.add_parser("models", help="列出可用模型")
    p_models.set_defaults(func=cmd_models)

    p_export = subparsers.add_parser("export", help="导出完整小说")
    p_export.add_argument("project", help="项目名称")
    p_export.set_defaults(func=cmd_export)

    p_serve = subparsers.add_parser("serve", help="启动 HTTP Bridge")
    p_serve.add_argument("--host", default=config.bridge_host, help="监听地址")
    p_serve.add_argument("--port", type=int, default=config.bridge_port, help="监听端口")
    p_serve.set_defaults(func=cmd_serve)

    p_web = subparsers.add_parser("web", help="启动 Chainlit Web 交互模式")
    p_web.add_argument("--host", default="0.0.0.0", help="监听地址")
    p_web.add_argument("--port", type=int, default=8000, help="监听端口")
    p_web.add_argument("-w", "--watch", action="store_true", help="源码变更自动重载")
    p_web.set_defaults(func=cmd_web)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    try:
        args.func(args)
    except GenerationAborted as exc:
        print(f"\n⏹️ {exc}")
        return 1
    except (StoryAgentError, FileNotFoundError) as exc:
        print(f"\n❌ {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
