"""
存储管理器

会话快照以 JSON 保存；已完成章节同时导出为 txt，便于合并成全文。
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.text import count_story_words

logger = logging.getLogger(__name__)

SESSION_FILENAME = "session.json"


class StorageManager:
    """存储管理器 - 管理会话快照与章节文本的本地存储"""

    def __init__(self, base_dir: str = "./output"):
        """
        初始化存储管理器
        :param base_dir: 基础输出目录
        """
        self.base_dir = base_dir
        self._ensure_dir(base_dir)

    def _ensure_dir(self, path: str):
        if not os.path.exists(path):
            os.makedirs(path)

    @staticmethod
    def safe_name(name: str) -> str:
        # 清理项目名称，移除非法字符
        safe = "".join(c for c in name if c.isalnum() or c in (' ', '_', '-')).strip()
        return safe.replace(' ', '_') or "unnamed_project"

    def get_project_dir(self, project_name: str) -> str:
        project_dir = os.path.join(self.base_dir, self.safe_name(project_name))
        self._ensure_dir(project_dir)
        return project_dir

    # ==================== 会话快照 ====================

    def save_session(self, project_name: str, snapshot: Dict[str, Any]) -> str:
        """
        保存会话快照
        :param project_name: 项目名称
        :param snapshot: StorySession.to_dict() 的结果
        :return: 文件路径
        """
        filepath = os.path.join(self.get_project_dir(project_name), SESSION_FILENAME)
        tmp_path = filepath + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, filepath)
        logger.debug("session saved: %s", filepath)
        return filepath

    def load_session(self, project_name: str) -> Optional[Dict[str, Any]]:
        """加载会话快照，不存在则返回 None"""
        filepath = os.path.join(self.base_dir, self.safe_name(project_name), SESSION_FILENAME)
        if not os.path.exists(filepath):
            return None
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)

    def list_sessions(self) -> List[str]:
        if not os.path.exists(self.base_dir):
            return []
        return sorted(
            d for d in os.listdir(self.base_dir)
            if os.path.exists(os.path.join(self.base_dir, d, SESSION_FILENAME))
        )

    # ==================== 章节文本 ====================

    def save_chapter(self, project_name: str, chapter_index: int, title: str, content: str) -> str:
        """
        保存章节内容为 txt 文件
        :return: 保存的文件路径
        """
        chapters_dir = os.path.join(self.get_project_dir(project_name), "chapters")
        self._ensure_dir(chapters_dir)

        # 文件名格式：001_章节标题.txt
        safe_title = "".join(c for c in title if c.isalnum() or c in (' ', '_', '-', '，', '。')).strip()
        filepath = os.path.join(chapters_dir, f"{chapter_index:03d}_{safe_title or '未命名'}.txt")

        # 同一序号只保留一份（重新生成会换标题）
        for existing in self.list_chapters(project_name):
            if existing.startswith(f"{chapter_index:03d}_"):
                os.remove(os.path.join(chapters_dir, existing))

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(f"第{chapter_index}章 {title}\n")
            f.write("=" * 40 + "\n\n")
            f.write(content)
        return filepath

    def list_chapters(self, project_name: str) -> List[str]:
        chapters_dir = os.path.join(self.base_dir, self.safe_name(project_name), "chapters")
        if not os.path.exists(chapters_dir):
            return []
        return sorted(f for f in os.listdir(chapters_dir) if f.endswith('.txt'))

    def export_full_novel(self, project_name: str, novel_title: Optional[str] = None) -> str:
        """
        导出完整小说（合并所有章节）
        :return: 导出文件路径
        """
        project_dir = self.get_project_dir(project_name)
        chapter_files = self.list_chapters(project_name)
        if not chapter_files:
            raise FileNotFoundError(f"没有可导出的章节: {project_name}")

        title = novel_title or project_name
        parts = [f"《{title}》\n\n", "=" * 50 + "\n\n"]
        for chapter_file in chapter_files:
            with open(os.path.join(project_dir, "chapters", chapter_file), 'r', encoding='utf-8') as f:
                parts.append(f.read())
            parts.append("\n\n" + "-" * 40 + "\n\n")

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        export_path = os.path.join(project_dir, f"{self.safe_name(title)}_完整版_{timestamp}.txt")
        with open(export_path, 'w', encoding='utf-8') as f:
            f.write("".join(parts))
        return export_path

    def get_project_info(self, project_name: str) -> Dict[str, Any]:
        project_dir = self.get_project_dir(project_name)
        chapters = self.list_chapters(project_name)

        total_words = 0
        for chapter_file in chapters:
            with open(os.path.join(project_dir, "chapters", chapter_file), 'r', encoding='utf-8') as f:
                total_words += count_story_words(f.read())

        return {
            "project_name": project_name,
            "project_dir": project_dir,
            "chapter_count": len(chapters),
            "total_words": total_words,
            "chapters": chapters,
        }
