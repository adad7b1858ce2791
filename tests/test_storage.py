import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from storage import StorageManager
from utils.text import count_story_words


def test_session_snapshot_round_trip(tmp_path):
    storage = StorageManager(str(tmp_path))
    snapshot = {"gameState": 2, "storyCore": "赛博侦探", "generatedTitles": ["雨夜苏醒"]}

    path = storage.save_session("赛博 侦探", snapshot)
    assert os.path.basename(path) == "session.json"
    assert not os.path.exists(path + ".tmp")
    assert storage.load_session("赛博 侦探") == snapshot
    assert storage.list_sessions() == ["赛博_侦探"]
    assert storage.load_session("不存在") is None


def test_save_chapter_replaces_same_index(tmp_path):
    storage = StorageManager(str(tmp_path))
    storage.save_chapter("novel", 1, "雨夜苏醒", "第一版")
    storage.save_chapter("novel", 1, "雨夜重生", "第二版")
    storage.save_chapter("novel", 2, "失落芯片", "第二章正文")

    assert storage.list_chapters("novel") == ["001_雨夜重生.txt", "002_失落芯片.txt"]


def test_export_full_novel_merges_chapters_in_order(tmp_path):
    storage = StorageManager(str(tmp_path))
    storage.save_chapter("novel", 2, "失落芯片", "芯片不见了。")
    storage.save_chapter("novel", 1, "雨夜苏醒", "他醒来了。")

    path = storage.export_full_novel("novel", novel_title="霓虹下的遗忘")
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    assert text.startswith("《霓虹下的遗忘》")
    assert text.index("他醒来了。") < text.index("芯片不见了。")


def test_export_without_chapters_fails(tmp_path):
    storage = StorageManager(str(tmp_path))
    with pytest.raises(FileNotFoundError):
        storage.export_full_novel("empty")


def test_project_info_counts_story_words(tmp_path):
    storage = StorageManager(str(tmp_path))
    storage.save_chapter("novel", 1, "雨夜", "他在2077年醒来，AI说：hello。")

    info = storage.get_project_info("novel")
    assert info["chapter_count"] == 1
    # 标题行 "第1章 雨夜" 也计入
    assert info["total_words"] == count_story_words("第1章 雨夜") + count_story_words("他在2077年醒来，AI说：hello。")


def test_count_story_words_counts_cjk_words_and_digits():
    assert count_story_words("他在2077年醒来，AI说：hello。") == 12
    assert count_story_words("") == 0
