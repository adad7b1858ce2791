"""
Story Agent 数据模型 - 故事结构

定义故事项目中的核心实体：创作选项、角色、世界书、创作简报、章节。
序列化时沿用前端约定的 camelCase 字段名。
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_FORBIDDEN_WORDS = [
    '冰', '指尖', '尖', '利', '钉', '凉', '惨白', '僵', '颤', '眸', '眼底', '空气',
    '仿佛', '似乎', '呼吸', '心跳', '肌肉', '绷紧', '深邃', '清冷', '炽热', '精致', '完美', '绝美',
]

_MAX_CHAPTERS_PATTERN = re.compile(r"-(\d+)章")


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _to_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class ChapterStatus(Enum):
    """章节状态"""
    STREAMING = "streaming"
    COMPLETE = "complete"


@dataclass
class StoryOptions:
    """单次请求携带的创作选项（含 API 凭据与模型选择）"""
    api_base_url: str = ""
    api_key: str = ""
    available_models: List[str] = field(default_factory=list)
    search_model: str = ""              # 研究与规划
    planning_model: str = ""            # 标题、细纲、评估、工具箱
    writing_model: str = ""             # 正文与微调
    style: str = "爽文 (重生复仇打脸)"
    length: str = "短篇(15-30章)"
    author_style: str = "默认风格"
    temperature: float = 1.2
    diversity: float = 2.0
    top_k: int = 512
    forbidden_words: List[str] = field(default_factory=lambda: list(DEFAULT_FORBIDDEN_WORDS))

    @property
    def top_p(self) -> float:
        return (self.diversity - 0.1) / 2.0

    @property
    def max_chapters(self) -> int:
        """按篇幅设定推算章节上限，如 "短篇(15-30章)" -> 30。"""
        match = _MAX_CHAPTERS_PATTERN.search(self.length or "")
        if match:
            return int(match.group(1))
        if "100章以上" in (self.length or ""):
            return 2000
        return 30

    def model_for(self, key: str) -> str:
        return {
            "searchModel": self.search_model,
            "planningModel": self.planning_model,
            "writingModel": self.writing_model,
        }.get(key, "")

    def to_dict(self, include_secret: bool = True) -> Dict[str, Any]:
        data = {
            "apiBaseUrl": self.api_base_url,
            "apiKey": self.api_key if include_secret else "",
            "availableModels": list(self.available_models),
            "searchModel": self.search_model,
            "planningModel": self.planning_model,
            "writingModel": self.writing_model,
            "style": self.style,
            "length": self.length,
            "authorStyle": self.author_style,
            "temperature": self.temperature,
            "diversity": self.diversity,
            "topK": self.top_k,
            "forbiddenWords": list(self.forbidden_words),
        }
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'StoryOptions':
        """缺失字段回退默认值。"""
        data = data if isinstance(data, dict) else {}
        defaults = cls()
        forbidden = data.get("forbiddenWords")
        return cls(
            api_base_url=_text(data.get("apiBaseUrl"), defaults.api_base_url),
            api_key=_text(data.get("apiKey"), defaults.api_key),
            available_models=[str(m) for m in data.get("availableModels") or []],
            search_model=_text(data.get("searchModel"), defaults.search_model),
            planning_model=_text(data.get("planningModel"), defaults.planning_model),
            writing_model=_text(data.get("writingModel"), defaults.writing_model),
            style=_text(data.get("style"), defaults.style),
            length=_text(data.get("length"), defaults.length),
            author_style=_text(data.get("authorStyle"), defaults.author_style),
            temperature=_to_float(data.get("temperature"), defaults.temperature),
            diversity=_to_float(data.get("diversity"), defaults.diversity),
            top_k=_to_int(data.get("topK"), defaults.top_k),
            forbidden_words=[str(w) for w in forbidden] if isinstance(forbidden, list) else defaults.forbidden_words,
        )


_CHARACTER_FIELDS = {
    "role": "role",
    "name": "name",
    "coreConcept": "core_concept",
    "immediateGoal": "immediate_goal",
    "longTermAmbition": "long_term_ambition",
    "hiddenBurden": "hidden_burden",
    "storyFunction": "story_function",
}


@dataclass
class CharacterProfile:
    """角色档案"""
    name: str
    role: str = ""                      # 主角 / 配角 / 反派
    core_concept: str = ""
    immediate_goal: str = ""
    long_term_ambition: str = ""
    hidden_burden: str = ""
    story_function: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)   # 其余字段原样保留

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        for key, attr in _CHARACTER_FIELDS.items():
            data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CharacterProfile':
        known = {attr: _text(data.get(key)) for key, attr in _CHARACTER_FIELDS.items()}
        extra = {k: v for k, v in data.items() if k not in _CHARACTER_FIELDS}
        return cls(extra=extra, **known)


@dataclass
class WorldEntry:
    """世界书条目"""
    key: str
    value: str = ""


@dataclass
class WorldCategory:
    """世界书分类"""
    name: str
    entries: List[WorldEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "entries": [{"key": e.key, "value": e.value} for e in self.entries]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorldCategory':
        entries = [
            WorldEntry(key=_text(item.get("key")), value=_text(item.get("value")))
            for item in data.get("entries") or []
            if isinstance(item, dict)
        ]
        return cls(name=_text(data.get("name")), entries=entries)


@dataclass
class StoryOutline:
    """创作简报 - 总纲、角色与世界书"""
    title: str = "无标题"
    genre_analysis: str = ""
    world_concept: str = ""
    plot_synopsis: str = ""
    characters: List[CharacterProfile] = field(default_factory=list)
    world_categories: List[WorldCategory] = field(default_factory=list)
    writing_methodology: Dict[str, Any] = field(default_factory=dict)
    anti_pattern_guide: Dict[str, Any] = field(default_factory=dict)

    def missing_sections(self) -> List[str]:
        """返回缺失的必要结构名称（剧情大纲、角色、世界书）。"""
        missing = []
        if not self.plot_synopsis.strip():
            missing.append("剧情大纲")
        if not self.characters:
            missing.append("角色")
        if not self.world_categories:
            missing.append("世界书")
        return missing

    def find_character(self, name: str) -> Optional[CharacterProfile]:
        for char in self.characters:
            if char.name == name:
                return char
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "genreAnalysis": self.genre_analysis,
            "worldConcept": self.world_concept,
            "plotSynopsis": self.plot_synopsis,
            "characters": [c.to_dict() for c in self.characters],
            "worldCategories": [c.to_dict() for c in self.world_categories],
            "writingMethodology": dict(self.writing_methodology),
            "antiPatternGuide": dict(self.anti_pattern_guide),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoryOutline':
        characters = data.get("characters") or []
        categories = data.get("worldCategories") or []
        return cls(
            title=_text(data.get("title")) or "无标题",
            genre_analysis=_text(data.get("genreAnalysis")),
            world_concept=_text(data.get("worldConcept")),
            plot_synopsis=_text(data.get("plotSynopsis")),
            characters=[CharacterProfile.from_dict(c) for c in characters if isinstance(c, dict)],
            world_categories=[WorldCategory.from_dict(c) for c in categories if isinstance(c, dict)],
            writing_methodology=dict(data.get("writingMethodology") or {}),
            anti_pattern_guide=dict(data.get("antiPatternGuide") or {}),
        )


@dataclass
class GeneratedChapter:
    """已生成章节"""
    id: int
    title: str
    content: str = ""
    thought: str = ""                   # 写作前的思考过程
    status: ChapterStatus = ChapterStatus.STREAMING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "preWritingThought": self.thought,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneratedChapter':
        try:
            status = ChapterStatus(data.get("status", "complete"))
        except ValueError:
            status = ChapterStatus.COMPLETE
        return cls(
            id=_to_int(data.get("id"), 0),
            title=_text(data.get("title")),
            content=_text(data.get("content")),
            thought=_text(data.get("preWritingThought")),
            status=status,
        )
