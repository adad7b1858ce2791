"""
配置管理
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from schema.story import DEFAULT_FORBIDDEN_WORDS, StoryOptions

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    """读取布尔环境变量，非法值回退默认值。"""
    value = os.getenv(name)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    """读取整数环境变量，非法值回退默认值。"""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    """读取浮点环境变量，非法值回退默认值。"""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    """读取逗号分隔的列表环境变量。"""
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.replace("，", ",").split(",") if item.strip()]


@dataclass
class Config:
    """全局配置"""

    # OpenAI 兼容接口
    api_base_url: str = ""
    api_key: Optional[str] = None

    # 各阶段模型
    search_model: str = ""
    planning_model: str = ""
    writing_model: str = ""

    # 创作参数
    style: str = "爽文 (重生复仇打脸)"
    length: str = "短篇(15-30章)"
    author_style: str = "默认风格"
    temperature: float = 1.2
    diversity: float = 2.0
    top_k: int = 512
    forbidden_words: List[str] = field(default_factory=lambda: list(DEFAULT_FORBIDDEN_WORDS))

    # 存储
    output_dir: str = "./output"

    # 日志
    log_level: str = "INFO"
    debug: bool = False

    # Bridge 服务
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 8788

    @classmethod
    def from_env(cls) -> 'Config':
        """从环境变量加载配置"""
        return cls(
            api_base_url=os.getenv("STORY_API_BASE_URL", cls.api_base_url),
            api_key=os.getenv("STORY_API_KEY"),
            search_model=os.getenv("STORY_SEARCH_MODEL", cls.search_model),
            planning_model=os.getenv("STORY_PLANNING_MODEL", cls.planning_model),
            writing_model=os.getenv("STORY_WRITING_MODEL", cls.writing_model),
            style=os.getenv("STORY_STYLE", cls.style),
            length=os.getenv("STORY_LENGTH", cls.length),
            author_style=os.getenv("STORY_AUTHOR_STYLE", cls.author_style),
            temperature=_env_float("STORY_TEMPERATURE", cls.temperature),
            diversity=_env_float("STORY_DIVERSITY", cls.diversity),
            top_k=_env_int("STORY_TOP_K", cls.top_k),
            forbidden_words=_env_list("STORY_FORBIDDEN_WORDS", DEFAULT_FORBIDDEN_WORDS),
            output_dir=os.getenv("STORY_OUTPUT_DIR", cls.output_dir),
            log_level=os.getenv("STORY_LOG_LEVEL", cls.log_level),
            debug=_env_bool("STORY_DEBUG", cls.debug),
            bridge_host=os.getenv("STORY_BRIDGE_HOST", cls.bridge_host),
            bridge_port=_env_int("STORY_BRIDGE_PORT", cls.bridge_port),
        )

    def to_options(self) -> StoryOptions:
        """转换为单次请求使用的创作选项。"""
        return StoryOptions(
            api_base_url=self.api_base_url,
            api_key=self.api_key or "",
            search_model=self.search_model,
            planning_model=self.planning_model,
            writing_model=self.writing_model,
            style=self.style,
            length=self.length,
            author_style=self.author_style,
            temperature=self.temperature,
            diversity=self.diversity,
            top_k=self.top_k,
            forbidden_words=list(self.forbidden_words),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """初始化根日志。"""
    resolved = (level or config.log_level or "INFO").upper()
    if config.debug:
        resolved = "DEBUG"
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# 全局配置实例
config = Config.from_env()
