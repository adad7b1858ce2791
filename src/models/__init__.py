"""Models 模块 - AI 模型适配层。"""

from schema.story import StoryOptions

from .base import BaseChatModel, Messages, api_root
from .openai_compatible import OpenAICompatibleModel


def get_client(options: StoryOptions) -> BaseChatModel:
    """按请求携带的 API 选项创建模型客户端。"""
    return OpenAICompatibleModel.from_options(options)


__all__ = [
    "BaseChatModel",
    "Messages",
    "OpenAICompatibleModel",
    "api_root",
    "get_client",
]
