"""Bridge 模块 - 动作到模型调用的翻译层。"""
from .actions import ACTIONS, LIST_MODELS, ActionSpec, get_action
from .errors import classify_error
from .service import BridgeService

__all__ = [
    "ACTIONS",
    "LIST_MODELS",
    "ActionSpec",
    "BridgeService",
    "classify_error",
    "get_action",
]
