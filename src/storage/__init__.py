"""Storage 模块 - 本地持久化。"""
from .manager import StorageManager

__all__ = ["StorageManager"]
