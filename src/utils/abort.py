"""Cancellation signal shared by one in-flight generation."""

from __future__ import annotations

import threading
from typing import Optional

from errors import GenerationAborted


class AbortSignal:
    """A one-shot flag; streaming loops poll it between chunks."""

    def __init__(self):
        self._event = threading.Event()

    def abort(self) -> None:
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise GenerationAborted()


def check_abort(signal: Optional[AbortSignal]) -> None:
    if signal is not None:
        signal.raise_if_aborted()
