"""IO and logging utilities for mcmoves."""

from __future__ import annotations

from typing import Any

from mcmoves.io.core import Observer, SummaryObserver, TextObserver
from mcmoves.io.file import ObserverManager
from mcmoves.io.logger import Logger
from mcmoves.registry import register_class

__all__ = ["Logger", "Observer", "ObserverManager", "SummaryObserver", "TextObserver"]

io_registry: dict[str, Any] = {
    "ObserverManager": ObserverManager,
    "Logger": Logger,
    "SummaryObserver": SummaryObserver,
    "TextObserver": TextObserver,
}

for name, cls in io_registry.items():
    register_class(cls, name)
