"""
Clipboard boundary.

The system clipboard is an external collaborator. The orchestrator only
needs "put this text somewhere the user can paste it"; the in-memory
implementation is the default and is what the tests inspect.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ClipboardInterface(ABC):
    """Abstract clipboard."""

    @abstractmethod
    def copy(self, text: str) -> None:
        """Replace the clipboard contents with text."""
        pass


class InMemoryClipboard(ClipboardInterface):
    """Keeps copied text in memory."""

    def __init__(self):
        self.history: list[str] = []

    def copy(self, text: str) -> None:
        self.history.append(text)

    @property
    def text(self) -> Optional[str]:
        return self.history[-1] if self.history else None
