"""Presentation side of the Basil Loop.

The orchestrator never renders anything itself. It reports progress to a
:class:`PresentationSink`; :class:`ConsoleSink` is the terminal
implementation used by the CLI.
"""

from __future__ import annotations

import sys
from typing import Optional, Protocol, TextIO


class PresentationSink(Protocol):
    def start_step(self, label: str, content: str = "") -> None:
        """Create a new labeled message for an agent step."""

    def update_step(self, content: str, markdown: bool = False) -> None:
        """Replace the content of the most recent step."""

    def publish_answer(self, content: str) -> None:
        """Publish the final assistant message."""

    def set_status(self, text: str) -> None:
        """Update the status line."""


class ConsoleSink:
    """Write steps to a text stream, printing only what streamed in since the last update.

    Markdown is printed as-is.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout
        self._shown = ""

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def start_step(self, label: str, content: str = "") -> None:
        self._write(f"\n\n[{label}]\n")
        self._shown = ""
        self.update_step(content)

    def update_step(self, content: str, markdown: bool = False) -> None:
        if content.startswith(self._shown):
            self._write(content[len(self._shown):])
        else:
            self._write(f"\n{content}")
        self._shown = content

    def publish_answer(self, content: str) -> None:
        self._write(f"\n\nAssistant>\n{content}\n")
        self._shown = ""

    def set_status(self, text: str) -> None:
        self._write(f"\n-- {text}")
        self._shown = ""
