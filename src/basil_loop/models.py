"""Data models shared by the Basil Loop components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .cancellation import CancelToken

SNIPPET_LIMIT = 300


class ModelChoice(str, Enum):
    """Which of the two generation models authors the main draft."""

    TEXT = "text"
    CODE = "code"


class DecisionBasis(str, Enum):
    """Category of the justification attached to a :class:`ModelDecision`."""

    USER_OVERRIDE = "user_override"
    AGENT = "agent"
    AGENT_OVERRIDDEN = "agent_overridden"
    SIGNALS = "signals"
    DEFAULT = "default"


class LoopStatus(str, Enum):
    DONE = "done"
    CANCELLED = "cancelled"
    CAPPED = "capped"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelRoster:
    """Concrete Ollama model names behind each :class:`ModelChoice`.

    The text model doubles as the reasoning model used by every meta agent.
    """

    text: str = "gemma:2b"
    code: str = "codegemma:2b"

    @property
    def reasoning(self) -> str:
        return self.text

    def name_for(self, choice: ModelChoice) -> str:
        return self.code if choice is ModelChoice.CODE else self.text


@dataclass(frozen=True)
class CodingSignals:
    """Boolean coding cues extracted from a request."""

    keyword_match: bool = False
    has_code_fence: bool = False
    mentions_file: bool = False

    @property
    def count(self) -> int:
        return sum((self.keyword_match, self.has_code_fence, self.mentions_file))


@dataclass(frozen=True)
class ModelDecision:
    choice: ModelChoice
    explanation: str
    basis: DecisionBasis


@dataclass(frozen=True)
class CompletionRequest:
    """A single ``/api/generate`` request.

    Attributes:
        model: Ollama model tag (for example, ``"gemma:2b"``).
        prompt: Prompt text sent to the model.
        context: Prior-context token ids returned by an earlier completion.
        stream: Whether the server should stream newline-delimited JSON.
    """

    model: str
    prompt: str
    context: List[int] = field(default_factory=list)
    stream: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": self.prompt,
            "context": list(self.context),
            "stream": self.stream,
        }


@dataclass(frozen=True)
class SearchResult:
    title: str
    snippet: str
    source: str
    url: str = ""

    @classmethod
    def build(cls, title: str, text: str, source: str, url: str = "") -> SearchResult:
        """Create a result with its snippet truncated to ``SNIPPET_LIMIT`` chars."""
        snippet = text[:SNIPPET_LIMIT]
        if len(text) > SNIPPET_LIMIT:
            snippet += "..."
        return cls(title=title, snippet=snippet, source=source, url=url or "")


@dataclass
class Session:
    """State of one Basil Loop run, owned by the orchestrator.

    Attributes:
        prompt: The user's original request.
        token: Cancellation token for this session only.
        refined_prompt: Output of the prompt-refinement agent, or the
            original prompt when the agent returned nothing.
        choice: Model selected for the writer agent.
        plan: Output of the planning agent.
        iteration: 1-based refinement-cycle counter.
        search_results: Results gathered by the search agent.
        draft: Current best draft.
        directions: Improvement directions carried into the next write.
    """

    prompt: str
    token: CancelToken
    refined_prompt: str = ""
    choice: ModelChoice = ModelChoice.TEXT
    plan: str = ""
    iteration: int = 1
    search_results: List[SearchResult] = field(default_factory=list)
    draft: str = ""
    directions: str = ""


@dataclass(frozen=True)
class LoopOutcome:
    status: LoopStatus
    answer: Optional[str]
    iterations: int
    model: Optional[str] = None
