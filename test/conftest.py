from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from basil_loop.cancellation import CancelToken
from basil_loop.models import CompletionRequest, SearchResult


class FakeCompletionClient:
    """Scripted stand-in for OllamaClient, answering by agent prompt."""

    def __init__(
        self,
        *,
        model_answer: str = "gemma:2b",
        refined: str = "refined request",
        plan: str = "1. cover the basics",
        comparison: str = "1",
        directions: str = "add more depth",
        checker: Sequence[str] = ("Yes",),
        completions: Sequence[Any] = (),
    ) -> None:
        self.model_answer = model_answer
        self.refined = refined
        self.plan = plan
        self.comparison = comparison
        self.directions = directions
        self.checker_answers = list(checker)
        self.completions = list(completions)
        self.requests: List[CompletionRequest] = []
        self.writer_calls = 0
        self.checker_calls = 0
        self.before_reply: Optional[Callable[[CompletionRequest, Optional[CancelToken]], None]] = None

    def prompts_starting_with(self, prefix: str) -> List[CompletionRequest]:
        return [request for request in self.requests if request.prompt.startswith(prefix)]

    def _reply_for(self, request: CompletionRequest) -> str:
        prompt = request.prompt
        if prompt.startswith("You are a Model Selection Agent"):
            return self.model_answer
        if prompt.startswith("You are a Prompt Refining Agent"):
            return self.refined
        if prompt.startswith("You are a Planning Agent"):
            return self.plan
        if prompt.startswith("You are a Writer Agent"):
            self.writer_calls += 1
            return f"draft {self.writer_calls}"
        if prompt.startswith("You are a Comparison Agent"):
            return self.comparison
        if prompt.startswith("You are a Refinement Direction Agent"):
            return self.directions
        if prompt.startswith("You are a Refinement Checker Agent"):
            self.checker_calls += 1
            if len(self.checker_answers) > 1:
                return self.checker_answers.pop(0)
            return self.checker_answers[0]
        raise AssertionError(f"unexpected prompt: {prompt[:60]!r}")

    async def stream_response(
        self,
        request: CompletionRequest,
        on_chunk=None,
        should_stop=None,
        token: Optional[CancelToken] = None,
    ) -> Optional[Dict[str, Any]]:
        self.requests.append(request)
        if self.before_reply is not None:
            self.before_reply(request, token)
        text = self._reply_for(request)
        half = len(text) // 2
        for piece in (text[:half], text[half:]):
            if token is not None and token.cancelled:
                return {"done": True}
            if piece and on_chunk is not None:
                on_chunk(piece)
        return {"done": True, "context": [1, 2, 3]}

    async def request_completion(self, request: CompletionRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if not self.completions:
            return {"response": "still working", "done": True, "context": [7]}
        reply = self.completions.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self) -> None:
        return None


class RecordingSink:
    def __init__(self) -> None:
        self.steps: List[List[str]] = []
        self.answers: List[str] = []
        self.statuses: List[str] = []

    def start_step(self, label: str, content: str = "") -> None:
        self.steps.append([label, content])

    def update_step(self, content: str, markdown: bool = False) -> None:
        self.steps[-1][1] = content

    def publish_answer(self, content: str) -> None:
        self.answers.append(content)

    def set_status(self, text: str) -> None:
        self.statuses.append(text)

    def step_contents(self, label: str) -> List[str]:
        return [content for step_label, content in self.steps if step_label == label]


class FakeSearch:
    def __init__(self, results: Sequence[SearchResult] = (), error: Optional[Exception] = None) -> None:
        self.results = list(results)
        self.error = error
        self.queries: List[str] = []

    async def search(self, query: str, max_results: int = 3) -> List[SearchResult]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results[:max_results]

    async def aclose(self) -> None:
        return None


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
