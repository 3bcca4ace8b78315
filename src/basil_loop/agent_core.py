"""Core agent logic for the Basil Loop.

This module defines the orchestrator that sequences the agents of one
session:

1. Model selection (heuristics + model agent + decision table).
2. Prompt refinement.
3. Planning (coding or prose template, depending on the selected model).
4. Optional web search.
5. The refinement cycle: two writer drafts, comparison, direction
   critique and completion check, repeated until the checker approves or
   the iteration ceiling is passed.

It also provides :func:`run_simple_loop`, a stripped-down loop that keeps
asking the selected model to ``continue`` until it says it is done.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import httpx

from .cancellation import CancelToken
from .llm_client import ChunkHandler, CompletionHTTPError, StopPredicate
from .model_policy import finalize_model_choice, normalize_model_choice
from .models import (
    CompletionRequest,
    LoopOutcome,
    LoopStatus,
    ModelChoice,
    ModelDecision,
    ModelRoster,
    Session,
)
from .prompts import (
    FALLBACK_DIRECTIONS,
    checker_prompt,
    comparison_prompt,
    direction_prompt,
    first_draft_prompt,
    format_search_summary,
    model_selection_prompt,
    planning_prompt,
    prompt_refinement_prompt,
    revision_prompt,
)
from .search import SearchProvider
from .signals import (
    detect_user_model_preference,
    gather_coding_signals,
    should_search,
    summarize_model_heuristics,
)
from .sink import PresentationSink

logger = logging.getLogger(__name__)
LOG_PREVIEW_LIMIT = 200

DEFAULT_MAX_ITERATIONS = 20
SIMPLE_MAX_ITERATIONS = 100
SIMPLE_DONE_WORDS = ("done", "finished", "complete")

AGENT_LABELS = {
    "model": "Model selection",
    "prompt": "Prompt refinement",
    "planning": "Planning",
    "search": "Web search",
    "writer": "Writer draft",
    "comparison": "Draft comparison",
    "direction": "Direction critique",
    "checker": "Completion check",
    "refinement": "Refinement",
    "error": "Error",
}


class CompletionClient(Protocol):
    async def stream_response(
        self,
        request: CompletionRequest,
        on_chunk: Optional[ChunkHandler] = None,
        should_stop: Optional[StopPredicate] = None,
        token: Optional[CancelToken] = None,
    ) -> Optional[Dict[str, Any]]:
        ...

    async def request_completion(self, request: CompletionRequest) -> Dict[str, Any]:
        ...


class LoopCancelled(Exception):
    """Raised inside a session once its cancel token is observed."""


def _preview_text(text: str, limit: int = LOG_PREVIEW_LIMIT) -> str:
    """Create a single-line preview for logging."""
    text = text.replace("\n", " ").strip()
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...(truncated)..."


def is_first_candidate_better(answer: str) -> bool:
    """Only a bare ``"1"`` keeps the first candidate; anything else picks the second."""
    return answer.strip() == "1"


def is_completion_approved(answer: str) -> bool:
    return answer.strip().lower().startswith("yes")


async def select_model(
    client: CompletionClient,
    prompt: str,
    roster: ModelRoster,
    token: CancelToken,
    on_text: Optional[Callable[[str], None]] = None,
) -> Tuple[ModelDecision, str]:
    """Ask the model agent which model should write, then apply the decision table.

    Args:
        client: Completion client used for the reasoning model.
        prompt: The user's original request.
        roster: Names of the text and code models.
        token: Session cancel token.
        on_text: Called with the accumulated agent answer after each chunk.

    Returns:
        Tuple[ModelDecision, str]: The final decision and the agent's raw
        (trimmed) answer.
    """
    user_choice = detect_user_model_preference(prompt, roster)
    signals = gather_coding_signals(prompt)
    heuristics = summarize_model_heuristics(user_choice, signals, roster)
    answer = ""

    def collect(chunk: str) -> None:
        nonlocal answer
        if token.cancelled:
            return
        answer += chunk
        if on_text is not None:
            on_text(answer)

    await client.stream_response(
        CompletionRequest(
            model=roster.reasoning,
            prompt=model_selection_prompt(prompt, heuristics, roster),
        ),
        collect,
        token=token,
    )
    agent_choice = normalize_model_choice(answer.strip(), roster)
    decision = finalize_model_choice(agent_choice, user_choice, signals, roster)
    logger.info(
        "Model decision: %s (%s) agent=%r",
        roster.name_for(decision.choice),
        decision.basis.value,
        _preview_text(answer),
    )
    return decision, answer.strip()


class BasilLoop:
    """Multi-agent draft/compare/critique/check orchestrator.

    One instance can serve many sessions; all per-session state lives in a
    :class:`Session` created by :meth:`run`.

    Args:
        client: Completion client (usually :class:`OllamaClient`).
        sink: Where steps, status lines and the final answer are published.
        search: Search collaborator. ``None`` disables the search agent.
        roster: Text/reasoning and code model names.
        max_iterations: Refinement-cycle ceiling.
        iteration_delay: Pause between iterations, in seconds.
        search_max_results: Maximum number of search results requested.
    """

    def __init__(
        self,
        client: CompletionClient,
        sink: PresentationSink,
        search: Optional[SearchProvider] = None,
        *,
        roster: ModelRoster = ModelRoster(),
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        iteration_delay: float = 1.0,
        search_max_results: int = 3,
    ) -> None:
        self.client = client
        self.sink = sink
        self.search = search
        self.roster = roster
        self.max_iterations = max_iterations
        self.iteration_delay = iteration_delay
        self.search_max_results = search_max_results

    async def run(self, prompt: str, token: Optional[CancelToken] = None) -> LoopOutcome:
        """Run one session for ``prompt`` until it is approved, capped or cancelled."""
        session = Session(prompt=prompt, token=token or CancelToken())
        try:
            await self._select_model(session)
            await self._refine_prompt(session)
            await self._plan(session)
            if should_search(session.refined_prompt):
                await self._search(session)
            status = await self._refinement_cycle(session)
        except LoopCancelled:
            status = LoopStatus.CANCELLED
        except Exception as exc:  # noqa: BLE001
            if not session.token.cancelled:
                logger.exception("Error in Basil Loop")
                self.sink.start_step(AGENT_LABELS["error"], f"Error: {exc}")
                if session.draft:
                    self.sink.publish_answer(session.draft)
                return self._outcome(session, LoopStatus.FAILED)
            status = LoopStatus.CANCELLED

        if status is LoopStatus.CANCELLED:
            logger.info("Basil Loop stopped by user.")
            self.sink.set_status("Loop stopped by user.")
            if session.draft:
                self.sink.publish_answer(session.draft)
        return self._outcome(session, status)

    def _outcome(self, session: Session, status: LoopStatus) -> LoopOutcome:
        return LoopOutcome(
            status=status,
            answer=session.draft or None,
            iterations=session.iteration,
            model=self.roster.name_for(session.choice),
        )

    @staticmethod
    def _check_cancelled(session: Session) -> None:
        if session.token.cancelled:
            raise LoopCancelled()

    async def _stream_agent(
        self,
        session: Session,
        agent: str,
        model: str,
        prompt: str,
        *,
        placeholder: str = "",
        show: bool = True,
    ) -> str:
        """Stream one agent call, mirroring the text into a new sink step."""
        heading = f"{agent.upper()} AGENT"
        text = ""
        if show:
            self.sink.start_step(AGENT_LABELS[agent], f"{heading}: {placeholder}")

        def on_chunk(chunk: str) -> None:
            nonlocal text
            if session.token.cancelled:
                return
            text += chunk
            if show:
                self.sink.update_step(f"{heading}: {text}")

        await self.client.stream_response(
            CompletionRequest(model=model, prompt=prompt),
            on_chunk,
            token=session.token,
        )
        self._check_cancelled(session)
        logger.debug("%s -> %s", heading, _preview_text(text))
        return text

    async def _select_model(self, session: Session) -> None:
        self.sink.set_status("Step 1: Selecting model...")
        self.sink.start_step(AGENT_LABELS["model"], "MODEL AGENT: Evaluating best model...")
        decision, answer = await select_model(
            self.client,
            session.prompt,
            self.roster,
            session.token,
            on_text=lambda text: self.sink.update_step(f"MODEL AGENT: {text}"),
        )
        self._check_cancelled(session)
        session.choice = decision.choice
        display = answer or "No explicit answer returned."
        self.sink.update_step(
            f"MODEL AGENT: {display}\n\n"
            f"**Selected:** **{self.roster.name_for(decision.choice)}**. {decision.explanation}",
            markdown=True,
        )

    async def _refine_prompt(self, session: Session) -> None:
        self.sink.set_status("Step 2: Refining prompt...")
        refined = await self._stream_agent(
            session,
            "prompt",
            self.roster.reasoning,
            prompt_refinement_prompt(session.prompt),
            placeholder="Refining user request...",
        )
        session.refined_prompt = refined.strip() or session.prompt

    async def _plan(self, session: Session) -> None:
        self.sink.set_status("Step 3: Planning response...")
        plan = await self._stream_agent(
            session,
            "planning",
            self.roster.reasoning,
            planning_prompt(session.refined_prompt, coding=session.choice is ModelChoice.CODE),
            placeholder="Creating response strategy...",
        )
        session.plan = plan.strip()

    async def _search(self, session: Session) -> None:
        if self.search is None:
            return
        self.sink.set_status("Step 4: Searching web...")
        self.sink.start_step(AGENT_LABELS["search"], "SEARCH AGENT: Gathering current information...")
        try:
            results = await self.search.search(session.refined_prompt, self.search_max_results)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Search failed: %s", exc)
            self._check_cancelled(session)
            self.sink.update_step("SEARCH AGENT: Search unavailable, using existing knowledge.")
            return

        self._check_cancelled(session)
        session.search_results = list(results)
        if session.search_results:
            self.sink.update_step(format_search_summary(session.search_results), markdown=True)
        else:
            self.sink.update_step("SEARCH AGENT: No specific results found, using existing knowledge.")

    async def _refinement_cycle(self, session: Session) -> LoopStatus:
        writer_model = self.roster.name_for(session.choice)
        reasoning_model = self.roster.reasoning

        while True:
            iteration = session.iteration
            if iteration == 1:
                writer_prompt = first_draft_prompt(
                    session.refined_prompt, session.plan, session.search_results
                )
            else:
                writer_prompt = revision_prompt(
                    session.refined_prompt, session.draft, session.directions
                )

            self.sink.set_status(f"Iteration {iteration}: Writing...")
            first = await self._stream_agent(
                session,
                "writer",
                writer_model,
                writer_prompt,
                placeholder=f"(Iteration {iteration}) Crafting response...",
            )
            session.draft = first.strip()
            second = await self._stream_agent(session, "writer", writer_model, writer_prompt, show=False)

            self.sink.set_status(f"Iteration {iteration}: Comparing...")
            verdict = await self._stream_agent(
                session,
                "comparison",
                reasoning_model,
                comparison_prompt(first.strip(), second.strip()),
                placeholder=f"(Iteration {iteration}) Comparing responses...",
            )
            session.draft = first.strip() if is_first_candidate_better(verdict) else second.strip()

            self.sink.set_status(f"Iteration {iteration}: Analyzing...")
            directions = await self._stream_agent(
                session,
                "direction",
                reasoning_model,
                direction_prompt(session.refined_prompt, session.draft),
                placeholder=f"(Iteration {iteration}) Analyzing for improvements...",
            )
            if directions.strip():
                session.directions = directions.strip()
                self.sink.update_step(f"DIRECTION AGENT: {session.directions}", markdown=True)
            else:
                session.directions = FALLBACK_DIRECTIONS
                self.sink.update_step(
                    "DIRECTION AGENT: No explicit revisions returned. Default to: "
                    f"{FALLBACK_DIRECTIONS[0].lower()}{FALLBACK_DIRECTIONS[1:]}",
                    markdown=True,
                )

            self.sink.set_status(f"Iteration {iteration}: Checking completion...")
            answer = await self._stream_agent(
                session,
                "checker",
                reasoning_model,
                checker_prompt(session.refined_prompt, session.draft, session.directions),
                placeholder=f"(Iteration {iteration}) Evaluating completion...",
            )
            if is_completion_approved(answer):
                self.sink.publish_answer(session.draft)
                self.sink.set_status(
                    f"Completed after {iteration} iterations. Checker Agent approved the result."
                )
                return LoopStatus.DONE

            self.sink.start_step(
                AGENT_LABELS["refinement"], 'Checker Agent says "No" - continuing refinement...'
            )
            session.iteration += 1
            if await session.token.sleep(self.iteration_delay):
                raise LoopCancelled()
            if session.iteration > self.max_iterations:
                logger.info("Reached maximum iterations (%d)", self.max_iterations)
                self.sink.publish_answer(session.draft)
                self.sink.set_status(
                    f"Reached maximum iterations ({self.max_iterations}). Submitting current version."
                )
                return LoopStatus.CAPPED


async def run_simple_loop(
    client: CompletionClient,
    prompt: str,
    roster: ModelRoster = ModelRoster(),
    token: Optional[CancelToken] = None,
    max_iterations: int = SIMPLE_MAX_ITERATIONS,
) -> List[str]:
    """Keep prompting the selected model until it reports that it is done.

    The first request sends ``prompt``; every later one sends ``"continue"``
    with the context tokens returned by the previous answer. The loop ends
    when an answer mentions "done", "finished" or "complete", when ``token``
    is cancelled, or after ``max_iterations`` requests. A failed request is
    logged and the loop moves on to the next one.

    Returns:
        List[str]: The collected responses, including the final one.
    """
    token = token or CancelToken()
    decision, _ = await select_model(
        client,
        prompt,
        roster,
        token,
        on_text=lambda text: logger.debug("MODEL AGENT: %s", _preview_text(text)),
    )
    model = roster.name_for(decision.choice)
    logger.info("MODEL AGENT FINAL: %s", model)

    responses: List[str] = []
    context: List[int] = []
    step = 1
    while not token.cancelled:
        logger.info("Step %d", step)
        try:
            data = await client.request_completion(
                CompletionRequest(
                    model=model,
                    prompt=prompt if step == 1 else "continue",
                    context=context,
                    stream=False,
                )
            )
        except (CompletionHTTPError, httpx.HTTPError, ValueError) as exc:
            logger.error("Error in step %d: %s", step, exc)
        else:
            content = data.get("response") or ""
            logger.info("Step %d response: %s", step, _preview_text(content))
            responses.append(content)
            context = data.get("context") or context
            lower = content.lower()
            if any(word in lower for word in SIMPLE_DONE_WORDS):
                logger.info("AI indicated completion. Stopping loop.")
                break

        step += 1
        if step > max_iterations:
            logger.warning("Reached maximum iterations (%d). Stopping for safety.", max_iterations)
            break
    return responses
