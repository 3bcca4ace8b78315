"""CLI interface for the Basil Loop.

This module implements:

- A one-shot mode that runs a single session for a prompt given on the
  command line.
- An interactive loop that reads prompts from standard input and runs one
  session per prompt.
- ``--simple`` to use the keep-continuing loop instead of the full
  multi-agent one.

Ctrl+C cancels the running session; the best draft so far is still shown.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from contextlib import AsyncExitStack
from dataclasses import replace
from typing import Awaitable, List, Optional, TypeVar

from .agent_core import BasilLoop, run_simple_loop
from .cancellation import CancelToken
from .config import Settings
from .llm_client import OllamaClient, create_llm_client
from .models import LoopOutcome, LoopStatus
from .search import create_search_provider
from .sink import ConsoleSink

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="basil-loop",
        description="Self-refining multi-agent writer on top of a local Ollama server",
    )
    parser.add_argument("--ollama-url", help="Ollama base URL (overrides OLLAMA_URL)")
    parser.add_argument("--text-model", help="Text/reasoning model (overrides TEXT_MODEL)")
    parser.add_argument("--code-model", help="Code model (overrides CODE_MODEL)")
    parser.add_argument(
        "--simple",
        action="store_true",
        help="Run the simple keep-continuing loop instead of the multi-agent loop",
    )
    parser.add_argument("prompt", nargs="?", help="Run a single session for this prompt")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "ollama_url": args.ollama_url.rstrip("/") if args.ollama_url else None,
        "text_model": args.text_model,
        "code_model": args.code_model,
    }
    return replace(settings, **{key: value for key, value in overrides.items() if value})


async def _with_interrupt(token: CancelToken, coro: Awaitable[T]) -> T:
    """Await ``coro`` with SIGINT wired to ``token.cancel``."""
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    try:
        return await coro
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


async def run_session(
    settings: Settings,
    agent: BasilLoop,
    client: OllamaClient,
    prompt: str,
    simple: bool = False,
) -> bool:
    """Run one session and return ``True`` unless it failed."""
    token = CancelToken()
    if simple:
        responses: List[str] = await _with_interrupt(
            token,
            run_simple_loop(
                client,
                prompt,
                settings.roster,
                token,
                max_iterations=settings.simple_max_iterations,
            ),
        )
        print("\nAssistant>")
        print("\n\n".join(responses))
        return True

    outcome: LoopOutcome = await _with_interrupt(token, agent.run(prompt, token))
    logger.info(
        "Session finished: status=%s iterations=%d model=%s",
        outcome.status.value,
        outcome.iterations,
        outcome.model,
    )
    print()
    return outcome.status is not LoopStatus.FAILED


async def chat_loop(settings: Settings, prompt: Optional[str], simple: bool) -> int:
    async with AsyncExitStack() as stack:
        client = create_llm_client(settings)
        stack.push_async_callback(client.aclose)
        search = create_search_provider(settings)
        stack.push_async_callback(search.aclose)
        agent = BasilLoop(
            client,
            ConsoleSink(),
            search,
            roster=settings.roster,
            max_iterations=settings.max_iterations,
            iteration_delay=settings.iteration_delay,
            search_max_results=settings.search_max_results,
        )

        if prompt:
            ok = await run_session(settings, agent, client, prompt, simple)
            return 0 if ok else 1

        print(f"=== Basil Loop ({settings.text_model} / {settings.code_model}) ===")
        while True:
            try:
                user_text = await asyncio.to_thread(input, "\nYou> ")
            except (EOFError, KeyboardInterrupt):
                print("\nExiting.")
                return 0

            if not user_text.strip():
                continue
            if user_text.strip().lower() in {"exit", "quit"}:
                print("Bye.")
                return 0

            await run_session(settings, agent, client, user_text.strip(), simple)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the basil-loop CLI."""
    args = build_parser().parse_args(argv)
    settings = apply_overrides(Settings.from_env(), args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return asyncio.run(chat_loop(settings, args.prompt, args.simple))
