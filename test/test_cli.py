import asyncio
import io
import signal

import pytest

from basil_loop import cli
from basil_loop.agent_core import BasilLoop
from basil_loop.cancellation import CancelToken
from basil_loop.config import Settings
from basil_loop.llm_client import CompletionHTTPError
from basil_loop.sink import ConsoleSink
from conftest import FakeCompletionClient, FakeSearch, RecordingSink

SETTINGS = Settings(iteration_delay=0)


def _fail_comparison(request, token):
    if request.prompt.startswith("You are a Comparison Agent"):
        raise CompletionHTTPError(500, "boom")


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args([])

    assert args.prompt is None
    assert args.simple is False


def test_overrides_replace_only_given_values() -> None:
    args = cli.build_parser().parse_args(
        ["--code-model", "qwen2.5-coder", "--ollama-url", "http://box:11434/", "hello"]
    )

    settings = cli.apply_overrides(Settings(text_model="llama3.1"), args)

    assert settings.text_model == "llama3.1"
    assert settings.code_model == "qwen2.5-coder"
    assert settings.ollama_url == "http://box:11434"
    assert args.prompt == "hello"


def test_console_sink_prints_streamed_deltas() -> None:
    out = io.StringIO()
    sink = ConsoleSink(out)

    sink.start_step("Planning", "PLANNING AGENT: ")
    sink.update_step("PLANNING AGENT: 1. In")
    sink.update_step("PLANNING AGENT: 1. Intro")
    sink.publish_answer("final text")

    assert out.getvalue() == "\n\n[Planning]\nPLANNING AGENT: 1. Intro\n\nAssistant>\nfinal text\n"


def test_console_sink_reprints_replaced_content() -> None:
    out = io.StringIO()
    sink = ConsoleSink(out)

    sink.start_step("Model selection", "MODEL AGENT: Evaluating best model...")
    sink.update_step("MODEL AGENT: gemma:2b")

    assert out.getvalue().endswith("Evaluating best model...\nMODEL AGENT: gemma:2b")


def test_run_session_reports_success() -> None:
    client = FakeCompletionClient()
    agent = BasilLoop(client, RecordingSink(), iteration_delay=0)

    assert asyncio.run(cli.run_session(SETTINGS, agent, client, "write an essay")) is True


def test_run_session_reports_failure() -> None:
    client = FakeCompletionClient()
    client.before_reply = _fail_comparison
    agent = BasilLoop(client, RecordingSink(), iteration_delay=0)

    assert asyncio.run(cli.run_session(SETTINGS, agent, client, "write an essay")) is False


def test_run_session_simple_prints_responses(capsys) -> None:
    client = FakeCompletionClient(
        completions=[{"response": "Step one"}, {"response": "All done."}]
    )
    agent = BasilLoop(client, RecordingSink(), iteration_delay=0)

    ok = asyncio.run(cli.run_session(SETTINGS, agent, client, "list steps", simple=True))

    assert ok is True
    assert capsys.readouterr().out.endswith("Assistant>\nStep one\n\nAll done.\n")


@pytest.mark.parametrize("fail,expected", [(False, 0), (True, 1)])
def test_one_shot_exit_code(monkeypatch, capsys, fail: bool, expected: int) -> None:
    client = FakeCompletionClient()
    if fail:
        client.before_reply = _fail_comparison
    monkeypatch.setattr(cli, "create_llm_client", lambda settings: client)
    monkeypatch.setattr(cli, "create_search_provider", lambda settings: FakeSearch())

    assert asyncio.run(cli.chat_loop(SETTINGS, "write an essay", False)) == expected


def test_sigint_cancels_the_session_token() -> None:
    token = CancelToken()

    async def wait_for_interrupt() -> str:
        signal.raise_signal(signal.SIGINT)
        await asyncio.wait_for(token.wait(), timeout=5)
        return "stopped"

    result = asyncio.run(cli._with_interrupt(token, wait_for_interrupt()))

    assert result == "stopped"
    assert token.cancelled is True
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
