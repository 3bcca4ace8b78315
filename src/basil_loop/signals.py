"""Pure heuristics over the raw user request.

This module defines:

- :func:`gather_coding_signals` for the three coding cues.
- :func:`detect_user_model_preference` for explicit model overrides.
- :func:`should_search` to decide whether a web lookup is warranted.
- :func:`summarize_model_heuristics` to describe the cues to the
  model-selection agent.
"""

from __future__ import annotations

import re
from typing import Optional

from .models import CodingSignals, ModelChoice, ModelRoster

CODING_KEYWORD_RE = re.compile(
    r"\b(code|coding|program|programming|function|method|class|module|script|snippet"
    r"|algorithm|debug|bugfix|sql|query|database|dataset|python|javascript|typescript"
    r"|java|c\+\+|c#|c\s|rust|go|php|ruby|swift|kotlin|scala|haskell|api|library|sdk"
    r"|cli|shell|bash|powershell|regex|json|yaml|toml|ini|html|css|markdown|unit test"
    r"|test case|refactor|implement|compile|build|deploy|docker|kubernetes|makefile"
    r"|gradle|package\.json)\b",
    re.IGNORECASE,
)
CODING_FILE_RE = re.compile(
    r"\b\w+\.(py|js|ts|tsx|jsx|java|c|cpp|cxx|cs|rb|go|rs|php|swift|kt|scala|sql|sh"
    r"|bash|ps1|json|yaml|yml|toml|ini|html|css|md)\b",
    re.IGNORECASE,
)
CODE_FENCE_RE = re.compile(r"```|</?(script|style|code)[^>]*>", re.IGNORECASE)

_OVERRIDE_VERBS = r"(use|switch to|prefer|run|pick)\s+(the\s+)?"

SEARCH_TRIGGERS = (
    "what is",
    "who is",
    "when did",
    "when was",
    "where is",
    "how much",
    "current",
    "latest",
    "recent",
    "news",
    "weather",
    "stock price",
    "define",
    "explain",
    "tell me about",
    "information about",
    "facts about",
    "update on",
)


def model_family(name: str) -> str:
    """Strip the tag from an Ollama model name (``"codegemma:2b"`` -> ``"codegemma"``)."""
    return name.split(":", 1)[0].strip().lower()


def gather_coding_signals(text: Optional[str] = "") -> CodingSignals:
    if not text:
        return CodingSignals()
    return CodingSignals(
        keyword_match=bool(CODING_KEYWORD_RE.search(text)),
        has_code_fence=bool(CODE_FENCE_RE.search(text)),
        mentions_file=bool(CODING_FILE_RE.search(text)),
    )


def _force_pattern(kinds: str, name: str) -> re.Pattern:
    return re.compile(
        rf"{_OVERRIDE_VERBS}({kinds})\s+(model|one)|use\s+{re.escape(model_family(name))}\b",
        re.IGNORECASE,
    )


def detect_user_model_preference(
    text: Optional[str] = "",
    roster: ModelRoster = ModelRoster(),
) -> Optional[ModelChoice]:
    """Return the model the user explicitly asked for, if any.

    The code-model phrasing is checked first, so a request naming both
    models resolves to :attr:`ModelChoice.CODE`.
    """
    if not text:
        return None
    if _force_pattern("code|coding", roster.code).search(text):
        return ModelChoice.CODE
    if _force_pattern("text|explanation", roster.text).search(text):
        return ModelChoice.TEXT
    return None


def should_search(query: Optional[str]) -> bool:
    lower_query = (query or "").lower()
    return any(trigger in lower_query for trigger in SEARCH_TRIGGERS)


def summarize_model_heuristics(
    user_choice: Optional[ModelChoice],
    signals: CodingSignals,
    roster: ModelRoster = ModelRoster(),
) -> str:
    override = roster.name_for(user_choice) if user_choice is not None else "none"

    def yes_no(flag: bool) -> str:
        return "yes" if flag else "no"

    items = [
        f"User override: {override}.",
        f"Coding keywords detected: {yes_no(signals.keyword_match)}.",
        f"Code blocks or markup present: {yes_no(signals.has_code_fence)}.",
        f"File extensions or language hints: {yes_no(signals.mentions_file)}.",
    ]
    return "\n".join(f"- {item}" for item in items)
