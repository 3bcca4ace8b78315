"""Decision table that picks the writer model.

The model-selection agent answers in free text. :func:`normalize_model_choice`
turns that answer into a :class:`ModelChoice` (or ``None``), and
:func:`finalize_model_choice` combines it with the user's explicit override
and the coding signals. Both functions are pure.
"""

from __future__ import annotations

from typing import Optional

from .models import CodingSignals, DecisionBasis, ModelChoice, ModelDecision, ModelRoster
from .signals import model_family

STRONG_SIGNAL_COUNT = 2
ANY_SIGNAL_COUNT = 1


def _code_name_variants(roster: ModelRoster) -> tuple:
    family = model_family(roster.code)
    variants = {roster.code.lower(), family, "code model", "code-model"}
    if family.startswith("code") and len(family) > len("code"):
        variants.add(f"code {family[len('code'):]}")
    return tuple(sorted(variants))


def normalize_model_choice(
    raw_decision: Optional[str] = "",
    roster: ModelRoster = ModelRoster(),
) -> Optional[ModelChoice]:
    lower = (raw_decision or "").lower()
    if any(variant in lower for variant in _code_name_variants(roster)):
        return ModelChoice.CODE
    if model_family(roster.text) in lower:
        return ModelChoice.TEXT
    return None


def finalize_model_choice(
    agent_choice: Optional[ModelChoice],
    user_choice: Optional[ModelChoice],
    signals: CodingSignals,
    roster: ModelRoster = ModelRoster(),
) -> ModelDecision:
    """Resolve the writer model in strict priority order.

    1. An explicit user override wins.
    2. An agent recommendation for the code model is honored.
    3. An agent recommendation for the text model is honored unless at least
       two coding signals fire.
    4. Without a usable recommendation, any coding signal selects the code
       model; otherwise the text model is the default.
    """
    strong_signal = signals.count >= STRONG_SIGNAL_COUNT
    any_signal = signals.count >= ANY_SIGNAL_COUNT
    code, text = roster.code, roster.text

    if user_choice is ModelChoice.CODE:
        return ModelDecision(
            ModelChoice.CODE,
            "User explicitly requested the coding model.",
            DecisionBasis.USER_OVERRIDE,
        )
    if user_choice is ModelChoice.TEXT:
        return ModelDecision(
            ModelChoice.TEXT,
            "User explicitly requested the text model.",
            DecisionBasis.USER_OVERRIDE,
        )

    if agent_choice is ModelChoice.CODE:
        return ModelDecision(
            ModelChoice.CODE,
            f"Model agent selected {code} for this request.",
            DecisionBasis.AGENT,
        )
    if agent_choice is ModelChoice.TEXT:
        if strong_signal:
            return ModelDecision(
                ModelChoice.CODE,
                f"Model agent leaned toward {text}, but multiple coding signals require {code}.",
                DecisionBasis.AGENT_OVERRIDDEN,
            )
        return ModelDecision(
            ModelChoice.TEXT,
            f"Model agent selected {text} for explanatory quality.",
            DecisionBasis.AGENT,
        )

    if strong_signal:
        return ModelDecision(
            ModelChoice.CODE,
            f"No clear decision from the agent, defaulting to {code} because the request looks like code.",
            DecisionBasis.SIGNALS,
        )
    if any_signal:
        return ModelDecision(
            ModelChoice.CODE,
            f"No clear decision from the agent, but coding cues suggest {code} will perform better.",
            DecisionBasis.SIGNALS,
        )
    return ModelDecision(
        ModelChoice.TEXT,
        f"No clear decision from the agent, defaulting to {text} for general reasoning.",
        DecisionBasis.DEFAULT,
    )
