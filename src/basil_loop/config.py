"""Runtime configuration for the Basil Loop.

Values come from environment variables, optionally seeded from a ``.env``
file in the working directory. By default the loop targets a local Ollama
instance serving ``gemma:2b`` (text and reasoning) and ``codegemma:2b``
(code).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .models import ModelRoster

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _to_optional_string(value: Optional[str]) -> Optional[str]:
    if value is not None and value.strip():
        return value.strip()
    return None


def _to_positive_int(value: Optional[str], *, default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _to_non_negative_float(value: Optional[str], *, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


@dataclass(frozen=True)
class Settings:
    """Settings loaded from the environment."""

    ollama_url: str = DEFAULT_OLLAMA_URL
    text_model: str = "gemma:2b"
    code_model: str = "codegemma:2b"
    search_url: Optional[str] = None
    search_max_results: int = 3
    search_timeout: float = 5.0
    max_iterations: int = 20
    simple_max_iterations: int = 100
    iteration_delay: float = 1.0
    request_timeout: float = 120.0
    log_level: str = "INFO"

    @property
    def roster(self) -> ModelRoster:
        return ModelRoster(text=self.text_model, code=self.code_model)

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv(find_dotenv(usecwd=True))
        defaults = cls()
        return cls(
            ollama_url=(
                _to_optional_string(os.getenv("OLLAMA_URL")) or defaults.ollama_url
            ).rstrip("/"),
            text_model=_to_optional_string(os.getenv("TEXT_MODEL")) or defaults.text_model,
            code_model=_to_optional_string(os.getenv("CODE_MODEL")) or defaults.code_model,
            search_url=_to_optional_string(os.getenv("SEARCH_URL")),
            search_max_results=_to_positive_int(
                os.getenv("SEARCH_MAX_RESULTS"), default=defaults.search_max_results
            ),
            search_timeout=_to_non_negative_float(
                os.getenv("SEARCH_TIMEOUT"), default=defaults.search_timeout
            ),
            max_iterations=_to_positive_int(
                os.getenv("MAX_ITERATIONS"), default=defaults.max_iterations
            ),
            simple_max_iterations=_to_positive_int(
                os.getenv("SIMPLE_MAX_ITERATIONS"), default=defaults.simple_max_iterations
            ),
            iteration_delay=_to_non_negative_float(
                os.getenv("ITERATION_DELAY"), default=defaults.iteration_delay
            ),
            request_timeout=_to_non_negative_float(
                os.getenv("REQUEST_TIMEOUT"), default=defaults.request_timeout
            ),
            log_level=(_to_optional_string(os.getenv("LOG_LEVEL")) or defaults.log_level).upper(),
        )
