"""Top-level package for the Basil Loop self-refining writer.

This package provides:

- A streaming client for a local Ollama server (``/api/generate``).
- Heuristics and a decision table that pick between a text model and a
  code model for the main draft.
- A web search collaborator backed by DuckDuckGo and Wikipedia.
- The Basil Loop orchestrator that drafts, compares, critiques and
  re-drafts a response until a checker agent approves it.
- A CLI entrypoint for interactive usage.
"""
