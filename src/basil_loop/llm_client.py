"""Ollama completion client used by every agent.

This module defines:

- :class:`OllamaClient` with a streaming (:meth:`OllamaClient.stream_response`)
  and a non-streaming (:meth:`OllamaClient.request_completion`) call to
  ``/api/generate``.
- :class:`CompletionHTTPError` raised for non-2xx answers.
- :func:`create_llm_client` to build a client from :class:`Settings`.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from .cancellation import CancelToken
from .config import DEFAULT_OLLAMA_URL, Settings
from .models import CompletionRequest

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[str], None]
StopPredicate = Callable[[], bool]

GENERATE_PATH = "/api/generate"
ERROR_BODY_LIMIT = 200


class CompletionHTTPError(Exception):
    """The completion service answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP error! status: {status_code}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class StreamAborted(Exception):
    """A pending stream read was interrupted by the session's cancel token."""


async def _read_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class OllamaClient:
    """Async client for the Ollama ``/api/generate`` endpoint.

    Args:
        base_url: Root URL of the Ollama server (or a proxy in front of it).
        timeout: Read timeout in seconds for a single request.
        http_client: Optional pre-configured :class:`httpx.AsyncClient`,
            mainly for tests using :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        *,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0)
        )

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}{GENERATE_PATH}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> OllamaClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request_completion(self, request: CompletionRequest) -> Dict[str, Any]:
        """Run one non-streaming completion and return the decoded JSON body."""
        payload = replace(request, stream=False).to_payload()
        response = await self._http.post(self.generate_url, json=payload)
        if not response.is_success:
            raise CompletionHTTPError(response.status_code, response.text[:ERROR_BODY_LIMIT])
        return response.json()

    async def stream_response(
        self,
        request: CompletionRequest,
        on_chunk: Optional[ChunkHandler] = None,
        should_stop: Optional[StopPredicate] = None,
        token: Optional[CancelToken] = None,
    ) -> Optional[Dict[str, Any]]:
        """Stream a completion, handing each text fragment to ``on_chunk``.

        ``should_stop`` is polled before every network read; it defaults to
        the state of ``token``. When it turns true the token is cancelled and
        reading stops. A request still waiting for response headers, or a
        read already in flight, is abandoned too when the token fires. The
        decoded leftover buffer is parsed once more and the call returns
        normally.

        Exceptions raised by ``on_chunk`` propagate. Malformed lines are
        logged and skipped.

        Returns:
            Optional[Dict[str, Any]]: The terminal (``"done": true``) record.
            On cancellation this is the last terminal record seen, or
            ``{"done": True}`` if none arrived. ``None`` if the stream ended
            without a terminal record.
        """
        if should_stop is None and token is not None:
            should_stop = lambda: token.cancelled  # noqa: E731
        payload = replace(request, stream=True).to_payload()
        final_chunk: Optional[Dict[str, Any]] = None
        aborted = False

        http_request = self._http.build_request("POST", self.generate_url, json=payload)
        response = await self._open_stream(http_request, token)
        if response is None:
            logger.info("Request to %s stopped before the response started", request.model)
            return {"done": True}

        try:
            if not response.is_success:
                body = await response.aread()
                detail = body.decode("utf-8", "ignore")[:ERROR_BODY_LIMIT]
                raise CompletionHTTPError(response.status_code, detail)

            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            buffer = ""
            chunks = response.aiter_bytes()
            try:
                while True:
                    if should_stop is not None and should_stop():
                        if token is not None:
                            token.cancel()
                        aborted = True
                        break

                    chunk = await self._next_chunk(chunks, token)
                    if chunk is None:
                        break

                    buffer += decoder.decode(chunk)
                    *lines, buffer = buffer.split("\n")
                    for line in lines:
                        final_chunk = self._handle_line(line, on_chunk, final_chunk)
            except StreamAborted:
                aborted = True

            if not aborted:
                buffer += decoder.decode(b"", final=True)
            final_chunk = self._handle_line(buffer, on_chunk, final_chunk)
        finally:
            await response.aclose()

        if aborted:
            logger.info("Stream from %s stopped by request", request.model)
            return final_chunk or {"done": True}
        return final_chunk

    async def _open_stream(
        self,
        http_request: httpx.Request,
        token: Optional[CancelToken],
    ) -> Optional[httpx.Response]:
        """Send the request, giving up if ``token`` fires before the headers arrive."""
        if token is None:
            return await self._http.send(http_request, stream=True)
        if token.cancelled:
            return None

        send = asyncio.ensure_future(self._http.send(http_request, stream=True))
        stop = asyncio.ensure_future(token.wait())
        done, _ = await asyncio.wait({send, stop}, return_when=asyncio.FIRST_COMPLETED)
        if send in done:
            stop.cancel()
            return send.result()

        send.cancel()
        try:
            response = await send
        except asyncio.CancelledError:
            return None
        await response.aclose()
        return None

    @staticmethod
    async def _next_chunk(
        chunks: AsyncIterator[bytes],
        token: Optional[CancelToken],
    ) -> Optional[bytes]:
        if token is None:
            return await _read_chunk(chunks)

        read = asyncio.ensure_future(_read_chunk(chunks))
        stop = asyncio.ensure_future(token.wait())
        done, _ = await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
        if read in done:
            stop.cancel()
            return read.result()

        read.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await read
        raise StreamAborted()

    @staticmethod
    def _handle_line(
        line: str,
        on_chunk: Optional[ChunkHandler],
        final_chunk: Optional[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        trimmed = line.strip()
        if not trimmed:
            return final_chunk
        try:
            data = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse JSON chunk: %r (%s)", trimmed, exc)
            return final_chunk
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object JSON chunk: %r", trimmed)
            return final_chunk

        text = data.get("response")
        if text is not None and not isinstance(text, str):
            logger.warning("Ignoring non-string response field: %r", text)
        elif text and on_chunk is not None:
            on_chunk(text)
        if data.get("done"):
            return data
        return final_chunk


def create_llm_client(settings: Optional[Settings] = None) -> OllamaClient:
    """Create an Ollama client configured via environment variables."""
    settings = settings or Settings.from_env()
    return OllamaClient(settings.ollama_url, timeout=settings.request_timeout)
