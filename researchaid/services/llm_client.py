"""
Chat-completion client for an OpenAI-compatible ``/chat/completions`` API.

Unlike a best-effort extractor this client never hides a failure: every
problem is raised as one of the ``OracleFailure`` subclasses so the HTTP
layer can answer with the right status and message.  No retries.

Public API
----------
ChatCompletionClient.complete(prompt, options)        -> str
ChatCompletionClient.complete_stream(prompt, options) -> AsyncIterator[str]
"""
from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from researchaid.config import settings
from researchaid.exceptions import (
    AuthFailure,
    OracleFailure,
    OracleTimeout,
    RateLimited,
    UnknownOracleFailure,
)

logger = logging.getLogger(__name__)

_SSE_PREFIX = "data:"
_SSE_DONE = "[DONE]"


@dataclasses.dataclass(frozen=True)
class CompletionOptions:
    """Per-call generation settings.  ``model=None`` means the default model."""

    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1000
    system: Optional[str] = None


class ChatCompletionClient:
    """Thin async wrapper around ``POST {base_url}/chat/completions``."""

    CONNECT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.default_model = default_model or settings.OPENAI_DEFAULT_MODEL
        self.timeout = httpx.Timeout(
            timeout if timeout is not None else settings.OPENAI_TIMEOUT,
            connect=self.CONNECT_TIMEOUT,
        )
        # Tests pass an httpx.MockTransport here
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, prompt: str, options: CompletionOptions, stream: bool) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if options.system:
            messages.append({"role": "system", "content": options.system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": options.model or self.default_model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _require_key(self) -> None:
        if not self.configured:
            logger.error("completion request refused: OPENAI_API_KEY is not set")
            raise AuthFailure("OPENAI_API_KEY is not set")

    @staticmethod
    def _status_error(status_code: int, body: str) -> OracleFailure:
        logger.error("completion API returned HTTP %d: %s", status_code, body[:300])
        detail = f"HTTP {status_code}: {body[:300]}"
        if status_code in (401, 403):
            return AuthFailure(detail)
        if status_code == 429:
            return RateLimited(detail)
        if status_code in (408, 504):
            return OracleTimeout(detail)
        return UnknownOracleFailure(detail)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(self, prompt: str, options: Optional[CompletionOptions] = None) -> str:
        """Return the full completion text for ``prompt``."""
        options = options or CompletionOptions()
        self._require_key()
        url = f"{self.base_url}/chat/completions"

        try:
            async with self._client() as client:
                resp = await client.post(
                    url,
                    headers=self._headers(),
                    json=self._payload(prompt, options, stream=False),
                )
        except httpx.TimeoutException as e:
            logger.error("complete: request timed out after %s", self.timeout.read)
            raise OracleTimeout(str(e) or "request timed out") from e
        except httpx.HTTPError as e:
            logger.error("complete: transport error: %s", e)
            raise UnknownOracleFailure(str(e)) from e

        if resp.status_code != 200:
            raise self._status_error(resp.status_code, resp.text)

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("complete: malformed response body: %s", resp.text[:300])
            raise UnknownOracleFailure(f"Malformed completion response: {e}") from e

        logger.info(
            "complete: model=%s, %d chars in, %d chars out",
            options.model or self.default_model, len(prompt), len(content or ""),
        )
        return content or ""

    async def complete_stream(
        self,
        prompt: str,
        options: Optional[CompletionOptions] = None,
    ) -> AsyncIterator[str]:
        """Yield content chunks as the server sends them."""
        options = options or CompletionOptions()
        self._require_key()
        url = f"{self.base_url}/chat/completions"

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    url,
                    headers=self._headers(),
                    json=self._payload(prompt, options, stream=True),
                ) as resp:
                    if resp.status_code != 200:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise self._status_error(resp.status_code, body)

                    async for line in resp.aiter_lines():
                        chunk = _parse_sse_line(line)
                        if chunk is None:
                            continue
                        if chunk is _DONE:
                            return
                        yield chunk
        except httpx.TimeoutException as e:
            logger.error("complete_stream: request timed out")
            raise OracleTimeout(str(e) or "request timed out") from e
        except httpx.HTTPError as e:
            logger.error("complete_stream: transport error: %s", e)
            raise UnknownOracleFailure(str(e)) from e


_DONE = object()


def _parse_sse_line(line: str):
    """
    Content of one server-sent event line, ``_DONE`` for the terminator, or
    None for anything carrying no text (keep-alives, role deltas).
    """
    line = line.strip()
    if not line.startswith(_SSE_PREFIX):
        return None
    data = line[len(_SSE_PREFIX):].strip()
    if data == _SSE_DONE:
        return _DONE
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("complete_stream: skipping undecodable event %r", data[:80])
        return None
    try:
        content = event["choices"][0].get("delta", {}).get("content")
    except (KeyError, IndexError, AttributeError):
        return None
    return content or None
