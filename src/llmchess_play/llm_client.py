from __future__ import annotations
"""
LLM transport for move prompts (OpenAI-compatible chat completions).

- ChatTransport: talks to the inference endpoint directly through the OpenAI SDK
  (llama.cpp server, OpenRouter, any OpenAI-compatible base URL).
- ProxyTransport: posts {systemMessage, userMessage} to a running local proxy
  (/api/llama) and reshapes its {move} reply into the chat-completion shape.
- classify_error(): maps SDK/httpx/JSON failures onto the retryable error types,
  status code first, message pattern only as a fallback.

One call to complete() is exactly one POST. Retries live in acquisition.py; the
SDK's own retry loop is disabled (max_retries=0).
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx
import openai
from openai import OpenAI

from .config import Settings
from .errors import AttemptFailed, NetworkError, RateLimited, ServerError
from .prompting import MovePrompt

log = logging.getLogger("llm_client")

RATE_LIMIT_MARKERS = ("rate limit", "rate-limit", "ratelimit", "rate_limit", "quota", "too many requests")
HEALTH_TIMEOUT_S = 5.0
# the SDK refuses an empty key; local servers accept any placeholder
NO_KEY_PLACEHOLDER = "sk-no-key-required"


def is_rate_limit_message(message: Optional[str]) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


def _status_error_message(exc: openai.APIStatusError) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        msg = body.get("message")
        if not msg and isinstance(body.get("error"), dict):
            msg = body["error"].get("message")
        if isinstance(msg, str) and msg:
            return msg
    return getattr(exc, "message", None) or str(exc)


def classify_status(status_code: Optional[int], message: str) -> AttemptFailed:
    """Classify an error response: 429 first, then the message pattern."""
    if status_code == 429 or is_rate_limit_message(message):
        return RateLimited(message, status_code)
    return ServerError(message, status_code)


def classify_error(exc: BaseException) -> AttemptFailed:
    """Turn any transport-level exception into one of the retryable error types."""
    if isinstance(exc, AttemptFailed):
        return exc
    # APITimeoutError subclasses APIConnectionError
    if isinstance(exc, openai.APIConnectionError):
        return NetworkError(f"Network error: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return classify_status(exc.status_code, _status_error_message(exc))
    if isinstance(exc, httpx.TransportError):
        return NetworkError(f"Network error: {exc}")
    if isinstance(exc, ValueError):
        # json.JSONDecodeError and friends
        return ServerError(f"Malformed JSON response: {exc}")
    return ServerError(str(exc) or exc.__class__.__name__)


def _raise_for_error_body(payload: Any) -> None:
    """Some gateways answer 2xx with {error: {message}}; treat that as a failure."""
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message") or "Unknown error"
        raise classify_status(None, str(message))


def _server_root(api_base: str) -> str:
    root = api_base.rstrip("/")
    return root[: -len("/v1")] if root.endswith("/v1") else root


class ChatTransport:
    """Direct OpenAI-compatible chat-completions client."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[OpenAI] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.settings = settings
        self.endpoint = f"{settings.api_base}/chat/completions"
        headers: Dict[str, Any] = {}
        if settings.http_referer:
            headers["HTTP-Referer"] = settings.http_referer
        if settings.app_title:
            headers["X-Title"] = settings.app_title
        kwargs: Dict[str, Any] = {}
        if settings.request_timeout_s:
            kwargs["timeout"] = settings.request_timeout_s
        if http_client is not None:
            kwargs["http_client"] = http_client
        if not settings.llm_api_key:
            # no key configured: send no Authorization header at all
            headers["Authorization"] = openai.Omit()
        self.client = client or OpenAI(
            api_key=settings.llm_api_key or NO_KEY_PLACEHOLDER,
            base_url=settings.api_base,
            max_retries=0,
            default_headers=headers or None,
            **kwargs,
        )

    def complete(self, system: str, user: str) -> dict:
        """Send one chat-completion request and return the decoded JSON payload."""
        messages = MovePrompt(system=system, user=user).to_messages()
        try:
            raw = self.client.chat.completions.with_raw_response.create(
                model=self.settings.model,
                messages=messages,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
            payload = json.loads(raw.text)
        except (openai.OpenAIError, httpx.HTTPError, ValueError) as exc:
            raise classify_error(exc) from exc
        _raise_for_error_body(payload)
        return payload

    def check_health(self) -> bool:
        """GET <server root>/health; informational only."""
        url = f"{_server_root(self.settings.api_base)}/health"
        headers = {"Authorization": f"Bearer {self.settings.llm_api_key}"} if self.settings.llm_api_key else {}
        try:
            rsp = httpx.get(url, headers=headers, timeout=HEALTH_TIMEOUT_S)
        except httpx.HTTPError as exc:
            log.warning("Health probe to %s failed: %s", url, exc)
            return False
        return rsp.is_success

    def close(self) -> None:
        self.client.close()


class ProxyTransport:
    """Client for the local proxy's /api/llama endpoint."""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self.base_url = settings.proxy_url.rstrip("/")
        self.endpoint = f"{self.base_url}/api/llama"
        self.client = client or httpx.Client(timeout=settings.request_timeout_s)

    def complete(self, system: str, user: str) -> dict:
        try:
            rsp = self.client.post(self.endpoint, json={"systemMessage": system, "userMessage": user})
        except httpx.HTTPError as exc:
            raise classify_error(exc) from exc
        try:
            payload = rsp.json()
        except ValueError as exc:
            if rsp.is_success:
                raise classify_error(exc) from exc
            payload = None
        if not rsp.is_success:
            message = rsp.reason_phrase or f"HTTP {rsp.status_code}"
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or message
            raise classify_status(rsp.status_code, str(message))
        move = payload.get("move") if isinstance(payload, dict) else None
        # reshape so the extractor sees one payload format
        return {"choices": [{"message": {"role": "assistant", "content": move or ""}}]}

    def check_health(self) -> bool:
        try:
            rsp = self.client.get(f"{self.base_url}/api/health")
        except httpx.HTTPError as exc:
            log.warning("Proxy health probe failed: %s", exc)
            return False
        if not rsp.is_success:
            return False
        try:
            return rsp.json().get("llamaServer") == "connected"
        except ValueError:
            return False

    def close(self) -> None:
        self.client.close()


def create_transport(settings: Settings):
    """Pick the transport named by settings.transport."""
    if settings.transport == "proxy":
        return ProxyTransport(settings)
    return ChatTransport(settings)
