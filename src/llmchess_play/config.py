"""
Configuration and environment loading for llmchess-play.

- Loads settings.yml (YAML) from repo root if present; falls back to environment variables.
- load_settings() is the only reader of ambient state; everything downstream receives a Settings.
- validate_settings() runs once at startup and returns a ConfigError listing every problem.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Any, Callable, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

log = logging.getLogger("config")

TRANSPORTS = ("direct", "proxy")
_TRUTHY = {"1", "true", "yes", "on"}


def _repo_root() -> str:
    # this file: src/llmchess_play/config.py → repo root is two levels up
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def _load_yaml(path: str) -> dict:
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        log.exception("Failed to read settings file %s; using environment only", path)
        return {}
    return data if isinstance(data, dict) else {}


def _as_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in _TRUTHY


def _optional_timeout(val: Any) -> Optional[float]:
    secs = float(val)
    return secs if secs > 0 else None


def _base_url(url: str) -> str:
    # Accept a full chat-completions URL and keep only the API base.
    url = (url or "").strip().rstrip("/")
    suffix = "/chat/completions"
    if url.endswith(suffix):
        url = url[: -len(suffix)]
    return url


@dataclass(frozen=True)
class Settings:
    # Auth / endpoint (OpenAI-compatible wire format)
    llm_api_key: str = ""
    api_base: str = "http://llama_server:8080/v1"
    model: str = "qwen2.5-coder-7b"
    require_api_key: bool = False
    http_referer: str = ""
    app_title: str = ""

    # Sampling
    temperature: float = 0.2
    max_tokens: int = 10

    # Retry / backoff
    max_retries: int = 5
    retry_base_delay_s: float = 4.0
    retry_jitter_s: float = 1.0
    request_timeout_s: Optional[float] = None

    # Transport selection
    transport: str = "direct"
    proxy_url: str = "http://localhost:3001"

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    static_dir: str = "dist"
    game_ttl_s: int = 3600

    # Values that could not be parsed; reported by validate_settings()
    load_errors: Tuple[str, ...] = field(default=(), compare=False)


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from settings.yml (wins) and the environment (fallback)."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    cfg = _load_yaml(path or os.path.join(_repo_root(), "settings.yml"))

    errors: List[str] = []

    def _cast(name: str, val: Any, default: Any, cast: Callable[[Any], Any] | None) -> Any:
        if cast is None:
            return val
        try:
            return cast(val)
        except (TypeError, ValueError):
            errors.append(f"{name} has an invalid value {val!r}")
            return default

    def _get(name: str, default: Any, cast: Callable[[Any], Any] | None = None) -> Any:
        if name in cfg and cfg[name] is not None:
            return _cast(name, cfg[name], default, cast)
        env = environ.get(name)
        if env is not None and env != "":
            return _cast(name, env, default, cast)
        return default

    return Settings(
        llm_api_key=str(_get("LLMCHESS_LLM_API_KEY", _get("LLAMA_API_KEY", _get("OPENROUTER_API_KEY", "")))),
        api_base=_base_url(str(_get("LLMCHESS_LLM_BASE_URL", _get("LLAMA_SERVER_URL", Settings.api_base)))),
        model=str(_get("LLMCHESS_MODEL", Settings.model)),
        require_api_key=_get("LLMCHESS_REQUIRE_API_KEY", False, cast=_as_bool),
        http_referer=str(_get("LLMCHESS_HTTP_REFERER", "")),
        app_title=str(_get("LLMCHESS_APP_TITLE", "")),
        temperature=_get("LLMCHESS_TEMPERATURE", Settings.temperature, cast=float),
        max_tokens=_get("LLMCHESS_MAX_TOKENS", Settings.max_tokens, cast=int),
        max_retries=_get("LLMCHESS_MAX_RETRIES", Settings.max_retries, cast=int),
        retry_base_delay_s=_get("LLMCHESS_RETRY_BASE_DELAY_S", Settings.retry_base_delay_s, cast=float),
        retry_jitter_s=_get("LLMCHESS_RETRY_JITTER_S", Settings.retry_jitter_s, cast=float),
        request_timeout_s=_get("LLMCHESS_REQUEST_TIMEOUT_S", None, cast=_optional_timeout),
        transport=str(_get("LLMCHESS_TRANSPORT", Settings.transport)).lower(),
        proxy_url=str(_get("LLMCHESS_PROXY_URL", Settings.proxy_url)).rstrip("/"),
        host=str(_get("BACKEND_HOST", Settings.host)),
        port=_get("BACKEND_PORT", Settings.port, cast=int),
        static_dir=str(_get("LLMCHESS_STATIC_DIR", Settings.static_dir)),
        game_ttl_s=_get("LLMCHESS_GAME_TTL_S", Settings.game_ttl_s, cast=int),
        load_errors=tuple(errors),
    )


def validate_settings(settings: Settings) -> Optional[ConfigError]:
    """Return None when settings are usable, else a ConfigError naming every problem."""
    problems: list[str] = list(settings.load_errors)
    if settings.require_api_key and not settings.llm_api_key:
        problems.append("LLMCHESS_LLM_API_KEY is required for this endpoint but is not set")
    if settings.transport not in TRANSPORTS:
        problems.append(f"LLMCHESS_TRANSPORT must be one of {', '.join(TRANSPORTS)} (got '{settings.transport}')")
    if settings.transport == "direct" and not settings.api_base:
        problems.append("LLMCHESS_LLM_BASE_URL must not be empty")
    if settings.transport == "proxy" and not settings.proxy_url:
        problems.append("LLMCHESS_PROXY_URL must not be empty when LLMCHESS_TRANSPORT=proxy")
    if not settings.model:
        problems.append("LLMCHESS_MODEL must not be empty")
    if settings.max_retries < 1:
        problems.append("LLMCHESS_MAX_RETRIES must be at least 1")
    if settings.retry_base_delay_s <= 0:
        problems.append("LLMCHESS_RETRY_BASE_DELAY_S must be positive")
    if settings.retry_jitter_s <= 0:
        problems.append("LLMCHESS_RETRY_JITTER_S must be positive")
    elif settings.retry_base_delay_s * 2 < settings.retry_jitter_s:
        # keeps successive delays non-decreasing despite jitter
        problems.append("LLMCHESS_RETRY_BASE_DELAY_S must be at least half of LLMCHESS_RETRY_JITTER_S")
    if settings.max_tokens < 1:
        problems.append("LLMCHESS_MAX_TOKENS must be at least 1")
    if not 0.0 <= settings.temperature <= 2.0:
        problems.append("LLMCHESS_TEMPERATURE must be within [0, 2]")
    if settings.game_ttl_s <= 0:
        problems.append("LLMCHESS_GAME_TTL_S must be positive")
    return ConfigError(problems) if problems else None
