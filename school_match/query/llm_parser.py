"""Optional LLM-based school query parser (feature-flagged).

The LLM is only allowed to produce **ParsedFilter JSON**. Its output is always passed through
`ParsedFilter` validation by the caller, so values outside the canonical domains never reach the
filter engine.
"""

from __future__ import annotations

import json
import logging
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from school_match.query.schema import (
    CITY_AREAS,
    PRICE_MAX,
    PRICE_MIN,
    Accreditation,
    City,
    Curriculum,
    Language,
    Meal,
    SchoolType,
    Service,
    SortOption,
    Specialist,
    Subject,
)

logger = logging.getLogger(__name__)

_RETRY_BASE_S = 0.4
_RETRY_JITTER_S = 0.2


class LLMParserError(RuntimeError):
    """Raised when the LLM parser fails to return a usable JSON object.

    `status` carries the HTTP status when the provider answered with an error (401/403 for auth,
    429 for rate limiting, 5xx for provider failures).
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        retryable: bool = False,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable
        self.retry_after_s = retry_after_s


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the OpenAI-style Chat Completions API call."""

    api_key: str
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com/v1"
    timeout_s: float = 15.0
    max_retries: int = 2


def _load_prompt() -> str:
    prompt_path = Path(__file__).resolve().parent / "prompt_school_query_v1.md"
    return prompt_path.read_text(encoding="utf-8")


def _allowed_values() -> dict[str, Any]:
    return {
        "query": "string",
        "cities": [c.value for c in City],
        "cityAreas": {city.value: list(areas) for city, areas in CITY_AREAS.items()},
        "types": [t.value for t in SchoolType],
        "languages": [lang.value for lang in Language],
        "curricula": [c.value for c in Curriculum],
        "subjects": [s.value for s in Subject],
        "specialists": [s.value for s in Specialist],
        "services": [s.value for s in Service],
        "meals": [m.value for m in Meal],
        "accreditations": [a.value for a in Accreditation],
        "exam": ["Yes", "No", None],
        "rating": "number|null",
        "minClubs": "number",
        "minClassSize": "number",
        "priceRange": [PRICE_MIN, PRICE_MAX],
        "useNearby": "boolean",
        "sortOption": [s.value for s in SortOption],
    }


def build_messages(user_text: str) -> list[dict[str, str]]:
    """Build the chat messages: the system prompt plus the query and the allowed values."""

    user_content = "\n".join(
        [
            f'User query: "{user_text}"',
            "Return a JSON object with these fields and allowed values:",
            json.dumps(_allowed_values(), ensure_ascii=False, indent=2),
            "Output only JSON.",
        ]
    )
    return [
        {"role": "system", "content": _load_prompt()},
        {"role": "user", "content": user_content},
    ]


def _strip_code_fences(text: str) -> str:
    value = (text or "").strip()
    if value.startswith("```"):
        value = value.strip("`")
        # After stripping backticks, try to remove leading "json" marker.
        value = value.removeprefix("json").strip()
    return value


def _decode_json_object(content: str) -> dict[str, Any]:
    """Decode model output; falls back to the outermost `{...}` slice of chatty replies."""

    candidate = _strip_code_fences(content)
    try:
        obj = json.loads(candidate)
    except json.JSONDecodeError:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            raise LLMParserError("LLM did not return valid JSON") from None
        try:
            obj = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as exc:
            raise LLMParserError("LLM did not return valid JSON") from exc

    if not isinstance(obj, dict):
        raise LLMParserError("LLM did not return a JSON object")
    return obj


def _chat_completions_url(api_base: str) -> str:
    return api_base.rstrip("/") + "/chat/completions"


def _retry_after_s(exc: HTTPError) -> float | None:
    raw = exc.headers.get("Retry-After") if exc.headers is not None else None
    try:
        value = float(raw) if raw is not None else None
    except ValueError:
        return None
    return value if value is not None and value > 0 else None


def _backoff_s(attempt: int) -> float:
    return _RETRY_BASE_S * 2 ** (attempt - 1) + random.uniform(0, _RETRY_JITTER_S)


def _post_chat_completion(payload: dict[str, Any], *, config: LLMConfig) -> bytes:
    req = Request(
        _chat_completions_url(config.api_base),
        method="POST",
        headers={
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        },
        data=json.dumps(payload).encode(),
    )

    try:
        with urlopen(req, timeout=config.timeout_s) as resp:  # noqa: S310 (explicit, feature-flagged network call)
            return resp.read()
    except HTTPError as exc:
        retryable = exc.code == 429 or 500 <= exc.code < 600
        raise LLMParserError(
            f"LLM HTTP error: {exc.code}",
            status=exc.code,
            retryable=retryable,
            retry_after_s=_retry_after_s(exc) if retryable else None,
        ) from exc
    except (URLError, TimeoutError, ConnectionError) as exc:
        raise LLMParserError("LLM connection error", retryable=True) from exc


def parse_school_query_json_via_llm(user_text: str, *, config: LLMConfig) -> dict[str, Any]:
    """Call an LLM and return the parsed JSON object.

    The call is compatible with OpenAI-style `/v1/chat/completions` APIs. Rate limits (429),
    provider errors (5xx) and connection failures are retried up to `config.max_retries` times,
    honoring `Retry-After` and otherwise backing off exponentially with jitter.
    """

    payload: dict[str, Any] = {
        "model": config.model,
        "temperature": 0,
        "messages": build_messages(user_text),
    }
    if config.provider == "openai":
        payload["response_format"] = {"type": "json_object"}

    attempts = max(1, config.max_retries + 1)
    for attempt in range(1, attempts + 1):
        try:
            body = _post_chat_completion(payload, config=config)
            break
        except LLMParserError as exc:
            if not exc.retryable or attempt == attempts:
                raise
            delay_s = exc.retry_after_s if exc.retry_after_s is not None else _backoff_s(attempt)
            logger.info("llm retry attempt=%d status=%s delay_s=%.2f", attempt, exc.status, delay_s)
            time.sleep(delay_s)
    else:
        raise LLMParserError("LLM request failed")

    try:
        decoded = json.loads(body)
        content = decoded["choices"][0]["message"]["content"]
    except Exception as exc:  # noqa: BLE001
        raise LLMParserError("Unexpected LLM response format") from exc

    if not isinstance(content, str):
        raise LLMParserError("Unexpected LLM response format")
    return _decode_json_object(content)


def llm_config_from_env(*, api_key: str | None = None) -> LLMConfig:
    """Build LLM config from environment variables.

    Environment variables (optional):
        - LLM_PROVIDER
        - LLM_MODEL
        - LLM_API_BASE
        - LLM_TIMEOUT_S
        - LLM_MAX_RETRIES
    """

    key = api_key or os.getenv("LLM_API_KEY") or ""
    if not key:
        raise LLMParserError("LLM_API_KEY is required")

    return LLMConfig(
        api_key=key,
        provider=os.getenv("LLM_PROVIDER") or "openai",
        model=os.getenv("LLM_MODEL") or "gpt-4o-mini",
        api_base=os.getenv("LLM_API_BASE") or "https://api.openai.com/v1",
        timeout_s=float(os.getenv("LLM_TIMEOUT_S") or "15"),
        max_retries=int(os.getenv("LLM_MAX_RETRIES") or "2"),
    )
