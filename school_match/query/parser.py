"""School query parser orchestration (LLM optional; local rules fallback)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from school_match.query.llm_parser import (
    LLMConfig,
    LLMParserError,
    llm_config_from_env,
    parse_school_query_json_via_llm,
)
from school_match.query.rules_parser import parse_school_query
from school_match.query.schema import MAX_QUERY_LENGTH, ParsedFilter, parsed_filter_from_obj

logger = logging.getLogger(__name__)

ParseSource = Literal["llm", "local"]

# Both the local heuristic parser and the LLM-backed parser satisfy this shape.
SchoolQueryParser = Callable[[str], ParsedFilter]


@dataclass(frozen=True)
class ParseResult:
    """Validated filter plus information about which parser produced it.

    `llm_failed` is set when the LLM was enabled but unusable, so callers can tell the user that
    local matching was used instead.
    """

    filters: ParsedFilter
    source: ParseSource
    llm_failed: bool = False


def parse_school_query_via_llm(text: str, *, config: LLMConfig) -> ParsedFilter:
    """LLM-backed parser: ask for ParsedFilter JSON and sanitize it."""

    obj: dict[str, Any] = parse_school_query_json_via_llm(text, config=config)
    return parsed_filter_from_obj(obj)


def parse_school_query_with_source(
        text: str,
        *,
        llm_enabled: bool,
        llm_config: LLMConfig | None = None,
) -> ParseResult:
    """Parse text into a ParsedFilter.

    Strategy:
        1) Cap the input at `MAX_QUERY_LENGTH` characters.
        2) If LLM mode is enabled, ask the LLM for ParsedFilter JSON and validate it.
        3) On any failure (network, timeout, rate limit, invalid JSON), fall back to the local parser.
    """

    text = (text or "")[:MAX_QUERY_LENGTH]

    if llm_enabled:
        try:
            cfg = llm_config or llm_config_from_env()
            filters = parse_school_query_via_llm(text, config=cfg)
            return ParseResult(filters=filters, source="llm")
        except (LLMParserError, ValueError) as exc:
            # Remote failures must never break search; fall back to local matching.
            logger.info(
                "llm parser failed, using local matching: %s status=%s",
                exc,
                getattr(exc, "status", None),
            )
            return ParseResult(filters=parse_school_query(text), source="local", llm_failed=True)

    return ParseResult(filters=parse_school_query(text), source="local")


def parse_filters(text: str, *, llm_enabled: bool, llm_config: LLMConfig | None = None) -> ParsedFilter:
    """Parse text into a validated ParsedFilter (convenience wrapper)."""

    return parse_school_query_with_source(text, llm_enabled=llm_enabled, llm_config=llm_config).filters
