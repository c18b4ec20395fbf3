"""Two-tier transaction classifier.

``CategoryClassifier.classify(description, direction)`` always returns a valid
taxonomy pair. Per call:

1. cache lookup on ``(lowercased description, direction)``;
2. keyword rules (``spendsort.rules``); credit rows stop here;
3. remote classification through the OpenAI Responses API for debit rows with
   no rule hit, retried on transport failures with a linear backoff
   (``k * unit`` seconds before retry ``k``) and bounded by a per-request
   timeout;
4. the default pair (Miscellaneous/Other for debit, Income/OtherIncome for
   credit).

The resulting pair is cached before returning. The classifier reads learned
patterns for prompt examples but never writes to the store.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeAlias

from openai import APIConnectionError, APITimeoutError, OpenAI
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError

from . import prompting
from .cache import ClassificationCache
from .config import Settings
from .errors import ClassificationError
from .logging_setup import get_logger
from .models import Classification, ClassificationSource, Direction
from .rules import match_rules
from .taxonomy import (
    FALLBACK_PAIR,
    INCOME_DEFAULT_PAIR,
    CategoryPair,
    MainCategory,
    SubCategory,
    resolve_main,
    resolve_sub,
    subcategories_of,
)

_logger = get_logger("spendsort.classify")

_TEMPERATURE = 0.2
_MAX_OUTPUT_TOKENS = 20

PatternSource: TypeAlias = Callable[[], Sequence[prompting.PatternLike]]
Examples: TypeAlias = Mapping[str, Sequence[str]]


# ---------------------------------------------------------------------------
# Verdict parsing
# ---------------------------------------------------------------------------


class LlmVerdict(BaseModel):
    """A ``Main -> Sub`` reply resolved against the taxonomy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    main: MainCategory
    sub: SubCategory

    @field_validator("main", mode="before")
    @classmethod
    def _resolve_main(cls, v: Any) -> MainCategory:
        if isinstance(v, MainCategory):
            return v
        if not isinstance(v, str) or not v.strip():
            raise ValueError("main category must be a non-empty string")
        return resolve_main(v)

    @field_validator("sub", mode="before")
    @classmethod
    def _resolve_sub(cls, v: Any) -> SubCategory:
        if isinstance(v, SubCategory):
            return v
        if not isinstance(v, str) or not v.strip():
            raise ValueError("subcategory must be a non-empty string")
        return resolve_sub(v)

    @model_validator(mode="after")
    def _sub_belongs_to_main(self) -> LlmVerdict:
        if self.sub not in subcategories_of(self.main):
            raise ValueError(
                f"subcategory {self.sub.value} does not belong to main category {self.main.value}"
            )
        return self

    @property
    def pair(self) -> CategoryPair:
        return CategoryPair(self.main, self.sub)


def parse_verdict(text: str | None) -> CategoryPair:
    """Parse ``"Main Category -> Subcategory"`` strictly.

    Surrounding whitespace, quotes and a trailing period are tolerated.
    Raises :class:`ClassificationError` when the reply does not split into
    exactly two parts, names an unknown category, or pairs a subcategory with
    the wrong main category.
    """

    if text is None:
        raise ClassificationError("empty response")
    cleaned = text.strip().strip("\"'`").strip().rstrip(".").strip()
    parts = [p.strip() for p in cleaned.split(prompting.PAIR_SEPARATOR)]
    if len(parts) != 2:
        raise ClassificationError(
            f'Invalid category format: {cleaned!r}. Expected "MainCategory -> SubCategory"'
        )
    try:
        verdict = LlmVerdict.model_validate({"main": parts[0], "sub": parts[1]})
    except ValidationError as exc:
        raise ClassificationError(f"Invalid category: {cleaned!r}") from exc
    return verdict.pair


# ---------------------------------------------------------------------------
# Remote call helpers
# ---------------------------------------------------------------------------


def _is_retryable(exc: BaseException) -> bool:
    """Return True for timeouts, connection failures, HTTP 429 and 5xx."""

    if isinstance(exc, (APITimeoutError, APIConnectionError, TimeoutError, ConnectionError)):
        return True
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def default_pair(direction: Direction) -> CategoryPair:
    return INCOME_DEFAULT_PAIR if Direction(direction) is Direction.CREDIT else FALLBACK_PAIR


class CategoryClassifier:
    """Classify descriptions into taxonomy pairs.

    Parameters
    ----------
    settings:
        Model, timeout and retry configuration. The remote tier is enabled
        when ``settings.openai_api_key`` is set, unless ``llm_enabled``
        overrides it.
    cache:
        Cache instance owned by this classifier (a fresh one when omitted).
    pattern_source:
        Returns learned patterns ordered by usage (descending); used for
        prompt examples. Store errors are logged and ignored.
    client_factory:
        Builds the OpenAI client; defaults to ``OpenAI(...)`` from settings.
    sleep:
        Backoff sleep function (injected in tests).
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        cache: ClassificationCache | None = None,
        pattern_source: PatternSource | None = None,
        client_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        llm_enabled: bool | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self.cache = cache if cache is not None else ClassificationCache()
        self._pattern_source = pattern_source
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._llm_enabled = self._settings.llm_enabled if llm_enabled is None else llm_enabled
        self._client: Any | None = None
        self._client_lock = threading.Lock()
        if not self._llm_enabled:
            _logger.warning("classify:llm_disabled reason=no_api_key_or_disabled")

    @property
    def llm_enabled(self) -> bool:
        return self._llm_enabled

    # -- public API ---------------------------------------------------------

    def classify(self, description: str, direction: Direction) -> CategoryPair:
        return self.classify_detailed(description, direction).pair

    def classify_detailed(
        self,
        description: str,
        direction: Direction,
        *,
        use_cache: bool = True,
        examples: Examples | None = None,
    ) -> Classification:
        """Classify and report which tier produced the pair.

        ``use_cache=False`` skips the lookup (the result is still stored).
        ``examples`` supplies pre-grouped prompt examples instead of reading
        ``pattern_source``; callers classifying from worker threads pass them
        so the store is only touched from the calling thread.
        """

        direction = Direction(direction)
        desc = description if isinstance(description, str) else str(description)

        if use_cache:
            cached = self.cache.get(desc, direction)
            if cached is not None:
                _logger.debug("classify:cache_hit direction=%s", direction.value)
                return Classification(cached, ClassificationSource.CACHE)

        result = self._classify_uncached(desc, direction, examples)
        self.cache.put(desc, direction, result.pair)
        return result

    def load_examples(self) -> Examples:
        """Fetch learned patterns and group them for the prompt."""

        if self._pattern_source is None:
            return {}
        try:
            patterns = self._pattern_source()
        except SQLAlchemyError as exc:
            _logger.warning("classify:patterns_unavailable error=%s", exc.__class__.__name__)
            return {}
        return prompting.group_pattern_examples(patterns)

    # -- tiers ----------------------------------------------------------------

    def _classify_uncached(
        self, description: str, direction: Direction, examples: Examples | None
    ) -> Classification:
        rule_pair = match_rules(description, direction)
        if rule_pair is not None:
            _logger.debug(
                "classify:rule_hit direction=%s main=%s sub=%s",
                direction.value,
                rule_pair.main.value,
                rule_pair.sub.value,
            )
            return Classification(rule_pair, ClassificationSource.RULE)

        if direction is Direction.DEBIT and self._llm_enabled:
            pair = self._classify_remote(description, direction, examples)
            if pair is not None:
                return Classification(pair, ClassificationSource.LLM)

        return Classification(default_pair(direction), ClassificationSource.FALLBACK)

    def _default_client(self) -> Any:
        return OpenAI(
            api_key=self._settings.openai_api_key,
            timeout=self._settings.llm_timeout_sec,
            max_retries=0,
        )

    def _get_client(self) -> Any:
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _classify_remote(
        self, description: str, direction: Direction, examples: Examples | None
    ) -> CategoryPair | None:
        if examples is None:
            examples = self.load_examples()
        instructions = prompting.build_system_instructions()
        user_content = prompting.build_user_content(description, direction, examples)
        max_attempts = self._settings.llm_max_retries + 1

        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                client = self._get_client()
                resp = client.responses.create(
                    model=self._settings.model,
                    instructions=instructions,
                    input=user_content,
                    temperature=_TEMPERATURE,
                    max_output_tokens=_MAX_OUTPUT_TOKENS,
                    timeout=self._settings.llm_timeout_sec,
                )
                pair = parse_verdict(getattr(resp, "output_text", None))
            except ClassificationError as e:
                # Malformed or off-taxonomy replies are terminal.
                _logger.warning("classify:llm_invalid attempt=%d error=%s", attempt, e)
                return None
            except Exception as e:  # noqa: BLE001
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= max_attempts or not _is_retryable(e):
                    _logger.warning(
                        "classify:llm_exhausted attempts=%d latency_ms=%.2f error=%s",
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    return None
                _logger.warning(
                    "classify:llm_retry attempt=%d latency_ms=%.2f error=%s",
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                self._sleep(self._settings.llm_backoff_unit_sec * attempt)
                attempt += 1
                continue

            _logger.info(
                "classify:llm_verdict attempt=%d main=%s sub=%s",
                attempt,
                pair.main.value,
                pair.sub.value,
            )
            return pair


__all__ = [
    "CategoryClassifier",
    "LlmVerdict",
    "default_pair",
    "parse_verdict",
]
