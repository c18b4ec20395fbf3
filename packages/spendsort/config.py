"""Runtime settings read from the environment.

Entrypoints load ``.env`` (python-dotenv) before calling
:meth:`Settings.from_env`; library code receives a ``Settings`` instance and
never reads the environment itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .logging_setup import get_logger

_logger = get_logger("spendsort.config")

DEFAULT_MODEL = "gpt-4o-mini"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        _logger.warning("config:invalid_value name=%s value=%r default=%s", name, raw, default)
        return default
    if value < 0:
        _logger.warning("config:invalid_value name=%s value=%r default=%s", name, raw, default)
        return default
    return value


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        _logger.warning("config:invalid_value name=%s value=%r default=%s", name, raw, default)
        return default
    if value < minimum:
        _logger.warning("config:invalid_value name=%s value=%r default=%s", name, raw, default)
        return default
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    llm_timeout_sec: float = 5.0
    llm_max_retries: int = 2
    llm_backoff_unit_sec: float = 1.0
    max_import_errors: int = 50
    recategorize_chunk_size: int = 5
    recategorize_delay_sec: float = 1.0

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``env`` (defaults to ``os.environ``).

        Invalid numeric values are logged and replaced by the defaults.
        """

        e = os.environ if env is None else env
        return cls(
            database_url=(e.get("DATABASE_URL") or None),
            openai_api_key=(e.get("OPENAI_API_KEY") or None),
            model=(e.get("SPENDSORT_MODEL") or "").strip() or DEFAULT_MODEL,
            llm_timeout_sec=_env_float(e, "SPENDSORT_LLM_TIMEOUT", 5.0),
            llm_max_retries=_env_int(e, "SPENDSORT_LLM_MAX_RETRIES", 2),
            llm_backoff_unit_sec=_env_float(e, "SPENDSORT_LLM_BACKOFF", 1.0),
            max_import_errors=_env_int(e, "SPENDSORT_MAX_IMPORT_ERRORS", 50, minimum=1),
            recategorize_chunk_size=_env_int(e, "SPENDSORT_RECATEGORIZE_CHUNK", 5, minimum=1),
            recategorize_delay_sec=_env_float(e, "SPENDSORT_RECATEGORIZE_DELAY", 1.0),
        )


__all__ = ["DEFAULT_MODEL", "Settings"]
