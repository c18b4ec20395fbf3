"""Test helpers to stub the OpenAI Responses client used by classify.py.

``OpenAIStub`` answers each ``responses.create`` call either from a script
(outcomes consumed in call order) or, for concurrent callers, from a
``decide`` callable that maps the transaction description to an outcome. An
outcome is output text or an exception instance to raise.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable
from typing import Any, TypeAlias

import httpx
from openai import APITimeoutError

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")
_DESCRIPTION_RE = re.compile(r'^Transaction Description: "(.*)"$', re.MULTILINE)

Outcome: TypeAlias = str | BaseException | None


def timeout_error() -> APITimeoutError:
    return APITimeoutError(request=_REQUEST)


def description_of(user_content: str) -> str:
    m = _DESCRIPTION_RE.search(user_content)
    if m is None:
        raise AssertionError("classify: user content missing transaction description")
    return m.group(1)


class _Resp:
    def __init__(self, text: str | None) -> None:
        self.output_text = text


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by the classifier.

    Parameters
    ----------
    script:
        Outcomes for successive calls.
    decide:
        Maps the description embedded in the prompt to an outcome; takes
        precedence over ``script``.
    default:
        Output text once ``script`` is exhausted.
    **client_kwargs:
        Constructor kwargs (``api_key``, ``timeout``...) recorded for asserts.
    """

    def __init__(
        self,
        script: list[Outcome] | None = None,
        *,
        decide: Callable[[str], Outcome] | None = None,
        default: str | None = "Miscellaneous -> Other",
        **client_kwargs: Any,
    ) -> None:
        self._script = list(script or [])
        self._decide = decide
        self._default = default
        self._lock = threading.Lock()
        self.client_kwargs = client_kwargs
        self.calls: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> _Resp:
                item = self._outer._next(kwargs)
                if isinstance(item, BaseException):
                    raise item
                return _Resp(item)

        self.responses = _Responses(self)

    def _next(self, kwargs: dict[str, Any]) -> Outcome:
        with self._lock:
            self.calls.append(kwargs)
            if self._decide is not None:
                return self._decide(description_of(kwargs["input"]))
            if self._script:
                return self._script.pop(0)
            return self._default
