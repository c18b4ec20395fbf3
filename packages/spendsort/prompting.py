"""Prompt construction for the remote classifier tier.

- ``build_system_instructions``: role and output contract.
- ``build_taxonomy_text``: the full two-level tree in display spelling.
- ``group_pattern_examples``: learned patterns grouped per ``Main -> Sub``.
- ``build_user_content``: taxonomy, examples and the transaction itself.

The expected reply is a single line ``Main Category -> Subcategory``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from .logging_setup import get_logger
from .models import Direction
from .taxonomy import (
    MainCategory,
    display_main,
    display_sub,
    is_valid_pair,
    subcategories_of,
    to_display,
)

_logger = get_logger("spendsort.prompting")

MAX_EXAMPLES_PER_CATEGORY = 5
PAIR_SEPARATOR = "->"

_M = MainCategory

# Direction hint shown next to each main category.
_DIRECTION_HINTS: dict[MainCategory, str] = {
    _M.INCOME: "ONLY for CREDIT transactions",
    _M.GIFTS_AND_DONATIONS: "Depends on transaction type",
    _M.MISCELLANEOUS: "",
}
_DEFAULT_HINT = "ONLY for DEBIT transactions"


class PatternLike(Protocol):
    pattern: str
    main_category: str
    sub_category: str


def build_system_instructions() -> str:
    return (
        "You are an expert financial advisor helping a family categorize their bank "
        "transactions. Classify each transaction into exactly one category and subcategory "
        "from the provided taxonomy. Never invent categories. If no category fits, use "
        '"Miscellaneous -> Other". Respond with ONLY "Category -> Subcategory", nothing else.'
    )


def build_taxonomy_text() -> str:
    lines: list[str] = ["Here are the possible categories and subcategories:", ""]
    for main in MainCategory:
        hint = _DIRECTION_HINTS.get(main, _DEFAULT_HINT)
        header = f"{display_main(main)}:"
        if hint:
            header += f" ({hint})"
        lines.append(header)
        for sub in subcategories_of(main):
            lines.append(f"    - {display_sub(sub)}")
        lines.append("")
    return "\n".join(lines)


def group_pattern_examples(
    patterns: Iterable[PatternLike],
    *,
    per_category: int = MAX_EXAMPLES_PER_CATEGORY,
) -> dict[str, list[str]]:
    """Group patterns by ``"Main -> Sub"`` display label, keeping input order.

    Callers pass patterns ordered by usage (descending), so the first
    ``per_category`` entries per label are the most used ones. Patterns whose
    stored pair is not a valid taxonomy pair are skipped.
    """

    grouped: dict[str, list[str]] = {}
    for p in patterns:
        if not is_valid_pair(p.main_category, p.sub_category):
            _logger.debug(
                "prompting:skip_pattern pattern=%r main=%s sub=%s",
                p.pattern,
                p.main_category,
                p.sub_category,
            )
            continue
        main_d, sub_d = to_display(p.main_category, p.sub_category)
        bucket = grouped.setdefault(f"{main_d} {PAIR_SEPARATOR} {sub_d}", [])
        if len(bucket) < per_category:
            bucket.append(p.pattern)
    return grouped


def _examples_text(examples: Mapping[str, Sequence[str]]) -> str:
    rows = [f"- {label}: {', '.join(pats)}" for label, pats in examples.items() if pats]
    if not rows:
        return ""
    return "Common patterns for each category:\n" + "\n".join(rows) + "\n"


def _direction_text(direction: Direction) -> str:
    d = Direction(direction)
    flow = "money coming in" if d is Direction.CREDIT else "money going out"
    return f"{d.value.upper()} ({flow})"


def build_user_content(
    description: str,
    direction: Direction,
    examples: Mapping[str, Sequence[str]] | None = None,
) -> str:
    """Return the user message for one transaction."""

    parts = [
        f"IMPORTANT: This is a {_direction_text(direction)} transaction.",
        'Provide the result as a single string with the format: "Category -> Subcategory"',
        "",
        build_taxonomy_text(),
    ]
    ex = _examples_text(examples or {})
    if ex:
        parts.append(ex)
    parts.extend(
        [
            f'Transaction Description: "{description}"',
            f"Transaction Type: {_direction_text(direction)}",
            "",
            "Respond with ONLY the category and subcategory in the format "
            '"Category -> Subcategory".',
        ]
    )
    return "\n".join(parts)


__all__ = [
    "MAX_EXAMPLES_PER_CATEGORY",
    "PAIR_SEPARATOR",
    "PatternLike",
    "build_system_instructions",
    "build_taxonomy_text",
    "build_user_content",
    "group_pattern_examples",
]
