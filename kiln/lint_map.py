"""Canonical lint rule table mapping kiln rule names to per-tool identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import takewhile

from .options import LintSeverity

SUGGESTION_THRESHOLD = 0.6


@dataclass(frozen=True)
class LintMapping:
    """One canonical lint rule and its spelling in each supported tool."""

    canonical: str
    slang_option: str | None
    verilator_code: str | None
    description: str
    default_severity: LintSeverity


CANONICAL_RULES: tuple[LintMapping, ...] = (
    LintMapping(
        canonical="width-trunc",
        slang_option="width-trunc",
        verilator_code="WIDTHTRUNC",
        description="Implicit truncation on assignment",
        default_severity=LintSeverity.WARN,
    ),
    LintMapping(
        canonical="case-incomplete",
        slang_option="case-incomplete",
        verilator_code="CASEINCOMPLETE",
        description="case/casez/casex missing values",
        default_severity=LintSeverity.WARN,
    ),
    LintMapping(
        canonical="unused",
        slang_option="unused",
        verilator_code="UNUSED",
        description="Unused variables or signals",
        default_severity=LintSeverity.WARN,
    ),
    LintMapping(
        canonical="implicit-net",
        slang_option="implicit-net",
        verilator_code=None,
        description="Implicit net declaration",
        default_severity=LintSeverity.WARN,
    ),
    LintMapping(
        canonical="port-coercion",
        slang_option="port-coercion",
        verilator_code=None,
        description="Port direction or type coercion",
        default_severity=LintSeverity.WARN,
    ),
)


def _jaro(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    search_range = max(max(len(a), len(b)) // 2 - 1, 0)
    b_used = [False] * len(b)
    a_matched: list[str] = []
    for i, ch in enumerate(a):
        low = max(i - search_range, 0)
        high = min(len(b), i + search_range + 1)
        for j in range(low, high):
            if not b_used[j] and b[j] == ch:
                b_used[j] = True
                a_matched.append(ch)
                break
    matches = len(a_matched)
    if matches == 0:
        return 0.0
    b_matched = [ch for ch, used in zip(b, b_used) if used]
    transpositions = sum(x != y for x, y in zip(a_matched, b_matched)) // 2
    return (
        matches / len(a) + matches / len(b) + (matches - transpositions) / matches
    ) / 3


def jaro_winkler(a: str, b: str) -> float:
    """Jaro-Winkler similarity of two strings, in the range 0.0 to 1.0."""
    sim = _jaro(a, b)
    if sim <= 0.7:
        return sim
    prefix = sum(1 for _ in takewhile(lambda pair: pair[0] == pair[1], zip(a[:4], b)))
    return min(sim + 0.1 * prefix * (1.0 - sim), 1.0)


def lookup(name: str) -> LintMapping | None:
    """Return the mapping for a canonical rule name, or None."""
    return next((m for m in CANONICAL_RULES if m.canonical == name), None)


def suggest(unknown: str) -> str | None:
    """Return the closest canonical rule name to ``unknown``, if close enough."""
    best: tuple[str, float] | None = None
    for mapping in CANONICAL_RULES:
        score = jaro_winkler(unknown, mapping.canonical)
        if score < SUGGESTION_THRESHOLD:
            continue
        # Later rules win ties.
        if best is None or score >= best[1]:
            best = (mapping.canonical, score)
    return best[0] if best else None