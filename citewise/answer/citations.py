"""
Citation Reconciliation
========================

Post-processing of raw generated text against the Evidence Set it was
given. With N evidence entries, the only valid citation vocabulary is
``[1]`` … ``[N]``.

Recognized citation tokens:
    [3]          single number
    [1, 4]       grouped numbers
    [Source 2]   echo of the evidence block label

Cleaning rules:
    - numbers 0 or > N are removed; N == 0 removes every token
    - ``[Source x]`` with a non-numeric x is removed
    - surviving members of a group become separate tokens: [1][4]
    - ``[Source n]`` with a valid n is rewritten to ``[n]``

Bracketed text that is not a citation token ("[beta]", "[]") is left
alone.

Extraction then reads the distinct in-range numbers from the CLEANED
text, so a citation exists in the result iff its number is literally
in the answer.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from citewise.schemas.answer import Citation
from citewise.schemas.fragment import Candidate

logger = logging.getLogger("citewise.answer.citations")

_TOKEN_RE = re.compile(
    r"\[\s*(?:(?P<source>source)\s*(?P<label>[^\[\]\n]*?)|(?P<numbers>\d+(?:\s*,\s*\d+)*))\s*\]",
    re.IGNORECASE | re.ASCII,
)
_NUMBER_RE = re.compile(r"\[(\d+)\]", re.ASCII)
_SPACE_BEFORE_PUNCT_RE = re.compile(r"[ \t]+([.,;:!?])")
_MULTI_SPACE_RE = re.compile(r"[ \t]{2,}")


def clean_invalid_citations(text: str, max_valid: int) -> str:
    """
    Strip citation tokens outside ``[1, max_valid]``.

    Args:
        text: Raw generated answer.
        max_valid: Evidence Set size N.

    Returns:
        Text in which every citation token is a plain ``[n]`` with
        1 <= n <= N.
    """
    removed: list[str] = []

    def _replace(match: re.Match) -> str:
        if match.group("source") is not None:
            label = match.group("label").strip()
            # str.isdigit also accepts superscripts, which int() rejects
            numbers = [label] if label.isascii() and label.isdigit() else []
        else:
            numbers = re.split(r"\s*,\s*", match.group("numbers"))

        kept = [int(n) for n in numbers if 1 <= int(n) <= max_valid]
        if len(kept) != len(numbers) or not numbers:
            removed.append(match.group(0))
        return "".join(f"[{n}]" for n in kept)

    cleaned = _TOKEN_RE.sub(_replace, text)
    if removed:
        logger.warning(f"Stripped invalid citation token(s) {removed} (N={max_valid})")
        cleaned = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", cleaned)
        cleaned = _MULTI_SPACE_RE.sub(" ", cleaned)
    return cleaned.strip()


def extract_citation_numbers(text: str, max_valid: int) -> list[int]:
    """Distinct in-range citation numbers in order of first use."""
    seen: list[int] = []
    for match in _NUMBER_RE.finditer(text):
        number = int(match.group(1))
        if 1 <= number <= max_valid and number not in seen:
            seen.append(number)
    return seen


def build_citations(text: str, evidence: Sequence[Candidate]) -> list[Citation]:
    """
    Citation list for the numbers present in cleaned ``text``.

    Each number n maps to ``evidence[n - 1]``. The list is sorted by
    Evidence Set position.
    """
    numbers = sorted(extract_citation_numbers(text, len(evidence)))
    return [Citation.from_candidate(n, evidence[n - 1]) for n in numbers]
