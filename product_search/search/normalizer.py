"""
Query normalization.

Lower-cases and cleans the raw query, drops stop words, then applies static
typo corrections. An optional external spell checker is consulted only when
the static map found nothing and the query is long enough to be worth it.
"""

import asyncio
import re
from typing import Protocol

import structlog

from product_search.models.query import Correction, NormalizationResult
from product_search.search.dictionaries import STOP_WORDS, TYPO_CORRECTIONS

logger = structlog.get_logger()

STATIC_CORRECTION_CONFIDENCE = 0.9
EXTERNAL_CORRECTION_CONFIDENCE = 0.9

_DISALLOWED_CHARS = re.compile(r"[^\w\s$-]")
_WHITESPACE = re.compile(r"\s+")


class SpellChecker(Protocol):
    """External spelling-correction capability."""

    async def correct(self, query: str) -> str | None:
        """Return a corrected query, or None when there is nothing to fix."""
        ...


def clean_query(text: str) -> str:
    """Lower-case, keep letters/digits/spaces/``$``/``-``, collapse whitespace."""
    text = _DISALLOWED_CHARS.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def remove_stop_words(text: str) -> str:
    return " ".join(token for token in text.split() if token not in STOP_WORDS)


class QueryNormalizer:
    """Normalize raw queries into search-ready text."""

    def __init__(
        self,
        spell_checker: SpellChecker | None = None,
        min_length: int = 3,
        timeout: float = 5.0,
    ):
        self.spell_checker = spell_checker
        self.min_length = min_length
        self.timeout = timeout

    async def normalize(self, raw_query: str) -> NormalizationResult:
        """Normalize a raw query.

        Empty or whitespace-only input yields an empty normalized query,
        which callers treat as "no constraint".
        """
        cleaned = clean_query(raw_query or "")
        if not cleaned:
            return NormalizationResult(normalized="")

        stripped = remove_stop_words(cleaned)
        corrected_tokens: list[str] = []
        corrections: list[Correction] = []

        for token in stripped.split():
            fix = TYPO_CORRECTIONS.get(token)
            if fix is None:
                corrected_tokens.append(token)
                continue
            corrections.append(
                Correction(
                    original=token,
                    corrected=fix,
                    confidence=STATIC_CORRECTION_CONFIDENCE,
                )
            )
            corrected_tokens.append(fix)

        normalized = " ".join(corrected_tokens)
        used_external = False

        if (
            not corrections
            and self.spell_checker is not None
            and len(normalized) > self.min_length
        ):
            external = await self._external_correction(normalized)
            if external and external != normalized:
                corrections.append(
                    Correction(
                        original=normalized,
                        corrected=external,
                        confidence=EXTERNAL_CORRECTION_CONFIDENCE,
                        source="external",
                    )
                )
                normalized = external
                used_external = True

        return NormalizationResult(
            normalized=normalized,
            corrections=corrections,
            cleaned=cleaned,
            uncorrected=stripped,
            used_external=used_external,
        )

    async def _external_correction(self, query: str) -> str | None:
        """Ask the external spell checker; any failure keeps the local query."""
        try:
            suggestion = await asyncio.wait_for(
                self.spell_checker.correct(query), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("spell_check_timeout", query=query, timeout=self.timeout)
            return None
        except Exception as e:
            logger.warning("spell_check_failed", query=query, error=str(e))
            return None

        if not suggestion:
            return None

        return remove_stop_words(clean_query(suggestion)) or None
