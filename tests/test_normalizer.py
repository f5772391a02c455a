"""Tests for query normalization."""

import asyncio

import pytest
from conftest import FakeSpellChecker

from product_search.search.normalizer import QueryNormalizer, clean_query, remove_stop_words


class TestCleanQuery:

    def test_lowercases_and_strips_punctuation(self):
        assert clean_query("  Dash-Cam, please!!  ") == "dash-cam please"

    def test_keeps_dollar_sign(self):
        assert clean_query("Watch under $50?") == "watch under $50"

    def test_collapses_whitespace(self):
        assert clean_query("smart \t  watch\n") == "smart watch"


class TestStopWords:

    def test_removes_stop_words(self):
        assert remove_stop_words("i need a dash cam for my car") == "dash cam car"

    def test_all_stop_words_yield_empty(self):
        assert remove_stop_words("i want to buy something") == ""


class TestQueryNormalizer:

    async def test_dash_cam_query(self):
        result = await QueryNormalizer().normalize("I need a dash cam for my car")

        assert result.normalized == "dash cam car"
        assert result.corrections == []
        assert result.cleaned == "i need a dash cam for my car"

    async def test_static_typo_correction(self):
        result = await QueryNormalizer().normalize("wirless earbud")

        assert result.normalized == "wireless earbuds"
        assert [c.original for c in result.corrections] == ["wirless", "earbud"]
        assert all(c.source == "static" for c in result.corrections)
        assert result.uncorrected == "wirless earbud"

    async def test_multi_word_typo_replacement(self):
        result = await QueryNormalizer().normalize("cheap dashcam")
        assert result.normalized == "cheap dash cam"

    async def test_empty_query(self):
        result = await QueryNormalizer().normalize("   ")
        assert result.normalized == ""
        assert result.is_empty

    async def test_idempotent(self):
        normalizer = QueryNormalizer()
        first = await normalizer.normalize("Show me a wirless Smart Watch!")
        second = await normalizer.normalize(first.normalized)
        assert second.normalized == first.normalized

    async def test_external_checker_used_when_no_static_fix(self):
        checker = FakeSpellChecker(answer="bluetooth speaker")
        result = await QueryNormalizer(spell_checker=checker).normalize("blutooth speaker")

        assert result.normalized == "bluetooth speaker"
        assert result.used_external
        assert result.corrections[0].source == "external"
        assert checker.calls == ["blutooth speaker"]

    async def test_external_checker_skipped_after_static_fix(self):
        checker = FakeSpellChecker(answer="something else")
        result = await QueryNormalizer(spell_checker=checker).normalize("wirless speaker")

        assert result.normalized == "wireless speaker"
        assert checker.calls == []

    async def test_external_checker_skipped_for_short_queries(self):
        checker = FakeSpellChecker(answer="tv")
        await QueryNormalizer(spell_checker=checker, min_length=3).normalize("tvv")
        assert checker.calls == []

    async def test_external_failure_keeps_local_result(self):
        checker = FakeSpellChecker(error=RuntimeError("provider down"))
        result = await QueryNormalizer(spell_checker=checker).normalize("blutooth speaker")

        assert result.normalized == "blutooth speaker"
        assert not result.used_external

    async def test_external_timeout_keeps_local_result(self):
        checker = FakeSpellChecker(answer="bluetooth speaker", delay=1.0)
        normalizer = QueryNormalizer(spell_checker=checker, timeout=0.01)

        result = await normalizer.normalize("blutooth speaker")

        assert result.normalized == "blutooth speaker"
        assert not result.used_external

    async def test_external_answer_is_cleaned(self):
        checker = FakeSpellChecker(answer="The Bluetooth Speaker!")
        result = await QueryNormalizer(spell_checker=checker).normalize("blutooth speaker")
        assert result.normalized == "bluetooth speaker"

    async def test_cancellation_propagates(self):
        checker = FakeSpellChecker(answer="x", delay=10)
        task = asyncio.create_task(
            QueryNormalizer(spell_checker=checker, timeout=30).normalize("blutooth speaker")
        )
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
