"""Tests for query classification, complexity and prompt building."""

import pytest

from app.services.classifier import (
    SYSTEM_PROMPT,
    QueryCategory,
    QueryComplexity,
    build_prompt,
    classify,
    complexity,
)


class TestClassify:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Analyze my invoice with CRV fees", QueryCategory.INVOICE_ANALYSIS),
            ("Revisa esta FACTURA", QueryCategory.INVOICE_ANALYSIS),
            ("How can I improve my profit?", QueryCategory.MARGIN_OPTIMIZATION),
            ("Write an Excel formula for totals", QueryCategory.EXCEL_FORMULAS),
            ("Demand during FIFA week", QueryCategory.FIFA_PROJECTIONS),
            ("hello", QueryCategory.GENERAL_CONSULTATION),
            ("", QueryCategory.GENERAL_CONSULTATION),
        ],
    )
    def test_categories(self, message, expected):
        assert classify(message) == expected

    def test_first_rule_wins(self):
        # matches invoice, margin and excel rules; invoice comes first
        assert classify("invoice margin formula") == QueryCategory.INVOICE_ANALYSIS

    def test_total_and_deterministic(self):
        for message in ["", "\n\n", "🙂", "2026", "line one\nline two"]:
            first = classify(message)
            assert first in set(QueryCategory)
            assert classify(message) == first


class TestComplexity:
    def test_short_plain_message_is_fast(self):
        assert complexity("hello there") == QueryComplexity.FAST

    def test_signal_keyword_is_normal(self):
        assert complexity("give me a formula") == QueryComplexity.NORMAL

    def test_signal_keyword_with_digit_is_complex(self):
        assert complexity("excel formula for column 3") == QueryComplexity.COMPLEX

    def test_word_count_thresholds(self):
        assert complexity(" ".join(["word"] * 20)) == QueryComplexity.FAST
        assert complexity(" ".join(["word"] * 21)) == QueryComplexity.NORMAL
        assert complexity(" ".join(["word"] * 51)) == QueryComplexity.COMPLEX

    def test_digit_alone_does_not_raise_tier(self):
        assert complexity("order 42 cases") == QueryComplexity.FAST


class TestBuildPrompt:
    def test_includes_category_context(self):
        prompt = build_prompt(QueryCategory.INVOICE_ANALYSIS, "check my invoice")
        assert prompt.startswith(SYSTEM_PROMPT)
        assert "coupons and CRV fees" in prompt
        assert "User: check my invoice" in prompt

    def test_general_has_no_extra_context(self):
        prompt = build_prompt(QueryCategory.GENERAL_CONSULTATION, "hello")
        assert prompt == f"{SYSTEM_PROMPT}\n\nUser: hello\n\nRespond as the B&R Food Services specialist:"
