"""Tests for the host expression evaluator."""

import logging

import pytest

from botflow.graph.expression import ExpressionError, ExpressionEvaluator, as_number


@pytest.fixture
def evaluator() -> ExpressionEvaluator:
    return ExpressionEvaluator()


class TestEvaluate:
    def test_reference_outside_quotes_is_a_value(self, evaluator):
        assert evaluator.evaluate("{count} > 5", {"count": 10}) is True
        assert evaluator.evaluate("{count} > 5", {"count": 3}) is False

    def test_reference_inside_quotes_is_text(self, evaluator):
        assert evaluator.evaluate("'{user}' === 'Ann'", {"user": "Ann"}) is True
        assert evaluator.evaluate("'hi {user}'", {"user": "Bo"}) == "hi Bo"

    def test_quote_in_substituted_text_is_escaped(self, evaluator):
        assert evaluator.evaluate("'{text}' == \"it's\"", {"text": "it's"}) is True

    def test_javascript_spellings(self, evaluator):
        variables = {"a": 1, "b": 2}
        assert evaluator.evaluate("{a} === 1 && {b} !== 1", variables) is True
        assert evaluator.evaluate("{a} > 5 || !false", variables) is True
        assert evaluator.evaluate("null", variables) is None
        assert evaluator.evaluate("undefined == null", variables) is True

    def test_bare_identifiers(self, evaluator):
        assert evaluator.evaluate("count * 2", {"count": 4}) == 8

    def test_numeric_strings_compare_with_numbers(self, evaluator):
        assert evaluator.evaluate("{n} > 5", {"n": "10"}) is True
        assert evaluator.evaluate("{n} == 10", {"n": "10"}) is True

    def test_string_concat(self, evaluator):
        assert evaluator.evaluate("'a' + 1", {}) == "a1"

    def test_safe_calls(self, evaluator):
        variables = {"items": [1, 2, 3], "name": "Ann"}
        assert evaluator.evaluate("len(items) == 3", variables) is True
        assert evaluator.evaluate("items.length", variables) == 3
        assert evaluator.evaluate("name.toLowerCase() == 'ann'", variables) is True
        assert evaluator.evaluate("items.includes(2)", variables) is True

    def test_extra_names(self, evaluator):
        assert evaluator.evaluate("item * index", {}, {"item": 3, "index": 2}) == 6
        assert evaluator.evaluate("{item} > 1", {}, {"item": 3}) is True

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os')",
            "().__class__",
            "open('x')",
            "[x for x in items]",
            "lambda: 1",
            "missing > 1",
            "1 / 0",
            "7 ** 3000000",
            "(-8) ** 0.5",
            "",
        ],
    )
    def test_rejected(self, evaluator, expression):
        with pytest.raises(ExpressionError):
            evaluator.evaluate(expression, {"items": [1]})


class TestIsTrue:
    def test_failure_counts_as_false(self, evaluator, caplog):
        with caplog.at_level(logging.WARNING, logger="botflow.graph.expression"):
            assert evaluator.is_true("{x} >", {"x": 1}) is False
        assert "Condition evaluation failed" in caplog.text

    def test_truthiness(self, evaluator):
        assert evaluator.is_true("'non-empty'", {}) is True
        assert evaluator.is_true("0", {}) is False


class TestAsNumber:
    def test_values(self):
        assert as_number("42") == 42
        assert as_number(" 2.5 ") == 2.5
        assert as_number(True) is None
        assert as_number("abc") is None
        assert as_number("") is None
        assert as_number("inf") is None
        assert as_number(None) is None
