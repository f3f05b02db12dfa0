"""Tests for reply parsing and the strangeness analyzer."""

import pytest

from app.core.exceptions import InvalidInputError, TransientProviderError, UpstreamServiceError
from app.core.retry import RetryPolicy
from app.services.narrative_analyzer import (
    DEFAULT_PANEL_COUNT,
    NarrativeAnalyzer,
    _extract_json_object,
    _strip_markdown_fences,
    build_analysis_prompt,
    coerce_analysis,
    parse_analysis_payload,
)
from conftest import FakeTextClient, analysis_reply


class TestStripMarkdownFences:
    def test_strips_json_fence(self):
        assert _strip_markdown_fences('```json\n{"key": "value"}\n```') == '{"key": "value"}'

    def test_handles_no_fence(self):
        assert _strip_markdown_fences('{"key": "value"}') == '{"key": "value"}'

    def test_handles_fence_with_extra_text(self):
        text = 'Here is the JSON:\n```JSON\n{"key": "value"}\n```\nDone!'
        assert _strip_markdown_fences(text) == '{"key": "value"}'


class TestExtractJsonObject:
    def test_extracts_nested_object(self):
        text = 'prefix {"a": {"b": 1}} suffix'
        assert _extract_json_object(text) == '{"a": {"b": 1}}'

    def test_ignores_braces_inside_strings(self):
        text = '{"narrative": "a {strange} meal"} trailing'
        assert _extract_json_object(text) == '{"narrative": "a {strange} meal"}'

    def test_returns_none_without_object(self):
        assert _extract_json_object("no json here") is None


class TestParseAnalysisPayload:
    def test_plain_json(self):
        assert parse_analysis_payload(analysis_reply(score=40))["strangenessScore"] == 40

    def test_fenced_json_with_prose(self):
        raw = "Sure! Here you go:\n```json\n" + analysis_reply(score=55) + "\n```\nEnjoy."
        assert parse_analysis_payload(raw)["strangenessScore"] == 55

    def test_trailing_commas_are_repaired(self):
        raw = '{"strangenessScore": 61, "panelCount": 2, "narrative": "Odd.",}'
        payload = parse_analysis_payload(raw)
        assert payload["panelCount"] == 2

    @pytest.mark.parametrize("raw", ["", "   ", "the model rambled", "[1, 2, 3]"])
    def test_unusable_reply_is_upstream_failure(self, raw):
        with pytest.raises(UpstreamServiceError):
            parse_analysis_payload(raw)


class TestCoerceAnalysis:
    def test_clamps_score_and_panels(self):
        high = coerce_analysis({"strangenessScore": 140, "panelCount": 9, "narrative": "x"})
        assert high.score == 100.0
        assert high.panel_count == 4

        low = coerce_analysis({"strangenessScore": -5, "panelCount": 0, "narrative": "x"})
        assert low.score == 0.0
        assert low.panel_count == 1

    @pytest.mark.parametrize("panels", [None, "several"])
    def test_missing_or_invalid_panel_count_defaults(self, panels):
        payload = {"strangenessScore": 50, "narrative": "x"}
        if panels is not None:
            payload["panelCount"] = panels
        assert coerce_analysis(payload).panel_count == DEFAULT_PANEL_COUNT

    def test_numeric_strings_are_accepted(self):
        analysis = coerce_analysis({"strangenessScore": "72.5", "panelCount": "3", "narrative": "  Odd.  "})
        assert analysis.score == 72.5
        assert analysis.panel_count == 3
        assert analysis.narrative == "Odd."

    def test_non_numeric_score_is_rejected(self):
        with pytest.raises(UpstreamServiceError):
            coerce_analysis({"strangenessScore": "very", "narrative": "x"})

    @pytest.mark.parametrize("narrative", [None, "", "   ", 42])
    def test_missing_narrative_is_rejected(self, narrative):
        with pytest.raises(UpstreamServiceError):
            coerce_analysis({"strangenessScore": 10, "narrative": narrative})


class TestNarrativeAnalyzer:
    def test_analyze_returns_parsed_result(self):
        client = FakeTextClient(analysis_reply(score=72, panels=3))
        analysis = NarrativeAnalyzer(client, retry_policy=RetryPolicy.no_delay()).analyze(["a", "b"])

        assert analysis.score == 72
        assert analysis.panel_count == 3
        assert "Review 1: a" in client.prompts[0]
        assert "Review 2: b" in client.prompts[0]

    def test_only_first_reviews_up_to_cap_are_sent(self):
        client = FakeTextClient(analysis_reply())
        analyzer = NarrativeAnalyzer(client, retry_policy=RetryPolicy.no_delay(), analysis_cap=2)
        analyzer.analyze(["first", "  ", "second", "third"])

        prompt = client.prompts[0]
        assert "Review 2: second" in prompt
        assert "third" not in prompt

    def test_no_usable_text_is_invalid_input(self):
        analyzer = NarrativeAnalyzer(FakeTextClient(analysis_reply()), retry_policy=RetryPolicy.no_delay())
        with pytest.raises(InvalidInputError):
            analyzer.analyze(["", "   "])

    def test_transient_failures_are_retried(self):
        client = FakeTextClient(
            TransientProviderError("rate limited"),
            TransientProviderError("rate limited"),
            analysis_reply(score=33),
        )
        analysis = NarrativeAnalyzer(client, retry_policy=RetryPolicy.no_delay(3)).analyze(["a"])
        assert analysis.score == 33
        assert len(client.prompts) == 3

    def test_exhausted_retries_propagate_last_error(self):
        client = FakeTextClient(TransientProviderError("still down"))
        analyzer = NarrativeAnalyzer(client, retry_policy=RetryPolicy.no_delay(3))
        with pytest.raises(TransientProviderError, match="still down"):
            analyzer.analyze(["a"])
        assert len(client.prompts) == 3

    def test_non_transient_failure_is_not_retried(self):
        client = FakeTextClient(UpstreamServiceError("bad request"), analysis_reply())
        analyzer = NarrativeAnalyzer(client, retry_policy=RetryPolicy.no_delay(3))
        with pytest.raises(UpstreamServiceError, match="bad request"):
            analyzer.analyze(["a"])
        assert len(client.prompts) == 1

    def test_malformed_reply_is_upstream_failure(self):
        analyzer = NarrativeAnalyzer(FakeTextClient("not json at all"), retry_policy=RetryPolicy.no_delay())
        with pytest.raises(UpstreamServiceError):
            analyzer.analyze(["a"])


def test_prompt_lists_reviews_in_order():
    prompt = build_analysis_prompt(["one", "two"])
    assert prompt.index("Review 1: one") < prompt.index("Review 2: two")
    assert '"strangenessScore"' in prompt
