"""Tests for semantic analysis and its rate limiter."""

import json
import pytest
from unittest.mock import AsyncMock, Mock, patch

from feedstudio.models.analysis import ContentAnalysis
from feedstudio.services.rate_limiter import TokenBucketRateLimiter
from feedstudio.services.semantic_analyzer import (
    AnalysisResponseError,
    SemanticAnalyzer,
    parse_analysis_response,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def mock_analysis_payload():
    return {
        "topics": [
            {
                "name": "Python",
                "description": "The Python language",
                "category": "technology",
                "confidence": 0.92,
                "keywords": ["python", "release"],
            },
            {"name": "Packaging", "confidence": 1.4},
        ],
        "primaryTopic": {"name": "Python", "category": "technology", "confidence": 0.95},
        "relevanceScore": 0.8,
        "sentiment": "Positive",
        "confidence": 0.9,
    }


def completion(content: str, total_tokens: int = 450):
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    response.usage = Mock(total_tokens=total_tokens)
    return response


@pytest.mark.unit
class TestParseAnalysisResponse:
    def test_parses_and_normalizes(self, mock_analysis_payload):
        result = parse_analysis_response(json.dumps(mock_analysis_payload))

        assert [topic["name"] for topic in result["topics"]] == ["Python", "Packaging"]
        assert result["topics"][0]["keywords"] == ["python", "release"]
        assert result["topics"][1]["confidence"] == 1.0
        assert result["topics"][1]["keywords"] == []
        assert result["primary_topic"]["name"] == "Python"
        assert result["relevance_score"] == 0.8
        assert result["sentiment"] == "positive"
        assert result["confidence"] == 0.9

    def test_strips_markdown_fence(self, mock_analysis_payload):
        raw = "```json\n" + json.dumps(mock_analysis_payload) + "\n```"
        assert parse_analysis_response(raw)["topics"][0]["name"] == "Python"

    def test_defaults_for_sparse_answer(self):
        result = parse_analysis_response('{"sentiment": "ecstatic"}')

        assert [topic["name"] for topic in result["topics"]] == ["General"]
        assert result["primary_topic"] is None
        assert result["sentiment"] is None
        assert result["relevance_score"] == 0.5

    def test_rejects_invalid_json(self):
        with pytest.raises(AnalysisResponseError):
            parse_analysis_response("Sorry, I cannot help with that.")

    def test_rejects_empty_and_non_object(self):
        with pytest.raises(AnalysisResponseError):
            parse_analysis_response("")
        with pytest.raises(AnalysisResponseError):
            parse_analysis_response("[1, 2, 3]")


@pytest.mark.unit
class TestTokenBucketRateLimiter:
    @pytest.mark.asyncio
    async def test_within_limit_does_not_wait(self):
        sleep = AsyncMock()
        limiter = TokenBucketRateLimiter(tpm_limit=1000, clock=FakeClock(), sleep=sleep)

        await limiter.acquire(500)
        await limiter.acquire(500)

        assert limiter.tokens_used == 1000
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_over_limit_waits_for_next_window(self):
        clock = FakeClock()
        sleep = AsyncMock()
        limiter = TokenBucketRateLimiter(tpm_limit=1000, clock=clock, sleep=sleep)

        await limiter.acquire(800)
        clock.now += 15
        await limiter.acquire(500)

        sleep.assert_awaited_once_with(45)
        assert limiter.tokens_used == 500

    @pytest.mark.asyncio
    async def test_window_resets_after_a_minute(self):
        clock = FakeClock()
        sleep = AsyncMock()
        limiter = TokenBucketRateLimiter(tpm_limit=1000, clock=clock, sleep=sleep)

        await limiter.acquire(1000)
        clock.now += 61
        await limiter.acquire(400)

        sleep.assert_not_awaited()
        assert limiter.tokens_used == 400

    @pytest.mark.asyncio
    async def test_oversized_request_on_empty_window_proceeds(self):
        sleep = AsyncMock()
        limiter = TokenBucketRateLimiter(tpm_limit=100, clock=FakeClock(), sleep=sleep)

        await limiter.acquire(500)

        sleep.assert_not_awaited()
        assert limiter.tokens_used == 500

    def test_report_actual_usage_adjusts(self):
        limiter = TokenBucketRateLimiter(tpm_limit=1000, clock=FakeClock())
        limiter.tokens_used = 600

        limiter.report_actual_usage(actual_tokens=400, estimated_tokens=600)
        assert limiter.tokens_used == 400

        limiter.report_actual_usage(actual_tokens=0, estimated_tokens=900)
        assert limiter.tokens_used == 0


@pytest.mark.unit
class TestSemanticAnalyzer:
    @pytest.fixture
    def analyzer(self, session_factory):
        client = Mock()
        client.chat.completions.create = AsyncMock()
        limiter = TokenBucketRateLimiter(tpm_limit=100000, clock=FakeClock())
        analyzer = SemanticAnalyzer(
            session_factory, client=client, rate_limiter=limiter, model="gpt-4o-mini"
        )
        # Token counting needs tiktoken's downloadable encodings
        with patch(
            "feedstudio.services.semantic_analyzer.estimate_request_tokens",
            return_value=500,
        ), patch(
            "feedstudio.services.semantic_analyzer.truncate_to_tokens",
            side_effect=lambda text, max_tokens, model: text,
        ):
            yield analyzer

    @pytest.mark.asyncio
    async def test_analyze_stores_result(
        self, analyzer, db_session, test_feed, make_item, mock_analysis_payload
    ):
        item = make_item(test_feed.id, guid="a-1", title="Python 3.13 released")
        analyzer.client.chat.completions.create.return_value = completion(
            json.dumps(mock_analysis_payload)
        )

        await analyzer.analyze(item.id, item.title, "Release notes body", "Summary")

        stored = (
            db_session.query(ContentAnalysis)
            .filter(ContentAnalysis.feed_item_id == item.id)
            .one()
        )
        assert stored.primary_topic["name"] == "Python"
        assert len(stored.topics) == 2
        assert stored.sentiment == "positive"
        assert stored.relevance_score == 0.8
        assert stored.model == "gpt-4o-mini"
        assert stored.processing_time_ms >= 0

        call = analyzer.client.chat.completions.create.await_args
        assert call.kwargs["model"] == "gpt-4o-mini"
        assert call.kwargs["response_format"] == {"type": "json_object"}
        user_prompt = call.kwargs["messages"][1]["content"]
        assert "Python 3.13 released" in user_prompt
        assert "Release notes body" in user_prompt

        # Actual usage replaces the 500-token estimate
        assert analyzer.rate_limiter.tokens_used == 450

    @pytest.mark.asyncio
    async def test_reanalysis_overwrites(
        self, analyzer, db_session, test_feed, make_item, mock_analysis_payload
    ):
        item = make_item(test_feed.id, guid="a-2")
        create = analyzer.client.chat.completions.create

        create.return_value = completion(json.dumps(mock_analysis_payload))
        await analyzer.analyze(item.id, item.title, "body")

        create.return_value = completion('{"sentiment": "negative"}')
        await analyzer.analyze(item.id, item.title, "body")

        rows = (
            db_session.query(ContentAnalysis)
            .filter(ContentAnalysis.feed_item_id == item.id)
            .all()
        )
        assert len(rows) == 1
        db_session.refresh(rows[0])
        assert rows[0].sentiment == "negative"

    @pytest.mark.asyncio
    async def test_bad_answer_raises(self, analyzer, db_session, test_feed, make_item):
        item = make_item(test_feed.id, guid="a-3")
        analyzer.client.chat.completions.create.return_value = completion("not json")

        with pytest.raises(AnalysisResponseError):
            await analyzer.analyze(item.id, item.title, "body")

        assert db_session.query(ContentAnalysis).count() == 0

    @pytest.mark.asyncio
    async def test_api_error_propagates(self, analyzer, test_feed, make_item):
        item = make_item(test_feed.id, guid="a-4")
        analyzer.client.chat.completions.create.side_effect = RuntimeError("503")

        with pytest.raises(RuntimeError):
            await analyzer.analyze(item.id, item.title, "body")
