import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from feedstudio.core.config import settings
from feedstudio.models.analysis import ContentAnalysis
from feedstudio.services.rate_limiter import (
    TokenBucketRateLimiter,
    estimate_request_tokens,
    truncate_to_tokens,
)

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "negative", "neutral")

SYSTEM_PROMPT = """You analyze RSS content and extract its key topics.

Guidelines:
- Extract 3-7 of the most relevant topics
- Give each topic a confidence between 0 and 1
- Categorize topics (technology, business, health, politics, entertainment, science, ...)
- Include a few keywords per topic
- Rate the overall relevance of the content between 0 and 1
- Judge sentiment from the tone of the content

Respond in JSON format:
{
    "topics": [
        {
            "name": "Topic Name",
            "description": "Brief description",
            "category": "technology",
            "confidence": 0.85,
            "keywords": ["keyword1", "keyword2"]
        }
    ],
    "primaryTopic": {"name": "Most Important Topic", "category": "technology", "confidence": 0.95},
    "relevanceScore": 0.8,
    "sentiment": "positive|negative|neutral",
    "confidence": 0.9
}"""

# Reserved for the system prompt, title and message overhead
PROMPT_RESERVE_TOKENS = 600

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class AnalysisResponseError(ValueError):
    """Raised when the model's answer is not a usable analysis document."""


def _clamp(value: Any, default: float = 0.5) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, score))


def _normalize_topic(topic: Dict[str, Any]) -> Dict[str, Any]:
    keywords = topic.get("keywords")
    return {
        "name": str(topic.get("name") or "Unknown Topic"),
        "description": str(topic["description"]) if topic.get("description") else None,
        "category": str(topic["category"]) if topic.get("category") else None,
        "confidence": _clamp(topic.get("confidence")),
        "keywords": [str(k) for k in keywords] if isinstance(keywords, list) else [],
    }


def parse_analysis_response(raw: Optional[str]) -> Dict[str, Any]:
    """Parse and normalize the model output.

    Accepts a bare JSON object or one wrapped in a markdown code fence.
    Scores are clamped to [0, 1], unknown sentiments dropped, and an empty
    topic list replaced by a single "General" topic.
    """
    if not raw or not raw.strip():
        raise AnalysisResponseError("Empty analysis response")

    cleaned = _CODE_FENCE.sub("", raw.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AnalysisResponseError(f"Invalid analysis response format: {e}") from e

    if not isinstance(data, dict):
        raise AnalysisResponseError("Analysis response is not a JSON object")

    topics: List[Dict[str, Any]] = [
        _normalize_topic(topic)
        for topic in data.get("topics") or []
        if isinstance(topic, dict)
    ]
    if not topics:
        topics = [
            {
                "name": "General",
                "description": "General content topic",
                "category": "general",
                "confidence": 0.5,
                "keywords": [],
            }
        ]

    primary = data.get("primaryTopic") or data.get("primary_topic")
    sentiment = str(data.get("sentiment") or "").lower()

    return {
        "topics": topics,
        "primary_topic": _normalize_topic(primary) if isinstance(primary, dict) else None,
        "relevance_score": _clamp(data.get("relevanceScore", data.get("relevance_score"))),
        "sentiment": sentiment if sentiment in SENTIMENTS else None,
        "confidence": _clamp(data.get("confidence")),
    }


class SemanticAnalyzer:
    """
    Default analysis collaborator for the job queue.

    Sends one chat completion per feed item and stores the parsed result as a
    ContentAnalysis row (one per item; re-analysis overwrites). Any failure
    propagates so the queue can retry the job.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        client: Optional[AsyncOpenAI] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        model: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            tpm_limit=settings.LLM_TPM_LIMIT
        )
        self.model = model or settings.LLM_MODEL

    async def analyze(
        self,
        feed_item_id: int,
        title: str,
        content: str,
        description: Optional[str] = None,
    ) -> ContentAnalysis:
        started = time.monotonic()
        user_prompt = self._build_prompt(title, content, description)
        estimated_tokens = estimate_request_tokens(
            SYSTEM_PROMPT, user_prompt, self.model, response_buffer=400
        )

        await self.rate_limiter.acquire(estimated_tokens)
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )
        if response.usage:
            self.rate_limiter.report_actual_usage(
                response.usage.total_tokens, estimated_tokens
            )

        result = parse_analysis_response(response.choices[0].message.content)
        processing_time_ms = int((time.monotonic() - started) * 1000)

        analysis = self._store(feed_item_id, result, processing_time_ms)
        logger.info(
            f"Analyzed feed item {feed_item_id}: {len(result['topics'])} topics "
            f"in {processing_time_ms}ms"
        )
        return analysis

    def _build_prompt(
        self, title: str, content: str, description: Optional[str]
    ) -> str:
        budget = settings.LLM_MAX_INPUT_TOKENS - PROMPT_RESERVE_TOKENS
        body = truncate_to_tokens(content or "", budget, self.model)

        return f"""Content Title: {title or "No Title"}
Content Description: {description or "No Description"}
Content Body:
{body}

Analyze this content and provide the JSON output."""

    def _store(
        self, feed_item_id: int, result: Dict[str, Any], processing_time_ms: int
    ) -> ContentAnalysis:
        db = self.session_factory()
        try:
            analysis = (
                db.query(ContentAnalysis)
                .filter(ContentAnalysis.feed_item_id == feed_item_id)
                .first()
            )
            if analysis is None:
                analysis = ContentAnalysis(feed_item_id=feed_item_id)
                db.add(analysis)

            analysis.topics = result["topics"]
            analysis.primary_topic = result["primary_topic"]
            analysis.relevance_score = result["relevance_score"]
            analysis.sentiment = result["sentiment"]
            analysis.confidence = result["confidence"]
            analysis.model = self.model
            analysis.processing_time_ms = processing_time_ms

            db.commit()
            db.refresh(analysis)
            return analysis
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
