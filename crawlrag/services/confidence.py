"""Confidence scoring for retrieval answers.

Four factors in [0, 1] are combined with fixed weights:

- similarity: mean similarity of the sources used
- source_count: grows 0.2 per source, saturating at five
- recency: bucketed mean age of the sources
- diversity: share of unique source domains
"""

import math
from datetime import datetime, timezone
from typing import Any, Iterable, List

import logfire

from crawlrag.constants import (
    DIVERSITY_WEIGHT,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    NO_SOURCES_EXPLANATION,
    RECENCY_BUCKETS,
    RECENCY_FLOOR,
    RECENCY_WEIGHT,
    SIMILARITY_WEIGHT,
    SOURCE_COUNT_STEP,
    SOURCE_COUNT_WEIGHT,
)
from crawlrag.models.confidence_models import (
    ConfidenceFactors,
    ConfidenceInput,
    ConfidenceLevel,
    ConfidenceResult,
)

_SECONDS_PER_DAY = 60 * 60 * 24


def no_sources_result() -> ConfidenceResult:
    return ConfidenceResult(
        score=0.0,
        level=ConfidenceLevel.LOW,
        explanation=NO_SOURCES_EXPLANATION,
        factors=ConfidenceFactors(),
    )


def similarity_factor(scores: Iterable[float]) -> float:
    finite = [s for s in scores if isinstance(s, (int, float)) and math.isfinite(s)]
    if not finite:
        return 0.0
    return min(1.0, max(0.0, sum(finite) / len(finite)))


def source_count_factor(count: int) -> float:
    if count <= 0:
        return 0.0
    return min(1.0, count * SOURCE_COUNT_STEP)


def _age_days(timestamp: Any, now: datetime) -> float | None:
    if not isinstance(timestamp, datetime):
        return None
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (now - timestamp).total_seconds() / _SECONDS_PER_DAY


def recency_factor(timestamps: List[Any], now: datetime | None = None) -> float:
    """Bucket the mean age of ``timestamps``.

    Invalid timestamps contribute no age but still count in the mean, so they
    pull the average towards "fresh".
    """
    if not timestamps:
        return 0.0
    now = now or datetime.now(timezone.utc)

    total_age = 0.0
    for timestamp in timestamps:
        age = _age_days(timestamp, now)
        if age is not None:
            total_age += age
    mean_age = total_age / len(timestamps)

    for max_age_days, factor in RECENCY_BUCKETS:
        if mean_age < max_age_days:
            return factor
    return RECENCY_FLOOR


def diversity_factor(domains: List[str]) -> float:
    if not domains:
        return 0.0
    if len(domains) == 1:
        return 0.5
    return 0.5 + 0.5 * len(set(domains)) / len(domains)


def determine_level(score: float) -> ConfidenceLevel:
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def build_explanation(
    level: ConfidenceLevel, factors: ConfidenceFactors, source_count: int
) -> str:
    """Human-readable summary of a confidence result."""
    if source_count == 0:
        return NO_SOURCES_EXPLANATION

    if level is ConfidenceLevel.HIGH:
        explanation = (
            f"I have high confidence in this answer based on {source_count} relevant sources"
        )
    elif level is ConfidenceLevel.MEDIUM:
        plural = "s" if source_count > 1 else ""
        explanation = (
            f"I have moderate confidence in this answer based on {source_count} source{plural}"
        )
    else:
        explanation = (
            f"I have low confidence in this answer due to limited sources ({source_count})"
        )

    details: List[str] = []
    if factors.recency > 0.7:
        details.append("recent information")
    elif factors.recency < 0.3:
        details.append("older information")
    if factors.diversity > 0.7 and source_count > 1:
        details.append("diverse sources")
    if factors.similarity < 0.4:
        details.append("limited relevance")

    if details:
        explanation += f" with {', '.join(details)}"
    if level is ConfidenceLevel.LOW:
        explanation += ". The answer may not be complete or fully accurate"
    return explanation + "."


def calculate_confidence(
    confidence_input: ConfidenceInput, now: datetime | None = None
) -> ConfidenceResult:
    """
    Score how much an answer built from the given sources can be trusted.

    Args:
        confidence_input: Similarities, timestamps and domains of the sources
        now: Reference time for recency (defaults to the current UTC time)

    Returns:
        ConfidenceResult; never raises, falling back to the zero-confidence
        result on malformed input
    """
    try:
        scores = list(confidence_input.similarity_scores or [])
        if not scores:
            return no_sources_result()

        factors = ConfidenceFactors(
            similarity=similarity_factor(scores),
            source_count=source_count_factor(len(scores)),
            recency=recency_factor(list(confidence_input.source_timestamps or []), now),
            diversity=diversity_factor(list(confidence_input.source_domains or [])),
        )
        score = (
            factors.similarity * SIMILARITY_WEIGHT
            + factors.source_count * SOURCE_COUNT_WEIGHT
            + factors.recency * RECENCY_WEIGHT
            + factors.diversity * DIVERSITY_WEIGHT
        )
        score = min(1.0, max(0.0, score))
        level = determine_level(score)
        return ConfidenceResult(
            score=score,
            level=level,
            explanation=build_explanation(level, factors, len(scores)),
            factors=factors,
        )
    except (AttributeError, TypeError, ValueError, OverflowError) as e:
        logfire.warning(
            "Confidence calculation failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return no_sources_result()
