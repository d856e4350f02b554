"""Confidence scoring input and output models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ConfidenceFactors:
    """Individual factors, each in [0, 1]."""

    similarity: float = 0.0
    source_count: float = 0.0
    recency: float = 0.0
    diversity: float = 0.0


@dataclass
class ConfidenceInput:
    """Raw signals about the sources used for an answer.

    Timestamps are deliberately loosely typed: anything that is not a valid
    datetime is treated as an invalid timestamp rather than rejected.
    """

    similarity_scores: List[float] = field(default_factory=list)
    source_timestamps: List[datetime | Any] = field(default_factory=list)
    source_domains: List[str] = field(default_factory=list)
    query_length: int = 0
    response_length: int = 0


@dataclass(frozen=True)
class ConfidenceResult:
    score: float
    level: ConfidenceLevel
    explanation: str
    factors: ConfidenceFactors = field(default_factory=ConfidenceFactors)
