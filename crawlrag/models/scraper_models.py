"""Models for the fetch collaborator: one scraped page per call."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List


@dataclass(frozen=True)
class ScrapedPage:
    """Content fetched for a single URL.

    A non-empty ``error`` marks a per-page failure; the other fields are then
    empty. Fetchers report failures this way instead of raising.
    """

    url: str
    title: str = ""
    content: str = ""
    links: List[str] = field(default_factory=list)
    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.error

    @classmethod
    def failed(cls, url: str, error: str) -> "ScrapedPage":
        return cls(url=url, error=error or "Fetch failed")
