"""Error taxonomy shared by the crawler, storage and retrieval layers."""


class CrawlRagError(Exception):
    """Base class for all crawlrag errors."""


class PolicyViolation(CrawlRagError):
    """The start URL of a crawl is disallowed by robots.txt.

    Ends the crawl with zero pages; its message is the crawl's only error.
    """

    def __init__(self, url: str):
        super().__init__(f"URL disallowed by robots.txt: {url}")
        self.url = url


class FetchFailure(CrawlRagError):
    """A single page could not be fetched. Recorded per page, never fatal."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to scrape {url}: {reason}")
        self.url = url
        self.reason = reason


class StorageUnavailable(CrawlRagError):
    """The storage backend cannot be reached or was never initialized."""


class ProviderFailure(CrawlRagError):
    """An embedding or completion model call failed."""


class ValidationFailure(CrawlRagError, ValueError):
    """Input rejected before any network activity (e.g. a malformed URL)."""


class ToolTimeout(CrawlRagError):
    """A wrapped operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(f"{operation} timed out after {timeout_seconds:g}s")
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class DocumentNotFound(CrawlRagError, KeyError):
    """No stored document has the requested id."""

    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id

    def __str__(self) -> str:
        return f"Document {self.document_id} not found"
