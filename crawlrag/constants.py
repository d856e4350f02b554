"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Constants are organized by category. Settings in ``crawlrag.config`` use
these as defaults and may override them from the environment.
"""

# =============================================================================
# Crawl Configuration
# =============================================================================

# Maximum link depth from the start URL
DEFAULT_MAX_DEPTH = 2

# Maximum number of pages fetched by a single crawl
DEFAULT_MAX_PAGES = 50

# Minimum delay between two fetches of the same crawl (milliseconds)
DEFAULT_CRAWL_DELAY_MS = 1000

# User agent sent by the default fetcher and the robots/sitemap fetcher
CRAWLER_USER_AGENT = "Mozilla/5.0 (compatible; crawlrag/0.1; +https://example.com/bot)"

# Robots.txt and sitemap locations, relative to the site origin
ROBOTS_TXT_PATH = "/robots.txt"
SITEMAP_PATH = "/sitemap.xml"

# Schemes the crawler will follow
ALLOWED_URL_SCHEMES = ("http", "https")

# Hostnames that are never crawled (loopback and cloud metadata services)
BLOCKED_HOSTNAMES = frozenset(
    (
        "localhost",
        "localhost.localdomain",
        "metadata",
        "metadata.google.internal",
        "metadata.amazonaws.com",
    )
)

# Ports of internal services that are never crawled
RESTRICTED_PORTS = frozenset(
    (22, 23, 25, 110, 143, 445, 1433, 1521, 3306, 3389, 5432, 5984, 6379, 8020, 8086, 9200, 11211, 27017)
)

# =============================================================================
# HTTP Timeout Configuration
# =============================================================================

# Default timeout for page fetches (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0

# Timeout for robots.txt and sitemap.xml fetches (seconds)
POLICY_FETCH_TIMEOUT_SECONDS = 10.0

# =============================================================================
# Chunking Configuration
# =============================================================================

# Maximum characters per stored chunk
DEFAULT_CHUNK_MAX_CHARS = 3000

# Characters carried over between consecutive chunks
DEFAULT_CHUNK_OVERLAP_CHARS = 200

# Overlap may never exceed this share of the chunk size
MAX_CHUNK_OVERLAP_RATIO = 0.25

# =============================================================================
# Embedding Configuration
# =============================================================================

# Default embedding vector dimension (matches text-embedding-3-small)
DEFAULT_EMBEDDING_DIMENSIONS = 1536

# =============================================================================
# Retrieval Configuration
# =============================================================================

# Number of candidates fetched from storage per query
DEFAULT_SEARCH_RESULT_LIMIT = 5

# Minimum raw cosine similarity a candidate needs before it is used
DEFAULT_SIMILARITY_GATE = 0.5

# Answer returned whenever nothing relevant was found
INSUFFICIENT_INFORMATION_ANSWER = "I don't have enough information to answer accurately."

# =============================================================================
# Confidence Scoring
# =============================================================================

SIMILARITY_WEIGHT = 0.4
SOURCE_COUNT_WEIGHT = 0.2
RECENCY_WEIGHT = 0.2
DIVERSITY_WEIGHT = 0.2

HIGH_CONFIDENCE_THRESHOLD = 0.7
MEDIUM_CONFIDENCE_THRESHOLD = 0.4

# Each source adds this much to the source-count factor (saturates at 5)
SOURCE_COUNT_STEP = 0.2

# (max mean age in days, recency factor), checked in order
RECENCY_BUCKETS = ((1, 1.0), (7, 0.8), (30, 0.5), (90, 0.3))
RECENCY_FLOOR = 0.1

NO_SOURCES_EXPLANATION = (
    "I found no relevant sources to answer your question. "
    "I am unable to provide a reliable response."
)

# =============================================================================
# Storage Configuration
# =============================================================================

# Attempts made by add_document before giving up
DEFAULT_STORAGE_RETRIES = 3

# Base delay of the exponential backoff between attempts (milliseconds)
DEFAULT_RETRY_BASE_DELAY_MS = 100

# Capacity of the persistent backend's document cache
DEFAULT_DOCUMENT_CACHE_SIZE = 100

# Connection timeout for the persistent backend (seconds)
DEFAULT_DB_CONNECT_TIMEOUT_SECONDS = 10

# Connection pool bounds for the persistent backend
DEFAULT_DB_POOL_MIN_SIZE = 1
DEFAULT_DB_POOL_MAX_SIZE = 10
