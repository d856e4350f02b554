"""Policy-gated web crawler and confidence-scored retrieval engine."""

__version__ = "0.1.0"
