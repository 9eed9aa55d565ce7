"""Upstream programming feed: HTTP client and normalization."""
