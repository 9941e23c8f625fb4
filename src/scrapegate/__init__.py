"""
scrapegate - Resilient fetch and caching pipeline for scraping APIs.

Fetches HTML from rate-limited, bot-hostile sites with per-host throttling,
retries and cookie persistence, and serves parsed results through a
read-through response cache.
"""

__version__ = "0.1.0"
__app_name__ = "scrapegate"
