"""Core pipeline: fetching, caching, configuration and extraction."""
