"""Summit2Shore API: accounts, API keys and rate limiting."""

__version__ = "1.0.0"
