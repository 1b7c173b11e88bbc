"""Repository URLs, check results, batch sharding, HTTP transports and a git cache service."""

__version__ = "0.1.0"