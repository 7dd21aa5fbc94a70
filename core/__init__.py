"""
Core utilities and configuration for the DHIS2 transfer pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.exceptions import ConfigError, FetchError, SubmitError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Build the runner configuration from the environment
    config = settings.to_transfer_config()
"""

__all__ = [
    "settings",
    "setup_logging",
    # Exceptions
    "TransferException",
    "ConfigError",
    "UpstreamError",
    "FetchError",
    "ParseError",
    "SubmitError",
    "RetryableError",
    "NonRetryableError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
]
