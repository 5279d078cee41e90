"""Durable outbound HTTP notification service with retries and backoff."""

__version__ = "0.1.0"