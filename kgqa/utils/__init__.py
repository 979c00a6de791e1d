"""KGQA utility modules."""

from .resilience import retry_with_backoff

__all__ = ["retry_with_backoff"]
