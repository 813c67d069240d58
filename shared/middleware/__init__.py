"""Client-side request middleware."""
from .retry import RetryPolicy, RetryStats

__all__ = ["RetryPolicy", "RetryStats"]
