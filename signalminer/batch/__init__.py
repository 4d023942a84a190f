from .rate_limit import RateLimiter
from .runner import BatchRunner, ItemFailure, is_failure

__all__ = ["BatchRunner", "ItemFailure", "RateLimiter", "is_failure"]
