import logging
import time

from functools import wraps

logger = logging.getLogger(__name__)


def timing(func):
    """Log the wall time of each call at info level"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        s_time = time.time()
        try:
            return func(*args, **kwargs)
        finally:
            logger.info(f"[timing] {func.__qualname__} cost {time.time() - s_time:.3f}s")
    return wrapper
