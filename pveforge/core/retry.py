"""Retry transient host command failures such as pveam downloads."""
import functools
import time
from typing import Optional, Tuple, Type

from pveforge.core.logger import get_logger

logger = get_logger(__name__)


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    label: Optional[str] = None,
):
    """Call the wrapped function again when it raises one of ``exceptions``.

    The wait starts at ``delay`` seconds and grows by ``backoff`` after each
    failure. The last failure is re-raised unchanged, so callers still see
    the original error and its step. ``label`` names the operation in log
    messages and defaults to the function name.

        @retry(max_attempts=3, delay=5, exceptions=(ExternalCommandError,))
        def download_template(self, storage, template):
            ...
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func):
        name = label or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"{name}: giving up after {attempt} attempts ({e})")
                        raise
                    logger.warning(f"{name}: attempt {attempt} of {max_attempts} failed ({e}); "
                                   f"next try in {wait:g}s")
                    time.sleep(wait)
                    wait *= backoff
                    attempt += 1

        return wrapper

    return decorator
