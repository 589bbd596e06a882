"""
Shared utilities: logging, retry and normalisation helpers.
"""

import functools
import logging
import re
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Callable, Iterable, Optional, Type


def setup_logging(level: str = "INFO", log_file: Optional[str] = "groupsync.log") -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Root logger (shared across all modules)
    logger = logging.getLogger()
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def retry(
    exceptions: Iterable[Type[BaseException]],
    tries: int = 5,
    base_delay: float = 0.5,
    backoff: float = 2.0,
    max_delay: float = 8.0,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> Callable:
    """
    Exponential backoff retry decorator.

    :param exceptions: tuple/list of exception classes to catch
    :param tries: total attempts
    :param base_delay: initial delay seconds
    :param backoff: multiplier
    :param max_delay: cap delay
    :param retry_if: optional predicate; errors it rejects are raised at once
    """
    exceptions = tuple(exceptions)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            delay = base_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise
                    attempt += 1
                    if attempt >= tries:
                        raise
                    time.sleep(min(delay, max_delay))
                    delay *= backoff

        return wrapper

    return decorator


def normalize_email(email: str) -> str:
    return email.strip().lower()


_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp into an aware UTC datetime.
    Naive values are taken as UTC; fractions finer than microseconds are cut.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return parse_timestamp(value).isoformat().replace("+00:00", "Z")
