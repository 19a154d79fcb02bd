"""
FILE DESCRIPTION: Foundational module for crawl configuration and logging.
KEY FUNCTIONS/CLASSES: CrawlConfig, setup_logger, CompanyFormatter
"""

import logging
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from sitecrawler import __version__
from sitecrawler.errors import CrawlConfigError

# === CONFIGURATION SECTION ===

# Load .env from the working directory (if any) before reading defaults
load_dotenv(Path.cwd() / ".env")

USER_AGENT = f"sitecrawler/{__version__}"

# Default cap for backoff and Retry-After waits (seconds)
MAX_RETRY_AFTER = 60.0


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name, default):
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CrawlConfig:
    """
    FLOW: Environment (.env) provides defaults -> CLI flags override them via with_overrides() ->
    validate() rejects nonsense before the crawl starts.
    """
    seed: str
    max_concurrency: int = field(default_factory=lambda: _env_int("CRAWLER_MAX_CONCURRENCY", 32))
    max_per_origin: int = field(default_factory=lambda: _env_int("CRAWLER_MAX_PER_ORIGIN", 2))
    max_pages: Optional[int] = field(default_factory=lambda: _env_int("CRAWLER_MAX_PAGES", None))
    max_time: Optional[float] = field(default_factory=lambda: _env_float("CRAWLER_MAX_TIME", None))
    ignore_robots: bool = field(default_factory=lambda: _env_bool("CRAWLER_IGNORE_ROBOTS"))
    request_delay: float = field(default_factory=lambda: _env_float("CRAWLER_REQUEST_DELAY", 0.0))
    retry_base_delay: float = field(default_factory=lambda: _env_float("CRAWLER_RETRY_BASE_DELAY", 0.5))
    max_retries: int = field(default_factory=lambda: _env_int("CRAWLER_MAX_RETRIES", 5))
    max_backoff: float = field(default_factory=lambda: _env_float("CRAWLER_MAX_BACKOFF", MAX_RETRY_AFTER))
    request_timeout: float = field(default_factory=lambda: _env_float("CRAWLER_REQUEST_TIMEOUT", 30.0))
    user_agent: str = field(default_factory=lambda: os.getenv("CRAWLER_USER_AGENT") or USER_AGENT)

    def with_overrides(self, **overrides) -> "CrawlConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> "CrawlConfig":
        if self.max_concurrency < 1:
            raise CrawlConfigError(f"max_concurrency must be >= 1 (got {self.max_concurrency})")
        if self.max_per_origin < 1:
            raise CrawlConfigError(f"max_per_origin must be >= 1 (got {self.max_per_origin})")
        if self.max_pages is not None and self.max_pages < 1:
            raise CrawlConfigError(f"max_pages must be >= 1 (got {self.max_pages})")
        if self.max_time is not None and self.max_time <= 0:
            raise CrawlConfigError(f"max_time must be > 0 (got {self.max_time})")
        if self.max_retries < 0:
            raise CrawlConfigError(f"max_retries must be >= 0 (got {self.max_retries})")
        for name in ("request_delay", "retry_base_delay", "max_backoff"):
            if getattr(self, name) < 0:
                raise CrawlConfigError(f"{name} must not be negative")
        if self.request_timeout <= 0:
            raise CrawlConfigError("request_timeout must be > 0")
        return self


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats as
    [ Tue Jan 06 05:32:41 AM UTC 2026 ] -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, "context", "root")
        message = f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logger(name="sitecrawler", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if name != "sitecrawler":
        logger.propagate = True
        setup_logger("sitecrawler", log_file=log_file, level=level)
        return logger

    if logger.handlers:
        if log_file and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(CompanyFormatter())
            logger.addHandler(file_handler)
        return logger

    formatter = CompanyFormatter()

    # Console handler (stderr keeps stdout free for page output)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


logger = logging.getLogger("sitecrawler")

# --- Environment Checks ---
try:
    import brotli  # noqa: F401
    logger.debug("[SYSTEM] Brotli library found. Decompression enabled.")
except ImportError:
    logger.warning("[SYSTEM] Brotli library NOT found. Brotli-encoded responses will fail to decompress.")
