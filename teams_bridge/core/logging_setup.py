"""Logging-Setup der Teams Bridge: Konsole und optional eine Logdatei."""
import logging
import sys
from typing import Optional


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configures logging to write to the console and, if given, a file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    # Ensure specific loggers are also propagating or handled
    logging.getLogger("uvicorn").handlers = []  # Avoid double logging if uvicorn sets its own
    logging.getLogger("uvicorn").propagate = True
    # httpx loggt jede Anfrage auf INFO, inklusive URLs mit Tenant-IDs
    logging.getLogger("httpx").setLevel(logging.WARNING)
