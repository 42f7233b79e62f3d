"""Shared CLI setup helpers."""

from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for collector commands."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # Selenium and urllib3 are chatty at DEBUG
    for noisy in ("urllib3", "selenium.webdriver.remote", "undetected_chromedriver"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))
