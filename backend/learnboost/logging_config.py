"""Logging configuration helpers for the knowledge-test service."""

from __future__ import annotations

import logging
from logging import Logger

from .settings import settings


def configure_logging(level: str | None = None) -> Logger:
	"""Configure basic logging for the service and return its package logger."""
	logging.basicConfig(
		level=(level or settings.log_level).upper(),
		format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
	)
	return logging.getLogger("learnboost")
