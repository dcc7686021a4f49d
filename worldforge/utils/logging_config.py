"""
Structured JSON logging configuration for WorldForge.

All log records are emitted as single-line JSON objects to the configured
log file and to stderr (warnings and above).

Usage::

    from worldforge.utils.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("pipeline halted", extra={"campaign_id": cid, "status": "idle"})

For code that works inside a single campaign and wants the id on every record::

    from worldforge.utils.logging_config import get_logger, CampaignAdapter

    raw = get_logger("worldforge.forge")
    logger = CampaignAdapter(raw, campaign_id="abc-123")
    logger.info("scan complete")        # automatically includes campaign_id
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

from worldforge.config import get_settings


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Emits each record as a single-line JSON object."""

    EXTRA_KEYS = (
        "campaign_id", "pipeline_id", "forge_type", "entity_id", "status",
        "event_type", "duration_ms", "metadata",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self.EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ---------------------------------------------------------------------------
# CampaignAdapter: attaches campaign_id to every log call
# ---------------------------------------------------------------------------

class CampaignAdapter(logging.LoggerAdapter):
    """Logger adapter that injects ``campaign_id`` (and optional extras) into every record."""

    def __init__(self, logger: logging.Logger, campaign_id: str, **extra: Any):
        super().__init__(logger, {"campaign_id": campaign_id, **extra})

    def process(
        self,
        msg: str,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        extra.update(self.extra)
        return msg, kwargs


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_CONFIGURED = False


def setup_logging(log_file: str | None = None, level: int | str | None = None) -> None:
    """Configure the root ``worldforge`` logger with JSON handlers.

    Safe to call multiple times; only the first call has effect.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    settings = get_settings()
    if log_file is None:
        log_file = settings.log_file
    if level is None:
        level = settings.log_level

    root = logging.getLogger("worldforge")
    root.setLevel(level)
    root.propagate = False

    formatter = JSONFormatter()

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)

    # Stderr handler for docker / systemd journal visibility
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(formatter)
    sh.setLevel(logging.WARNING)
    root.addHandler(sh)


def get_logger(name: str = "worldforge") -> logging.Logger:
    """Return a child logger under the ``worldforge`` namespace.

    Automatically calls :func:`setup_logging` on first use.
    """
    setup_logging()
    if name.startswith("worldforge"):
        return logging.getLogger(name)
    return logging.getLogger(f"worldforge.{name}")
