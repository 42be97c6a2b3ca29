"""Audit utilities: append-only file-backed record of session events.

Regenerations, destructions and admin terminations are written as JSON
lines to `logs/audit.log` (relative to the working directory).
"""

import os
import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

AUDIT_DIR = "logs"
AUDIT_FILE = "audit.log"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def audit_path() -> str:
    return os.path.join(AUDIT_DIR, AUDIT_FILE)


def record_audit(event: dict) -> None:
    """Append an audit event, stamping it with the current UTC time."""
    event_copy = dict(event)
    event_copy.setdefault("timestamp", _now_iso())

    try:
        os.makedirs(AUDIT_DIR, exist_ok=True)
        with open(audit_path(), "a", encoding="utf-8") as fh:
            fh.write(json.dumps(event_copy, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.exception("Failed writing audit to file: %s", e)


def read_audit(limit: int = 100) -> list:
    """Return up to `limit` most recent audit events."""
    path = audit_path()
    if not os.path.exists(path):
        return []
    events = []
    with open(path, "r", encoding="utf-8") as fh:
        lines = fh.readlines()[-limit:]
    for ln in lines:
        try:
            events.append(json.loads(ln))
        except json.JSONDecodeError as e:
            logger.debug("Failed to parse audit line: %s", e)
            events.append({"raw": ln.strip()})
    return events
