"""
File JSON locali: stato delle pulizie/arrivi, tariffe e registro degli import HAR.
"""

import json
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import IMPORT_LOG_FILE, IMPORT_LOG_LIMIT, PRICES_FILE, STATUS_FILE
from core.models import CommitResult, PriceRule

logger = logging.getLogger(__name__)

_lock = threading.Lock()


def _read_json(path: Path, default):
    if not path.exists():
        return default
    with path.open(encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    tmp.replace(path)


class StatusStore:
    """{id evento: {"done": bool, "user": str}}"""

    def __init__(self, path: str = STATUS_FILE):
        self.path = Path(path)

    def get(self) -> dict:
        return _read_json(self.path, {})

    def set(self, status_id: str, done: bool, user: Optional[str] = None) -> dict:
        with _lock:
            statuses = self.get()
            statuses[status_id] = {"done": bool(done), "user": user}
            _write_json(self.path, statuses)
        return statuses[status_id]


class ImportLog:
    """Registro append-only degli import confermati, limitato agli ultimi `limit`."""

    def __init__(self, path: str = IMPORT_LOG_FILE, limit: int = IMPORT_LOG_LIMIT):
        self.path = Path(path)
        self.limit = limit

    def entries(self) -> list:
        return _read_json(self.path, [])

    def append(self, result: CommitResult, user: Optional[str] = None) -> dict:
        entry = {"at": datetime.now(timezone.utc).isoformat(), "user": user, **asdict(result)}
        with _lock:
            log = self.entries()
            log.append(entry)
            _write_json(self.path, log[-self.limit:])
        logger.info("Import registrato: %d inserite, %d aggiornate", result.inserted, result.updated)
        return entry


class PriceStore:
    """Tariffe di default: [{"amount": 85, "gites": ["gree", "edmond"]}, ...]"""

    def __init__(self, path: str = PRICES_FILE):
        self.path = Path(path)

    def get(self) -> list:
        return [PriceRule(amount=float(p.get("amount") or 0), gites=list(p.get("gites") or []))
                for p in _read_json(self.path, [])]

    def set(self, rules) -> None:
        with _lock:
            _write_json(self.path, [asdict(r) for r in rules])

    def for_gite(self, gite_id: str) -> list:
        return sorted({r.amount for r in self.get() if gite_id in r.gites})
