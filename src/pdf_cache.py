"""
Short-lived in-memory store for uploaded and filled PDFs.

Entries are keyed by a random UUID and expire after ``config.PDF_CACHE_TTL_SECONDS``;
expired entries are purged whenever a new one is stored.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import config

# Logger Setup
logger = logging.getLogger("pdf_cache")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


@dataclass
class CachedPdf:
    pdf_bytes: bytes
    created_at: float
    filename: str = "document.pdf"


class PdfCache:
    """Thread-safe TTL store; one instance is shared by the API server."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.PDF_CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: Dict[str, CachedPdf] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, v in self._entries.items() if now - v.created_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def put(self, pdf_bytes: bytes, filename: str = "document.pdf") -> str:
        """Store a PDF and return its id."""
        now = self._clock()
        pdf_id = str(uuid.uuid4())
        with self._lock:
            purged = self._purge_expired(now)
            self._entries[pdf_id] = CachedPdf(pdf_bytes=pdf_bytes, created_at=now, filename=filename)
        if purged:
            logger.info(f"Purged {purged} expired PDFs from cache")
        logger.info(f"Cached PDF {pdf_id} ({len(pdf_bytes):,} bytes)")
        return pdf_id

    def get(self, pdf_id: str) -> Optional[CachedPdf]:
        """Return a stored PDF, or None when unknown or expired."""
        with self._lock:
            entry = self._entries.get(pdf_id)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.ttl_seconds:
                del self._entries[pdf_id]
                return None
            return entry
