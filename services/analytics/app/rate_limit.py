"""
Global slowapi rate limiter for the ingestion endpoints.

Imported by events/router.py for per-endpoint limits. Mounted onto app.state in
main.py so slowapi middleware can find it.

Storage: RATE_LIMIT_STORAGE_URI (e.g. the Redis used for counters). Defaults
to in-memory, which limits per process only.
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

EVENT_RATE_LIMIT = os.getenv("EVENT_RATE_LIMIT", "600/minute")
BATCH_RATE_LIMIT = os.getenv("EVENT_BATCH_RATE_LIMIT", "60/minute")

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
)
