# tracker_client/config.py
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tracker_client.api import ApiClient
from tracker_client.cache import QueryCache

BASE_DIR = Path(__file__).resolve().parent

# Load .env next to the client package
load_dotenv(BASE_DIR / ".env")

API_BASE = os.getenv("TRACKER_API_BASE", "http://127.0.0.1:8000")
CACHE_GC_TTL_S = float(os.getenv("CACHE_GC_TTL_S", "600"))
CACHE_STALE_S = float(os.getenv("CACHE_STALE_S", "300"))


def build_client(base_url: Optional[str] = None, session=None) -> ApiClient:
    return ApiClient(base_url or API_BASE, session=session)


def make_cache(api: Optional[ApiClient] = None) -> QueryCache:
    """A cache whose invalidations refetch through `api`."""
    fetcher = api.fetch if api is not None else None
    return QueryCache(fetcher=fetcher, gc_ttl_s=CACHE_GC_TTL_S, stale_s=CACHE_STALE_S)
