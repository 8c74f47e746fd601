import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import AsyncClient, create_async_client

from store import DocumentStore, MemoryDocumentStore, SupabaseDocumentStore

load_dotenv()

logger = logging.getLogger(__name__)

url: str = os.environ.get("SUPABASE_URL")
key: str = os.environ.get("SUPABASE_KEY")
store_backend: str = os.environ.get("DASHBOARD_STORE", "supabase").lower()
admin_actor: str = os.environ.get("DASHBOARD_ADMIN_ACTOR", "admin")
# Sessions with no WebSocket attached are closed after this long without a request
session_idle_seconds: float = float(os.environ.get("DASHBOARD_SESSION_IDLE_SECONDS", "300"))

if store_backend == "supabase" and (not url or not key):
    logger.warning("SUPABASE_URL or SUPABASE_KEY not set in environment.")

_client: Optional[AsyncClient] = None
_store: Optional[DocumentStore] = None


async def get_supabase() -> AsyncClient:
    """The process-wide Supabase client, created on first use."""
    global _client
    if _client is None:
        _client = await create_async_client(url or "", key or "")
    return _client


async def get_store() -> DocumentStore:
    """The process-wide document store selected by DASHBOARD_STORE."""
    global _store
    if _store is None:
        if store_backend == "memory":
            _store = MemoryDocumentStore()
        elif store_backend == "supabase":
            _store = SupabaseDocumentStore(await get_supabase())
        else:
            raise RuntimeError(f"Unknown DASHBOARD_STORE: {store_backend}")
        logger.info(f"Using {store_backend} document store")
    return _store
