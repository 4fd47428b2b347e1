import logging
from typing import Optional

from docadmin.config import settings
from docadmin.database.memory_store import InMemoryGrantStore
from docadmin.database.supabase_client import SupabaseClient
from docadmin.database.supabase_store import SupabaseGrantStore
from docadmin.modules.rbac.store import GrantStore

logger = logging.getLogger(__name__)

_memory_store: Optional[InMemoryGrantStore] = None


async def get_grant_store() -> GrantStore:
    """Grant store selected by GRANT_STORE_BACKEND."""
    global _memory_store
    if settings.uses_memory_store:
        if _memory_store is None:
            logger.warning("Using in-memory grant store; grants are lost on restart")
            _memory_store = InMemoryGrantStore()
        return _memory_store
    client = await SupabaseClient.get_service_client()
    return SupabaseGrantStore(client)
