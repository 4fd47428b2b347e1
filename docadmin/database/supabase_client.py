from supabase import AsyncClient, acreate_client
from docadmin.config import settings


class SupabaseClient:
    _client: AsyncClient = None
    _service_client: AsyncClient = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        if cls._client is None:
            cls._client = await acreate_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    async def get_service_client(cls) -> AsyncClient:
        """Client with service_role key; bypasses RLS. Used by the grant store and account admin."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = await acreate_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or await cls.get_client()
