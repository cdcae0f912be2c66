"""
Supabase client for backend operations
"""
from typing import Optional

from supabase import create_client, Client

from levely_companion.config import LevelySettings

_supabase_client: Optional[Client] = None


def get_supabase_client(settings: Optional[LevelySettings] = None) -> Optional[Client]:
    """
    Get or create the Supabase client singleton.

    Returns ``None`` when SUPABASE_URL / SUPABASE_SERVICE_KEY are not set, so
    the service can run on in-memory stores.
    """
    global _supabase_client

    if _supabase_client is None:
        settings = settings or LevelySettings.from_env()
        if not settings.supabase_enabled:
            return None
        # Service role key: the backend writes progress for any learner
        _supabase_client = create_client(settings.supabase_url, settings.supabase_service_key)

    return _supabase_client
