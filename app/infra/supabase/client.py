"""Supabase client singleton"""
from typing import Optional

from supabase import Client, create_client  # type: ignore

from app import config

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create the Supabase client shared by repositories and the poller"""
    global _supabase_client

    if _supabase_client is None:
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        _supabase_client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)

    return _supabase_client


def reset_supabase_client():
    """Drop the cached client so the next call re-reads the configuration"""
    global _supabase_client
    _supabase_client = None
