"""Supabase store adapter: client singleton and loop timeline repositories"""
from .client import get_supabase_client, reset_supabase_client
from .repositories import RepositoryFactory

__all__ = ['get_supabase_client', 'reset_supabase_client', 'RepositoryFactory']
