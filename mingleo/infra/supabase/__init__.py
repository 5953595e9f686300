# Supabase-compatible HTTP adapters
from mingleo.infra.supabase.auth_client import SupabaseAuthClient
from mingleo.infra.supabase.base_client import SupabaseBaseClient, map_http_error
from mingleo.infra.supabase.rest_store import SupabaseRestStore, build_filter_params
from mingleo.infra.supabase.storage_client import SupabaseStorageClient

__all__ = [
    "SupabaseAuthClient",
    "SupabaseBaseClient",
    "SupabaseRestStore",
    "SupabaseStorageClient",
    "build_filter_params",
    "map_http_error",
]
