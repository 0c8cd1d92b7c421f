"""Asset storage adapters."""

from .supabase_storage import SupabaseAssetStorage

__all__ = ["SupabaseAssetStorage"]
