"""
Table store factory - builds the configured database back-end.
"""

from typing import Any

from .interface import TableStore
from .local_storage import LocalStorage
from .local_table_store import LocalTableStore
from .supabase_store import SupabaseTableStore


def create_table_store(config: Any) -> TableStore:
    """
    Create a TableStore based on configuration.

    Args:
        config: Settings object (storage_type, local_storage_path, supabase_*)

    Returns:
        TableStore instance

    Raises:
        ValueError: unknown storage type or missing hosted-database credentials
    """
    if config.storage_type == "local":
        return LocalTableStore(LocalStorage(config.local_storage_path))

    elif config.storage_type == "supabase":
        if not config.supabase_url or not config.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for supabase storage")
        return SupabaseTableStore(config.supabase_url, config.supabase_key)

    else:
        raise ValueError(f"Unsupported storage type: {config.storage_type}")
