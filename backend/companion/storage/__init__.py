"""Storage module - interfaces and implementations for data persistence."""

from .interface import StorageInterface, TableStore, StorageError, UniqueViolation
from .local_storage import LocalStorage
from .local_table_store import LocalTableStore
from .supabase_store import SupabaseTableStore
from .factory import create_table_store

__all__ = [
    'StorageInterface', 'TableStore', 'StorageError', 'UniqueViolation',
    'LocalStorage', 'LocalTableStore', 'SupabaseTableStore', 'create_table_store',
]
