"""
Service interfaces for dependency inversion.
Allows swapping store implementations without changing business logic.
"""

from .store import (
    Entity, Store, StoreError, BackendUnavailableError, StorageUnavailableError,
    DuplicateKeyError, QuotaExceededError, DuplicateRequestError, ConcurrentUpdateError,
)

__all__ = [
    'Entity', 'Store', 'StoreError', 'BackendUnavailableError', 'StorageUnavailableError',
    'DuplicateKeyError', 'QuotaExceededError', 'DuplicateRequestError', 'ConcurrentUpdateError',
]
