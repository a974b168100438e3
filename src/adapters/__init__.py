"""Adapters for external systems.

This module contains implementations of the backend service protocols.
"""

from src.adapters.memory_backend import (
    MemoryBackend,
    MemoryObjectStore,
    MemorySessionProvider,
    MemoryTableStore,
    MemoryUserProvisioner,
)

__all__ = [
    "MemoryBackend",
    "MemoryObjectStore",
    "MemorySessionProvider",
    "MemoryTableStore",
    "MemoryUserProvisioner",
]
