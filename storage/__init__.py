"""
Storage Module
Durable run persistence.
"""
from .run_store import FileRunStore

__all__ = [
    "FileRunStore",
]
