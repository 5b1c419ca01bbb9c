"""
Run persistence.
"""
from .run_store import RunStore, JsonlRunStore

__all__ = ["RunStore", "JsonlRunStore"]
