"""
Batch registry — persistence collaborator for batch and item state.
"""

from chequebatch.registry.base import BatchRegistry, BatchSummary, ItemRecord
from chequebatch.registry.memory import InMemoryBatchRegistry

__all__ = ["BatchRegistry", "BatchSummary", "ItemRecord", "InMemoryBatchRegistry"]
