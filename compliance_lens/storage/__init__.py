"""Storage layer for the local inspection history."""

from .evidence_store import EvidenceStore, MAX_HISTORY_ITEMS

__all__ = ['EvidenceStore', 'MAX_HISTORY_ITEMS']
