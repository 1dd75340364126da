"""
In-memory document store, keyed by document id.

Entries live for the lifetime of the process; there is no persistence and
no transactional guarantee.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class DocumentStore:
    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {}

    def save(self, document_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._documents[document_id] = data
        return data

    def get(self, document_id: str) -> Optional[Dict[str, Any]]:
        return self._documents.get(document_id)

    def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    def all(self) -> List[Dict[str, Any]]:
        return list(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)


# Shared instance used by the routers
document_store = DocumentStore()


def get_document_store() -> DocumentStore:
    """FastAPI dependency returning the shared store."""
    return document_store
