"""
In-memory chunk repository.
"""

import logging
from typing import Dict, List

from ..models import Chunk
from .base import ChunkRepository

logger = logging.getLogger(__name__)


class InMemoryChunkRepository(ChunkRepository):
    """
    Process-local chunk storage keyed by document id.

    Data is lost when the process exits. Callers needing durability supply
    their own ChunkRepository.
    """

    def __init__(self):
        self._chunks: Dict[str, List[Chunk]] = {}

    def get_chunks(self, document_id: str) -> List[Chunk]:
        return list(self._chunks.get(document_id, []))

    def all_chunks(self) -> List[Chunk]:
        return [chunk for chunks in self._chunks.values() for chunk in chunks]

    def replace_document_chunks(self, document_id: str, chunks: List[Chunk]) -> List[Chunk]:
        ordered = sorted(chunks, key=lambda c: c.index)
        previous = self._chunks.pop(document_id, [])
        if ordered:
            self._chunks[document_id] = ordered
        logger.debug(
            f"Stored {len(ordered)} chunks for document {document_id} "
            f"(replaced {len(previous)})"
        )
        return previous

    def delete_document(self, document_id: str) -> int:
        return len(self._chunks.pop(document_id, []))

    def document_ids(self) -> List[str]:
        return list(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()

    def count(self) -> int:
        return sum(len(chunks) for chunks in self._chunks.values())
