"""
Document chunking utilities for RAG.
"""

import logging
from typing import List, Tuple

from ..exceptions import ChunkingError
from ..models import Chunk, Document

logger = logging.getLogger(__name__)

SENTENCE_TERMINALS = (".", "?", "!")


class DocumentChunker:
    """Splits document text into overlapping, sentence-aware chunks."""

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        min_chunk_length: int = 50,
        boundary_ratio: float = 0.7,
    ):
        """
        Initialize document chunker.

        Args:
            chunk_size: Window size in characters
            chunk_overlap: Characters shared between adjacent windows
            min_chunk_length: Chunks shorter than this after trimming are dropped
            boundary_ratio: Fraction of the window a sentence break must reach

        Raises:
            ChunkingError: If the window would never advance
        """
        if chunk_size <= 0:
            raise ChunkingError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ChunkingError(f"chunk_overlap must not be negative, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ChunkingError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        if min_chunk_length < 0:
            raise ChunkingError(f"min_chunk_length must not be negative, got {min_chunk_length}")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.min_chunk_length = min_chunk_length
        self.boundary_ratio = boundary_ratio

        logger.info(
            f"Initialized DocumentChunker with chunk_size={chunk_size}, "
            f"overlap={chunk_overlap}, min_length={min_chunk_length}"
        )

    def chunk_spans(self, text: str) -> List[Tuple[int, int]]:
        """
        Compute the (start, end) offsets of every window.

        Args:
            text: Text to split

        Returns:
            Offsets of each chunk before trimming and length filtering
        """
        spans = []
        length = len(text)
        start = 0

        while start < length:
            raw_end = min(start + self.chunk_size, length)
            end = raw_end

            if raw_end < length:
                last_break = max(text.rfind(t, start, raw_end) for t in SENTENCE_TERMINALS)
                if last_break != -1 and last_break >= start + self.chunk_size * self.boundary_ratio:
                    end = last_break + 1

            spans.append((start, end))

            if raw_end >= length:
                break

            # Never skip past a truncated chunk's end
            start = min(raw_end - self.chunk_overlap, end)

        return spans

    def chunk_text(self, text: str) -> List[str]:
        """
        Split text into chunk strings.

        Args:
            text: Text to split

        Returns:
            Trimmed chunks that meet the minimum length
        """
        chunks = []
        for start, end in self.chunk_spans(text):
            chunk = text[start:end].strip()
            if len(chunk) >= self.min_chunk_length:
                chunks.append(chunk)

        logger.debug(f"Chunking produced {len(chunks)} chunks from {len(text)} characters")
        return chunks

    def chunk_document(self, document: Document) -> List[Chunk]:
        """
        Chunk a document into Chunk records.

        Args:
            document: Document to chunk

        Returns:
            Chunks with dense indices starting at 0 and no vectors
        """
        return [
            Chunk(document_id=document.id, content=text, index=i)
            for i, text in enumerate(self.chunk_text(document.content))
        ]
