"""In-memory FAISS index over page embeddings for cosine-similarity search."""

import logging
from typing import List, Optional, Sequence, Tuple

import faiss
import numpy as np

logger = logging.getLogger(__name__)


class PageVectorIndex:
    """Flat inner-product index over L2-normalised vectors, keyed by page number."""

    def __init__(self, dimensions: int):
        self.dimensions = dimensions
        self.index = faiss.IndexFlatIP(dimensions)
        self.page_numbers: List[int] = []

    def __len__(self) -> int:
        return self.index.ntotal

    def add(self, page_numbers: Sequence[int], embeddings: Sequence[Sequence[float]]) -> None:
        """Add page vectors. Vectors of the wrong dimensionality are skipped."""
        if len(page_numbers) != len(embeddings):
            raise ValueError("Number of embeddings must match number of page numbers")

        kept_pages = []
        kept_vectors = []
        for page_number, vector in zip(page_numbers, embeddings):
            if len(vector) != self.dimensions:
                logger.warning(f"Skipping page {page_number}: embedding has {len(vector)} dimensions, expected {self.dimensions}")
                continue
            kept_pages.append(page_number)
            kept_vectors.append(vector)

        if not kept_vectors:
            return

        matrix = np.asarray(kept_vectors, dtype=np.float32)
        # Normalize so inner product equals cosine similarity
        faiss.normalize_L2(matrix)
        self.index.add(matrix)
        self.page_numbers.extend(kept_pages)

    def search(self, query: Sequence[float], k: Optional[int] = None) -> List[Tuple[int, float]]:
        """
        Return (page_number, cosine similarity) pairs, best first.

        With ``k`` unset, every indexed page is scored.
        """
        if self.index.ntotal == 0:
            return []
        if len(query) != self.dimensions:
            raise ValueError(f"Query has {len(query)} dimensions, expected {self.dimensions}")

        k = self.index.ntotal if k is None else min(k, self.index.ntotal)
        if k <= 0:
            return []

        query_vector = np.asarray([query], dtype=np.float32)
        faiss.normalize_L2(query_vector)
        scores, ids = self.index.search(query_vector, k)

        results = []
        for score, idx in zip(scores[0], ids[0]):
            if idx == -1:
                continue
            results.append((self.page_numbers[idx], float(score)))
        return results
