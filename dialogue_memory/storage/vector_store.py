"""Qdrant embedding cache for interactions.

Runs in embedded (local) mode, no server required. One collection holds the
combined-text embedding of each interaction, keyed by a point id derived from
the interaction id, so retrieval can reuse vectors instead of recomputing them.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from dialogue_memory.config import VECTOR_DIR

logger = logging.getLogger(__name__)

INTERACTION_COLLECTION = "interaction_text"


def point_id(interaction_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, interaction_id))


class VectorStore:
    """Qdrant-backed store of interaction embeddings."""

    def __init__(self, vector_dir: Path | None = None) -> None:
        self.vector_dir = vector_dir or VECTOR_DIR
        self._client: QdrantClient | None = None
        self._dimension: int | None = None

    def initialize(self) -> None:
        """Open Qdrant in embedded mode. The collection is created on first write."""
        self.vector_dir.mkdir(parents=True, exist_ok=True)
        self._client = QdrantClient(path=str(self.vector_dir))
        if self._has_collection():
            info = self.client.get_collection(INTERACTION_COLLECTION)
            self._dimension = info.config.params.vectors.size

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    @property
    def client(self) -> QdrantClient:
        assert self._client is not None, "VectorStore not initialized, call initialize() first"
        return self._client

    def _has_collection(self) -> bool:
        collections = [c.name for c in self.client.get_collections().collections]
        return INTERACTION_COLLECTION in collections

    def _ensure_collection(self, dim: int) -> None:
        if self._dimension is not None:
            return
        if not self._has_collection():
            self.client.create_collection(
                collection_name=INTERACTION_COLLECTION,
                vectors_config=VectorParams(size=dim, distance=Distance.COSINE),
            )
        self._dimension = dim

    def upsert(self, interaction_id: str, vector: list[float], timestamp: str = "") -> bool:
        """Cache an interaction embedding. Vectors of a foreign dimension are refused."""
        self._ensure_collection(len(vector))
        if len(vector) != self._dimension:
            logger.warning(
                "Embedding dimension %d does not match cache dimension %d, not cached",
                len(vector), self._dimension,
            )
            return False
        self.client.upsert(
            collection_name=INTERACTION_COLLECTION,
            points=[
                PointStruct(
                    id=point_id(interaction_id),
                    vector=vector,
                    payload={"interaction_id": interaction_id, "timestamp": timestamp},
                )
            ],
        )
        return True

    def get_many(self, interaction_ids: list[str]) -> dict[str, list[float]]:
        """Return cached vectors keyed by interaction id; misses are omitted."""
        if self._dimension is None or not interaction_ids:
            return {}
        points = self.client.retrieve(
            collection_name=INTERACTION_COLLECTION,
            ids=[point_id(i) for i in interaction_ids],
            with_vectors=True,
            with_payload=True,
        )
        return {p.payload["interaction_id"]: list(p.vector) for p in points}

    def search(self, query_vector: list[float], limit: int = 5) -> list[dict]:
        """Nearest cached interactions: list of {interaction_id, score}."""
        if self._dimension is None or len(query_vector) != self._dimension:
            return []
        results = self.client.query_points(
            collection_name=INTERACTION_COLLECTION,
            query=query_vector,
            limit=limit,
        )
        return [
            {"interaction_id": r.payload["interaction_id"], "score": r.score}
            for r in results.points
        ]

    def count(self) -> int:
        if self._dimension is None:
            return 0
        return self.client.count(collection_name=INTERACTION_COLLECTION).count
