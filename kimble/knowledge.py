# KimbleAI - per-user knowledge base (RAG path).
#
# Chunks of user content (chat turns, uploaded files, indexed email / Drive
# items, manual notes) are embedded and stored in a ChromaDB collection using
# cosine distance. Every chunk is owned by exactly one user; retrieval is
# always scoped to that user and to active chunks only. Deletion is a soft
# flag flip, so the collection only ever grows.

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Optional

import chromadb

from kimble.config import CHUNK_OVERLAP, CHUNK_SIZE, DB_DIR, KNOWLEDGE_COLLECTION, RAG_TOP_K
from kimble.embeddings import Embedder, chunk_text, default_embedder


class SourceType(str, Enum):
    CONVERSATION = "conversation"
    FILE = "file"
    EMAIL = "email"
    DRIVE = "drive"
    MANUAL = "manual"


@dataclass
class KnowledgeChunk:
    id: str
    user_id: str
    source_type: SourceType
    content: str
    importance: float = 0.5
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_active: bool = True
    title: Optional[str] = None
    embedding: Optional[list] = None
    similarity: Optional[float] = None

    def to_dict(self, preview_chars: Optional[int] = None) -> dict:
        content = self.content
        if preview_chars and len(content) > preview_chars:
            content = content[:preview_chars] + "..."
        return {
            "id": self.id,
            "user_id": self.user_id,
            "source_type": self.source_type.value,
            "title": self.title,
            "content": content,
            "importance": self.importance,
            "created_at": self.created_at.isoformat(),
            "is_active": self.is_active,
            "similarity": self.similarity,
        }


def _chunk_metadata(chunk: KnowledgeChunk) -> dict:
    # Chroma metadata values must be scalars; None is not allowed.
    meta = {
        "user_id": chunk.user_id,
        "source_type": chunk.source_type.value,
        "importance": float(chunk.importance),
        "created_at": chunk.created_at.isoformat(),
        "created_ts": chunk.created_at.timestamp(),
        "is_active": bool(chunk.is_active),
    }
    if chunk.title:
        meta["title"] = chunk.title
    return meta


def _chunk_from_record(chunk_id: str, document: str, meta: dict, similarity: Optional[float] = None) -> KnowledgeChunk:
    created_ts = meta.get("created_ts")
    created_at = (
        datetime.fromtimestamp(float(created_ts), tz=timezone.utc)
        if created_ts is not None
        else datetime.now(timezone.utc)
    )
    return KnowledgeChunk(
        id=chunk_id,
        user_id=meta.get("user_id", ""),
        source_type=SourceType(meta.get("source_type", SourceType.MANUAL.value)),
        content=document or "",
        importance=float(meta.get("importance", 0.5)),
        created_at=created_at,
        is_active=bool(meta.get("is_active", True)),
        title=meta.get("title"),
        similarity=similarity,
    )


def _active_for(user_id: str) -> dict:
    return {"$and": [{"user_id": {"$eq": user_id}}, {"is_active": {"$eq": True}}]}


@lru_cache(maxsize=1)
def get_chroma_client():
    return chromadb.PersistentClient(path=DB_DIR)


# ─────────────────────────────────────────
# STORE
# ─────────────────────────────────────────

class KnowledgeStore:
    """Chunk persistence and user-scoped cosine similarity search over one collection."""

    def __init__(self, client=None, collection_name: str = KNOWLEDGE_COLLECTION, embedder: Optional[Embedder] = None):
        self.client = client if client is not None else get_chroma_client()
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self.embedder = embedder or default_embedder

    def add_chunk(
        self,
        user_id: str,
        content: str,
        source_type: SourceType,
        embedding: list,
        importance: float = 0.5,
        title: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> KnowledgeChunk:
        chunk = KnowledgeChunk(
            id=str(uuid.uuid4()),
            user_id=user_id,
            source_type=SourceType(source_type),
            content=content,
            importance=importance,
            created_at=created_at or datetime.now(timezone.utc),
            title=title,
            embedding=list(embedding),
        )
        self.collection.add(
            ids=[chunk.id],
            embeddings=[chunk.embedding],
            documents=[chunk.content],
            metadatas=[_chunk_metadata(chunk)],
        )
        return chunk

    def ingest(
        self,
        user_id: str,
        content: str,
        source_type: SourceType = SourceType.MANUAL,
        importance: float = 0.5,
        title: Optional[str] = None,
    ) -> list:
        """
        Split `content` into overlapping chunks, embed each one and store it.
        Embedding failures propagate (EmbeddingError); nothing is half-written
        for the failing chunk, earlier chunks stay.
        """
        text = content.strip()
        if not text:
            return []
        if title:
            text = f"Title: {title}\n\n{text}"

        stored = []
        for piece in chunk_text(text, CHUNK_SIZE, CHUNK_OVERLAP):
            vector = self.embedder.embed(piece)
            stored.append(self.add_chunk(user_id, piece, source_type, vector, importance, title))
        print(f"[RAG] Ingested {len(stored)} {SourceType(source_type).value} chunk(s) for {user_id}")
        return stored

    def get(self, chunk_id: str) -> Optional[KnowledgeChunk]:
        records = self.collection.get(ids=[chunk_id], include=["documents", "metadatas"])
        ids = records.get("ids") or []
        if not ids:
            return None
        docs = records.get("documents") or [""]
        metas = records.get("metadatas") or [{}]
        return _chunk_from_record(ids[0], docs[0], metas[0] or {})

    def deactivate(self, chunk_id: str, user_id: str) -> bool:
        """Soft delete. Returns False if the chunk does not exist or belongs to someone else."""
        records = self.collection.get(ids=[chunk_id], include=["metadatas"])
        ids = records.get("ids") or []
        if not ids:
            return False
        meta = dict((records.get("metadatas") or [{}])[0] or {})
        if meta.get("user_id") != user_id:
            return False
        meta["is_active"] = False
        self.collection.update(ids=[chunk_id], metadatas=[meta])
        return True

    def count(self, user_id: str) -> int:
        records = self.collection.get(where=_active_for(user_id), include=["metadatas"])
        return len(records.get("ids") or [])

    def _query(self, user_id: str, query_vector: list, n_results: int) -> list:
        result = self.collection.query(
            query_embeddings=[list(query_vector)],
            n_results=n_results,
            where=_active_for(user_id),
            include=["documents", "metadatas", "distances"],
        )
        ids = (result.get("ids") or [[]])[0]
        docs = (result.get("documents") or [[]])[0]
        metas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        chunks = []
        for i, chunk_id in enumerate(ids):
            distance = float(distances[i]) if i < len(distances) else 1.0
            similarity = round(1.0 - distance, 6)
            chunks.append(_chunk_from_record(
                chunk_id,
                docs[i] if i < len(docs) else "",
                (metas[i] if i < len(metas) else None) or {},
                similarity,
            ))
        chunks.sort(key=lambda c: (-c.similarity, -c.created_at.timestamp()))
        return chunks

    def similarity_search(self, user_id: str, query_vector: list, top_k: int = RAG_TOP_K) -> list:
        """
        Active chunks of `user_id` ordered by cosine similarity (descending),
        equal similarities ordered newest first.
        """
        available = self.count(user_id)
        if available == 0 or top_k <= 0:
            return []

        # Over-fetch so ties at the cut-off can be re-ordered by recency.
        n_results = min(available, top_k * 3)
        while True:
            chunks = self._query(user_id, query_vector, n_results)
            if n_results >= available or len(chunks) <= top_k:
                break
            # Chroma picks arbitrarily among equal distances: widen until the
            # tie group at position top_k is fully inside the window.
            if chunks[-1].similarity != chunks[top_k - 1].similarity:
                break
            n_results = min(available, n_results * 2)
        return chunks[:top_k]


# ─────────────────────────────────────────
# RETRIEVER
# ─────────────────────────────────────────

class KnowledgeRetriever:
    """
    Query-time side of the RAG path. Never raises: if the embedding model or
    the vector store fails, the caller simply gets no context.
    """

    def __init__(self, store: KnowledgeStore, embedder: Optional[Embedder] = None, top_k: int = RAG_TOP_K):
        self.store = store
        self.embedder = embedder or store.embedder
        self.top_k = top_k

    def retrieve(self, user_id: str, query_text: str, top_k: Optional[int] = None) -> list:
        if top_k is None:
            top_k = self.top_k
        if not query_text or not query_text.strip():
            return []

        t0 = time.time()
        try:
            query_vector = self.embedder.embed_query(query_text)
        except Exception as e:
            print(f"[RAG] Query embedding failed, continuing without context: {e}")
            return []
        t_embed = time.time()

        try:
            chunks = self.store.similarity_search(user_id, query_vector, top_k)
        except Exception as e:
            print(f"[RAG] Vector search failed, continuing without context: {e}")
            return []

        print(f"[TIMING] embed={t_embed - t0:.2f}s  search={time.time() - t_embed:.2f}s  hits={len(chunks)}")
        return chunks


def format_context(chunks: list) -> str:
    """Render retrieved chunks as a prompt block; empty string when there are none."""
    parts = []
    for chunk in chunks:
        label = chunk.source_type.value
        if chunk.title:
            label = f"{label}: {chunk.title}"
        parts.append(f"--- Source: {label} ({chunk.created_at.date().isoformat()}) ---\n{chunk.content}")
    return "\n\n".join(parts)
