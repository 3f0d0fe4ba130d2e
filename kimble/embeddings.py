# KimbleAI - embedding generation for the knowledge base.
# Wraps a local llama-index embedding model with a timeout, a small FIFO cache
# keyed by content hash, and the sliding-window chunker used at ingest time.

import hashlib
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from functools import lru_cache

from llama_index.embeddings.fastembed import FastEmbedEmbedding

from kimble.config import (
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    EMBED_CACHE_MAX,
    EMBED_MODEL_NAME,
    EMBED_TIMEOUT_SECONDS,
)

# Inputs are truncated to this many characters before embedding.
MAX_INPUT_CHARS = 8000

# Shared worker so a hung model call can be abandoned after the timeout.
_EXECUTOR = ThreadPoolExecutor(max_workers=2, thread_name_prefix="embed")


class EmbeddingError(RuntimeError):
    """Embedding could not be produced (empty input, timeout or model failure)."""


@lru_cache(maxsize=1)
def get_embed_model() -> FastEmbedEmbedding:
    """Loaded lazily: the first call downloads / opens the ONNX model."""
    print(f"[Embeddings] Loading embedding model {EMBED_MODEL_NAME}...")
    return FastEmbedEmbedding(model_name=EMBED_MODEL_NAME)


def _cache_key(text: str, kind: str) -> str:
    normalized = text.strip().lower()[:MAX_INPUT_CHARS]
    return hashlib.sha256(f"{kind}:{normalized}".encode("utf-8")).hexdigest()


class Embedder:
    """
    Embeds text with `model` (any llama-index BaseEmbedding).

    Results are cached by content hash with FIFO eviction at `cache_max`
    entries. Every call runs on a worker thread and is abandoned after
    `timeout` seconds.
    """

    def __init__(self, model=None, timeout: float = EMBED_TIMEOUT_SECONDS, cache_max: int = EMBED_CACHE_MAX):
        self._model = model
        self.timeout = timeout
        self.cache_max = cache_max
        self._cache: dict = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def model(self):
        if self._model is None:
            self._model = get_embed_model()
        return self._model

    def _run(self, fn, text: str) -> list:
        future = _EXECUTOR.submit(fn, text)
        try:
            return list(future.result(timeout=self.timeout))
        except FutureTimeout:
            future.cancel()
            raise EmbeddingError(f"embedding timed out after {self.timeout:.1f}s")
        except Exception as e:
            raise EmbeddingError(f"embedding failed: {e}") from e

    def embed(self, text: str, kind: str = "text") -> list:
        """
        kind="text" for content being stored, kind="query" for search queries
        (some models embed the two differently).
        """
        if not text or not text.strip():
            raise EmbeddingError("text cannot be empty")

        key = _cache_key(text, kind)
        if key in self._cache:
            self.hits += 1
            return list(self._cache[key])
        self.misses += 1

        clipped = text[:MAX_INPUT_CHARS]
        fn = self.model.get_query_embedding if kind == "query" else self.model.get_text_embedding
        vector = self._run(fn, clipped)

        if len(self._cache) >= self.cache_max:
            self._cache.pop(next(iter(self._cache)))
            self.evictions += 1
        self._cache[key] = vector
        return list(vector)

    def embed_query(self, text: str) -> list:
        return self.embed(text, kind="query")

    def stats(self) -> dict:
        requests = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / requests * 100, 2) if requests else 0.0,
            "size": len(self._cache),
            "evictions": self.evictions,
        }

    def clear(self) -> None:
        self._cache.clear()


def chunk_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list:
    """
    Sliding window over `text` with `overlap` characters shared between
    neighbouring chunks. A tail no longer than the overlap is already covered by
    the previous chunk and is dropped.
    """
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    if len(text) <= chunk_size:
        return [text]

    chunks = []
    start = 0
    step = chunk_size - overlap
    while start < len(text):
        chunks.append(text[start:start + chunk_size])
        start += step
        if len(text) - start <= overlap:
            break
    return chunks


# Process-wide default used by the API.
default_embedder = Embedder()


def embedding_stats() -> dict:
    return default_embedder.stats()


def clear_embedding_cache() -> None:
    default_embedder.clear()
