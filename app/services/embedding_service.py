"""
Workmate — Text embedding service.

Turns free text (interest lists, occupation descriptions) into fixed-length,
L2-normalised vectors so that the scorers can compare them with cosine
similarity.

  * The sentence-transformers model is constructed lazily, exactly once per
    embedder, behind an ``asyncio.Lock``.  ``warm_up()`` triggers it ahead of
    the first request.
  * Results are memoised in an explicit ``EmbeddingCache`` (LRU, bounded by
    ``EMBEDDING_CACHE_SIZE``) keyed by the trimmed text.
  * Concurrent misses for the same text share one in-flight computation.
  * The blocking ``encode`` call runs in a worker thread and is retried with
    exponential backoff; a final failure surfaces as ``EmbeddingBackendError``.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Callable

import numpy as np
import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from app.config import get_settings

logger = structlog.get_logger("workmate.embedding_service")

Vector = tuple[float, ...]


class EmbeddingBackendError(RuntimeError):
    """The embedding model could not be loaded or failed to encode text."""


def _load_sentence_transformer(model_name: str) -> Any:
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


class EmbeddingCache:
    """Least-recently-used map from trimmed text to its embedding."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[str, Vector] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Vector | None:
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return vector

    def put(self, key: str, vector: Vector) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = vector
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class TextEmbedder:
    """Embed text with a lazily constructed sentence-transformers model.

    Parameters
    ----------
    model_name:
        Hugging Face model id; defaults to ``EMBEDDING_MODEL_NAME``.
    dimension:
        Length of the zero vector returned for blank text.
    cache:
        Shared ``EmbeddingCache``; a private one is created when omitted.
    model_factory:
        ``callable(model_name) -> model`` where ``model.encode(text,
        normalize_embeddings=True)`` returns a 1-D array.  Injected in tests.
    max_retries:
        Attempts per ``encode`` call before giving up.
    """

    def __init__(
        self,
        model_name: str | None = None,
        dimension: int | None = None,
        cache: EmbeddingCache | None = None,
        model_factory: Callable[[str], Any] | None = None,
        max_retries: int | None = None,
    ) -> None:
        settings = get_settings()
        self.model_name = model_name or settings.EMBEDDING_MODEL_NAME
        self.dimension = dimension or settings.EMBEDDING_DIM
        self.cache = cache if cache is not None else EmbeddingCache(
            settings.EMBEDDING_CACHE_SIZE
        )
        self.max_retries = max(1, max_retries or settings.EMBEDDING_MAX_RETRIES)
        self._model_factory = model_factory or _load_sentence_transformer
        self._model: Any | None = None
        self._init_lock = asyncio.Lock()
        self._in_flight: dict[str, asyncio.Future[Vector]] = {}

    # ── Public API ────────────────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    async def warm_up(self) -> None:
        """Load the model now so the first ranking request does not pay for it."""
        await self._get_model()

    async def embed(self, text: str) -> Vector:
        clean = (text or "").strip()
        if not clean:
            return self.zero_vector()

        cached = self.cache.get(clean)
        if cached is not None:
            return cached

        pending = self._in_flight.get(clean)
        if pending is None:
            pending = asyncio.ensure_future(self._compute(clean))
            self._in_flight[clean] = pending
            pending.add_done_callback(
                lambda fut, key=clean: self._finish_in_flight(key, fut)
            )
        else:
            logger.debug("embedding_in_flight_shared", length=len(clean))

        # A caller timing out must not cancel the computation other callers share.
        return await asyncio.shield(pending)

    def zero_vector(self) -> Vector:
        return (0.0,) * self.dimension

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("embedding_cache_cleared")

    # ── Internals ─────────────────────────────────────────────────────────

    async def _get_model(self) -> Any:
        if self._model is not None:
            return self._model
        async with self._init_lock:
            if self._model is None:
                logger.info("embedding_model_loading", model=self.model_name)
                try:
                    self._model = await asyncio.to_thread(
                        self._model_factory, self.model_name
                    )
                except Exception as exc:
                    logger.exception("embedding_model_load_failed", model=self.model_name)
                    raise EmbeddingBackendError(
                        f"Could not load embedding model {self.model_name!r}"
                    ) from exc
                logger.info("embedding_model_loaded", model=self.model_name)
        return self._model

    async def _compute(self, text: str) -> Vector:
        model = await self._get_model()
        logger.debug("embedding_cache_miss", length=len(text))
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                reraise=True,
            ):
                with attempt:
                    raw = await asyncio.to_thread(
                        model.encode, text, normalize_embeddings=True
                    )
        except Exception as exc:
            logger.warning("embedding_encode_failed", error=str(exc))
            raise EmbeddingBackendError(f"Embedding failed: {exc}") from exc

        vector = self._to_unit_vector(raw)
        self.cache.put(text, vector)
        return vector

    def _finish_in_flight(self, key: str, fut: asyncio.Future[Vector]) -> None:
        self._in_flight.pop(key, None)
        if not fut.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            fut.exception()

    @staticmethod
    def _to_unit_vector(raw: Any) -> Vector:
        arr = np.asarray(raw, dtype=float).ravel()
        norm = float(np.linalg.norm(arr))
        if norm > 0:
            arr = arr / norm
        return tuple(float(x) for x in arr)
