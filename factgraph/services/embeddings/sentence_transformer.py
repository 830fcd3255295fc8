import asyncio
from typing import List, Optional, Sequence

from sentence_transformers import SentenceTransformer

from factgraph.core.config import EmbeddingSettings
from factgraph.core.exceptions import UpstreamError
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SentenceTransformerEmbedder:
    """Text embedder backed by a local sentence-transformers model.

    The model loads on first use; encoding runs in a worker thread so the
    event loop is not blocked.
    """

    def __init__(self, settings: EmbeddingSettings, model: Optional[SentenceTransformer] = None):
        self.model_name = settings.model_name
        self.dimension = settings.dimension
        self.batch_size = settings.batch_size
        self._model = model

    @property
    def model(self) -> SentenceTransformer:
        """Lazy loader for the SentenceTransformer model."""
        if self._model is None:
            LOGGER.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        vectors = self.model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [[float(x) for x in v] for v in vectors]

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts in order.

        Raises:
            UpstreamError: model failed to load or encode
        """
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._encode, list(texts))
        except Exception as e:
            LOGGER.error("Embedding failed", exc_info=True, extra={"texts": len(texts)})
            raise UpstreamError(f"Embedding failed: {e}", original_error=e) from e

        for v in vectors:
            if len(v) != self.dimension:
                raise UpstreamError(
                    f"Embedding model {self.model_name} returned dimension {len(v)}, expected {self.dimension}"
                )
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]
