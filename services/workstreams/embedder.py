"""
Achievement Embedding Service
Generates embeddings for achievement text using Ollama or sentence-transformers
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx
import structlog

from . import config
from .store import CorpusStore

logger = structlog.get_logger()


class EmbeddingProvider(Protocol):
    """Turns text into a fixed-length vector"""

    @property
    def model_id(self) -> str: ...

    def embed(self, text: str) -> list[float]: ...


class AchievementEmbedder:
    """
    Generates embeddings for achievement text.

    Supports two backends:
    1. Ollama (default)
    2. Sentence-transformers (local, optional extra)
    """

    # Achievements are short; anything longer is noise for the embedding
    MAX_TEXT_LENGTH = 8000
    LOCAL_MODEL = "all-MiniLM-L6-v2"

    def __init__(
        self,
        ollama_url: str = config.OLLAMA_URL,
        model: str = config.EMBED_MODEL,
        use_local: bool = False,
        max_length: Optional[int] = None,
        timeout: float = 120.0,
    ):
        """
        Args:
            ollama_url: URL of Ollama server
            model: Embedding model to use
            use_local: If True, use sentence-transformers locally
            max_length: Max text length (default: MAX_TEXT_LENGTH)
            timeout: HTTP timeout in seconds
        """
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self.use_local = use_local
        self.max_length = max_length or self.MAX_TEXT_LENGTH
        self.timeout = timeout
        self._local_model = None

    @property
    def model_id(self) -> str:
        """Identifier recorded next to every vector this embedder produces"""
        return self.LOCAL_MODEL if self.use_local else self.model

    def embed(self, text: str) -> list[float]:
        """
        Generate embedding for a single text.

        Raises:
            ValueError: if the text is empty or the backend returns no vector
            httpx.HTTPError: if the Ollama request fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        if len(text) > self.max_length:
            logger.debug("Truncated text", original=len(text), max=self.max_length)
            text = text[:self.max_length]

        if self.use_local:
            return self._embed_local(text)
        return self._embed_ollama(text)

    def _embed_ollama(self, text: str) -> list[float]:
        """Generate embedding using Ollama API"""
        try:
            response = httpx.post(
                f"{self.ollama_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Ollama HTTP error", status=e.response.status_code, error=e.response.text[:200])
            raise

        embedding = response.json().get("embedding", [])
        if not embedding:
            raise ValueError("Empty embedding returned")
        return embedding

    def _embed_local(self, text: str) -> list[float]:
        """Generate embedding using sentence-transformers"""
        if self._local_model is None:
            self._init_local_model()
        return self._local_model.encode(text, convert_to_numpy=True).tolist()

    def _init_local_model(self):
        """Initialize local sentence-transformer model"""
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise RuntimeError(
                "sentence-transformers not installed. "
                "Run: pip install 'workstreams[local]'"
            )
        self._local_model = SentenceTransformer(self.LOCAL_MODEL)
        logger.info(
            "Initialized local embedding model",
            dim=self._local_model.get_sentence_embedding_dimension(),
        )


def embed_missing(
    store: CorpusStore,
    corpus_id: str,
    embedder: EmbeddingProvider,
    now: Optional[datetime] = None,
) -> int:
    """
    Embed every achievement of a corpus that has no vector yet, or whose
    vector came from a model other than the embedder's.

    Mixing models would mix vector spaces (and usually dimensionalities)
    within one clustering run.

    Returns:
        Number of embeddings generated
    """
    now = now or datetime.now(timezone.utc)
    model_id = embedder.model_id
    generated = 0
    stale = 0
    for item in store.list_items(corpus_id):
        if item.embedding and item.embedding_model == model_id:
            continue
        if not item.text:
            continue
        if item.embedding:
            stale += 1
        store.set_item_embedding(item.id, embedder.embed(item.text), now, model=model_id)
        generated += 1

    if generated:
        logger.info(
            "Generated missing embeddings",
            corpus_id=corpus_id,
            model=model_id,
            count=generated,
            regenerated=stale,
        )
    return generated
