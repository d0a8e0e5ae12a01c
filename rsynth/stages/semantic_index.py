"""Semantic index - namespace-scoped embedding store with cosine similarity search."""

import json
import logging
import re
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import requests

from ..errors import SemanticIndexError
from ..models import IndexedContentItem, ScoredMatch

logger = logging.getLogger(__name__)

Namespace = Tuple[str, ...]

_NAMESPACE_SEPARATOR = "/"


def namespace_for_topic(topic: str) -> Namespace:
    """Derive the per-run namespace from a topic.

    Case-insensitive, with every whitespace run collapsed to ``-``, so runs on
    the same topic share a namespace while different topics stay apart.
    """
    slug = re.sub(r"\s+", "-", topic.strip()).lower()
    return ("research", slug)


class EmbeddingClient:
    """Calls an OpenAI-compatible ``/embeddings`` endpoint (Ollama serves one under ``/v1``)."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 30.0,
    ):
        self.endpoint = f"{api_url.rstrip('/')}/embeddings"
        self.model = model
        self.timeout = timeout
        # One plain request per call; batch workers share no connection state
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        logger.info(f"Embedding endpoint: {self.endpoint} (model: {model})")

    def generate_embedding(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            requests.RequestException: transport or HTTP status failure
            ValueError: the reply does not contain an embedding
        """
        try:
            response = requests.post(
                self.endpoint,
                json={"input": text, "model": self.model},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            vector = response.json()["data"][0]["embedding"]
        except requests.RequestException as e:
            logger.error(f"Embedding request failed: {e}")
            raise
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Malformed embedding response: missing {e}") from e
        logger.debug(f"Embedded {len(text)} chars into {len(vector)} dimensions")
        return vector

    def generate_embeddings_batch(self, texts: List[str], max_workers: int = 4) -> List[List[float]]:
        """
        Generate embeddings for multiple texts concurrently.

        Texts are independent, so each one is embedded on its own worker; the
        returned list follows the input order. The first failure is raised.
        """
        if not texts:
            return []
        if max_workers <= 1 or len(texts) == 1:
            return [self.generate_embedding(text) for text in texts]

        with ThreadPoolExecutor(max_workers=min(max_workers, len(texts))) as executor:
            return list(executor.map(self.generate_embedding, texts))


def _cosine_sim_sql(emb_blob: bytes, query_blob: bytes, dim: int) -> float:
    a = np.frombuffer(emb_blob, dtype=np.float32, count=dim)
    b = np.frombuffer(query_blob, dtype=np.float32, count=dim)
    na = np.linalg.norm(a)
    nb = np.linalg.norm(b)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(a, b) / (na * nb))


class SemanticIndex:
    """
    SQLite-backed vector store partitioned by namespace.

    Entries are keyed by ``(namespace, id)`` and hold the original text, JSON
    metadata and a float32 embedding blob. Similarity is cosine similarity,
    computed by a SQL function registered on the connection, so scores fall
    in [-1, 1].
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        db_path: Union[str, Path] = ":memory:",
        dimension: Optional[int] = 768,
        max_workers: int = 4,
    ):
        """
        Initialize the index.

        Args:
            embedding_client: Client used for both documents and queries
            db_path: SQLite database path, ``:memory:`` by default
            dimension: Expected embedding size; ``None`` accepts any size
            max_workers: Concurrent embedding requests during ``add_batch``
        """
        self.embedding_client = embedding_client
        self.db_path = str(db_path)
        self.dimension = dimension
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._conn = self._connect()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.create_function("cosine_sim", 3, _cosine_sim_sql)
        return conn

    def _init_db(self):
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    namespace TEXT NOT NULL,
                    id TEXT NOT NULL,
                    text TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    embedding BLOB NOT NULL,
                    dimension INTEGER NOT NULL,
                    UNIQUE (namespace, id)
                )
            """)
            self._conn.commit()
        logger.info(f"Semantic index initialized at: {self.db_path}")

    @staticmethod
    def _namespace_key(namespace: Sequence[str]) -> str:
        if isinstance(namespace, str) or not namespace:
            raise ValueError("namespace must be a non-empty sequence of strings")
        return _NAMESPACE_SEPARATOR.join(namespace)

    def _to_blob(self, vector: Sequence[float]) -> Tuple[bytes, int]:
        try:
            array = np.asarray(vector, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise SemanticIndexError(f"Embedding is not a numeric vector: {e}") from e
        if array.ndim != 1:
            raise SemanticIndexError(f"Embedding must be one-dimensional, got shape {array.shape}")
        if self.dimension is not None and len(array) != self.dimension:
            raise SemanticIndexError(
                f"Embedding has {len(array)} dimensions, expected {self.dimension}"
            )
        return array.tobytes(), len(array)

    def add(self, namespace: Namespace, item: IndexedContentItem) -> None:
        """Embed and store a single item."""
        self.add_batch(namespace, [item])

    def add_batch(self, namespace: Namespace, items: List[IndexedContentItem]) -> int:
        """
        Embed and store items under ``namespace``.

        Embeddings are computed concurrently; rows are written in a single
        transaction once every embedding is available, so a search issued
        after this returns sees the whole batch. Existing ids are replaced.

        Returns:
            Number of items stored
        """
        key = self._namespace_key(namespace)
        if not items:
            return 0

        try:
            vectors = self.embedding_client.generate_embeddings_batch(
                [item.text for item in items], max_workers=self.max_workers
            )
        except Exception as e:
            raise SemanticIndexError(f"Failed to embed {len(items)} items: {e}") from e

        rows = []
        for item, vector in zip(items, vectors):
            blob, dim = self._to_blob(vector)
            try:
                metadata = json.dumps(item.metadata)
            except (TypeError, ValueError) as e:
                raise SemanticIndexError(f"Metadata of item {item.id!r} is not JSON serializable: {e}") from e
            rows.append((key, item.id, item.text, metadata, blob, dim))

        try:
            with self._lock:
                self._conn.executemany("""
                    INSERT OR REPLACE INTO entries (namespace, id, text, metadata, embedding, dimension)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, rows)
                self._conn.commit()
        except sqlite3.Error as e:
            raise SemanticIndexError(f"Failed to store {len(rows)} items: {e}") from e

        logger.info(f"Indexed {len(rows)} items under namespace '{key}'")
        return len(rows)

    def search(
        self,
        namespace: Namespace,
        query_text: str,
        metadata_filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
    ) -> List[ScoredMatch]:
        """
        Return up to ``limit`` items of ``namespace`` most similar to ``query_text``.

        ``metadata_filter`` restricts results to items whose metadata fields
        equal the given values. Equal scores keep insertion order.
        """
        key = self._namespace_key(namespace)
        if limit < 1:
            return []

        try:
            query_vector = self.embedding_client.generate_embedding(query_text)
        except Exception as e:
            raise SemanticIndexError(f"Failed to embed search query: {e}") from e
        query_blob, query_dim = self._to_blob(query_vector)

        where = ["namespace = ?", "dimension = ?"]
        params: List[Any] = [query_blob, key, query_dim]
        for field_name, expected in (metadata_filter or {}).items():
            path = '$."' + field_name.replace('"', '\\"') + '"'
            if expected is None:
                where.append("json_extract(metadata, ?) IS NULL")
                params.append(path)
            else:
                where.append("json_extract(metadata, ?) = ?")
                params.extend([path, expected])
        params.append(limit)

        sql = f"""
            SELECT id, text, metadata, cosine_sim(embedding, ?, dimension) AS score
            FROM entries
            WHERE {' AND '.join(where)}
            ORDER BY score DESC, seq ASC
            LIMIT ?
        """
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise SemanticIndexError(f"Similarity search failed: {e}") from e

        matches = []
        for item_id, text, metadata, score in rows:
            value = json.loads(metadata)
            value["text"] = text
            matches.append(ScoredMatch(key=item_id, value=value, score=float(score)))

        logger.debug(f"Search in '{key}' returned {len(matches)} matches")
        return matches

    def get_by_id(self, namespace: Namespace, item_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored payload (metadata plus ``text``) or ``None``."""
        key = self._namespace_key(namespace)
        with self._lock:
            row = self._conn.execute(
                "SELECT text, metadata FROM entries WHERE namespace = ? AND id = ?",
                (key, item_id),
            ).fetchone()
        if row is None:
            return None
        value = json.loads(row[1])
        value["text"] = row[0]
        return value

    def delete(self, namespace: Namespace, item_id: str) -> bool:
        """Remove one item. Returns whether anything was deleted."""
        key = self._namespace_key(namespace)
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM entries WHERE namespace = ? AND id = ?", (key, item_id)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def clear_namespace(self, namespace: Namespace) -> int:
        """Remove every item stored under ``namespace``. Returns the count removed."""
        key = self._namespace_key(namespace)
        with self._lock:
            cursor = self._conn.execute("DELETE FROM entries WHERE namespace = ?", (key,))
            self._conn.commit()
        logger.info(f"Cleared {cursor.rowcount} items from namespace '{key}'")
        return cursor.rowcount

    def count(self, namespace: Namespace) -> int:
        key = self._namespace_key(namespace)
        with self._lock:
            (total,) = self._conn.execute(
                "SELECT COUNT(*) FROM entries WHERE namespace = ?", (key,)
            ).fetchone()
        return total

    def close(self):
        with self._lock:
            self._conn.close()
