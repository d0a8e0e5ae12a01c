"""Persistence of finished research: a SQLite document store and Markdown reports."""

import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import PersistenceError
from .models import ResearchReport

logger = logging.getLogger(__name__)


class DocumentStore:
    """Append-only JSON document collections stored in SQLite."""

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the document store.

        Args:
            db_path: Path to SQLite database (``:memory:`` for a throwaway store)
        """
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    document TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            self._conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to open document store at {self.db_path}: {e}") from e
        logger.info(f"Document store initialized at: {self.db_path}")

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """Store ``document`` in ``collection`` and return its generated id."""
        doc_id = uuid.uuid4().hex
        try:
            payload = json.dumps(document, ensure_ascii=False, default=str)
            with self._lock:
                self._conn.execute(
                    "INSERT INTO documents (id, collection, document) VALUES (?, ?, ?)",
                    (doc_id, collection, payload),
                )
                self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save document to '{collection}': {e}") from e
        logger.info(f"Saved document {doc_id} to collection '{collection}'")
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._conn.execute(
                "SELECT document FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def find(self, collection: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent documents first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, document FROM documents WHERE collection = ? ORDER BY rowid DESC LIMIT ?",
                (collection, limit),
            ).fetchall()
        return [dict(json.loads(document), _id=doc_id) for doc_id, document in rows]

    def close(self):
        with self._lock:
            self._conn.close()


def write_markdown_report(report: ResearchReport, output_dir: Path) -> Path:
    """Write the report as Markdown and return the file path."""
    timestamp = report.timestamp.strftime("%Y%m%d_%H%M%S")
    filepath = Path(output_dir) / f"report_{timestamp}.md"

    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write("# Research Report\n\n")
            f.write(f"**Topic:** {report.topic}\n\n")
            f.write(f"**Generated:** {report.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n\n")
            f.write("**Queries:**\n")
            for query in report.queries:
                f.write(f"- {query}\n")
            f.write("\n---\n\n")
            f.write(report.summary)

            if report.top_sources:
                f.write("\n\n---\n\n")
                f.write("## Sources\n\n")
                for i, source in enumerate(report.top_sources, 1):
                    f.write(f"**[Source {i}]** {source.title}\n")
                    f.write(f"- URL: {source.url}\n")
                    f.write(f"- Relevance: {source.relevance:.1f}/10\n")
                    f.write("\n")
    except OSError as e:
        raise PersistenceError(f"Failed to write report to {filepath}: {e}") from e

    return filepath
