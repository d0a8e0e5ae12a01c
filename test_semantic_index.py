#!/usr/bin/env python3
"""Tests for the namespace-scoped semantic index.

A small bag-of-words embedder stands in for the embedding service so that
similarity ordering is predictable.
"""

import re
from unittest.mock import Mock, patch

import pytest

from rsynth.errors import SemanticIndexError
from rsynth.models import IndexedContentItem, RawResultItem, SearchResult
from rsynth.stages.semantic_index import EmbeddingClient, SemanticIndex, namespace_for_topic

VOCABULARY = ["solar", "wind", "battery", "storage", "grid", "cooking", "recipe", "pasta"]


class BagOfWordsEmbedder:
    def __init__(self):
        self.calls = 0

    def generate_embedding(self, text):
        self.calls += 1
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(term)) for term in VOCABULARY]

    def generate_embeddings_batch(self, texts, max_workers=4):
        return [self.generate_embedding(text) for text in texts]


class FailingEmbedder(BagOfWordsEmbedder):
    def generate_embeddings_batch(self, texts, max_workers=4):
        raise ConnectionError("embedding service down")


def item(item_id, text, **metadata):
    return IndexedContentItem(id=item_id, text=text, metadata=metadata)


@pytest.fixture
def index():
    idx = SemanticIndex(BagOfWordsEmbedder(), dimension=len(VOCABULARY))
    yield idx
    idx.close()


def test_namespace_for_topic_normalizes_whitespace_and_case():
    assert namespace_for_topic("AI in   Healthcare") == ("research", "ai-in-healthcare")
    assert namespace_for_topic("  X\tY ") == ("research", "x-y")
    assert namespace_for_topic("X Y") != namespace_for_topic("Z")


def test_search_ranks_by_similarity(index):
    ns = ("research", "energy")
    index.add_batch(ns, [
        item("1", "pasta recipe cooking", query="food"),
        item("2", "solar wind grid", query="energy"),
        item("3", "solar battery storage", query="energy"),
    ])

    matches = index.search(ns, "solar wind", limit=2)

    assert [m.key for m in matches] == ["2", "3"]
    assert matches[0].score == pytest.approx(2 / (2 ** 0.5 * 3 ** 0.5))
    assert matches[0].value["query"] == "energy"
    assert matches[0].value["text"] == "solar wind grid"


def test_equal_scores_keep_insertion_order(index):
    ns = ("research", "ties")
    index.add_batch(ns, [item(str(i), "grid", n=i) for i in range(4)])

    assert [m.key for m in index.search(ns, "grid")] == ["0", "1", "2", "3"]


def test_metadata_filter(index):
    ns = ("research", "filtered")
    index.add_batch(ns, [
        item("a", "solar grid", query="q1"),
        item("b", "solar grid", query="q2"),
    ])

    matches = index.search(ns, "solar", metadata_filter={"query": "q2"})

    assert [m.key for m in matches] == ["b"]


def test_namespaces_are_isolated(index):
    first = namespace_for_topic("X Y")
    second = namespace_for_topic("Z")
    index.add_batch(first, [item("shared-id", "solar")])
    index.add_batch(second, [item("shared-id", "pasta")])

    assert [m.value["text"] for m in index.search(first, "solar pasta")] == ["solar"]
    assert [m.value["text"] for m in index.search(second, "solar pasta")] == ["pasta"]

    index.clear_namespace(first)

    assert index.count(first) == 0
    assert index.count(second) == 1
    assert index.search(first, "solar") == []


def test_clear_namespace_leaves_it_empty(index):
    ns = ("research", "temp")
    index.add_batch(ns, [item(str(i), "wind") for i in range(3)])

    assert index.clear_namespace(ns) == 3
    assert index.count(ns) == 0
    assert index.search(ns, "wind") == []


def test_get_delete_and_replace(index):
    ns = ("research", "crud")
    index.add(ns, item("k", "battery", title="Old"))
    index.add(ns, item("k", "battery storage", title="New"))

    assert index.count(ns) == 1
    assert index.get_by_id(ns, "k") == {"title": "New", "text": "battery storage"}
    assert index.delete(ns, "k") is True
    assert index.delete(ns, "k") is False
    assert index.get_by_id(ns, "k") is None


def test_items_from_search_result_carry_query_and_summary(index):
    result = SearchResult(
        query="grid storage",
        results=(RawResultItem(title="Battery news", url="https://b.com", snippet="storage"),),
        summary="Grid-scale batteries are growing.",
    )
    items = IndexedContentItem.from_search_result(result)
    assert items[0].id == "grid storage-0-https://b.com"
    assert items[0].text == "Battery news\n\nstorage\n\nQuery: grid storage"

    ns = ("research", "from-result")
    index.add_batch(ns, items)
    (match,) = index.search(ns, "battery storage")
    assert match.value["summary"] == "Grid-scale batteries are growing."
    assert match.value["url"] == "https://b.com"


def test_dimension_mismatch_is_rejected():
    idx = SemanticIndex(BagOfWordsEmbedder(), dimension=3)
    with pytest.raises(SemanticIndexError):
        idx.add(("research", "dims"), item("1", "solar"))
    assert idx.count(("research", "dims")) == 0


def test_embedding_failure_raises_semantic_index_error():
    idx = SemanticIndex(FailingEmbedder(), dimension=len(VOCABULARY))
    with pytest.raises(SemanticIndexError) as exc_info:
        idx.add_batch(("research", "down"), [item("1", "solar")])
    assert isinstance(exc_info.value.__cause__, ConnectionError)


def test_string_namespace_is_rejected(index):
    with pytest.raises(ValueError):
        index.count("research")


@patch("rsynth.stages.semantic_index.requests.post")
def test_embedding_client_posts_to_embeddings_endpoint(mock_post):
    def post(url, json, headers, timeout):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"data": [{"embedding": [float(len(json["input"])), 1.0]}]}
        return response

    mock_post.side_effect = post
    client = EmbeddingClient("http://embed.local/v1/", api_key="secret", model="embeddinggemma")

    vectors = client.generate_embeddings_batch(["a", "bbb", "cc"], max_workers=3)

    assert vectors == [[1.0, 1.0], [3.0, 1.0], [2.0, 1.0]]
    assert mock_post.call_count == 3
    url, kwargs = mock_post.call_args.args[0], mock_post.call_args.kwargs
    assert url == "http://embed.local/v1/embeddings"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["json"]["model"] == "embeddinggemma"
    assert kwargs["timeout"] == 30.0


@patch("rsynth.stages.semantic_index.requests.post")
def test_embedding_client_rejects_malformed_reply(mock_post):
    mock_post.return_value.json.return_value = {"error": "model not found"}
    client = EmbeddingClient("http://embed.local/v1", api_key=None, model="missing")

    with pytest.raises(ValueError, match="Malformed embedding response"):
        client.generate_embedding("text")
    assert "Authorization" not in mock_post.call_args.kwargs["headers"]


class FixedVectorEmbedder(BagOfWordsEmbedder):
    def __init__(self, vector):
        super().__init__()
        self.vector = vector

    def generate_embeddings_batch(self, texts, max_workers=4):
        return [self.vector for _ in texts]


def test_non_numeric_embedding_raises_semantic_index_error():
    idx = SemanticIndex(FixedVectorEmbedder(["a", "b"]), dimension=None)
    with pytest.raises(SemanticIndexError, match="not a numeric vector"):
        idx.add(("research", "bad-vector"), item("1", "solar"))
    assert idx.count(("research", "bad-vector")) == 0


def test_unserializable_metadata_raises_semantic_index_error(index):
    ns = ("research", "bad-metadata")
    with pytest.raises(SemanticIndexError, match="not JSON serializable"):
        index.add(ns, item("1", "solar", seen=object()))
    assert index.count(ns) == 0
