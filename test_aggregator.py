#!/usr/bin/env python3
"""Tests for regrouping semantic matches and ranking sources."""

from unittest.mock import Mock

import pytest

from rsynth.models import AggregatedGroup, AggregatedItem, ScoredMatch, SearchResult
from rsynth.stages.aggregator import ResultAggregator, normalize_score
from rsynth.stages.synthesizer import ReportSynthesizer


def match(query, url, score, title=None):
    return ScoredMatch(
        key=f"{query}-{url}",
        value={"title": title or url, "url": url, "snippet": "s", "query": query, "text": "t"},
        score=score,
    )


@pytest.mark.parametrize("score, expected", [
    (0.73, 7.3),
    (1.4, 10.0),
    (None, 5.0),
    (-0.2, 0.0),
    (0.0, 0.0),
])
def test_normalize_score(score, expected):
    assert normalize_score(score) == pytest.approx(expected)


def test_aggregate_groups_by_query_in_first_appearance_order():
    originals = [
        SearchResult(query="q1", summary="summary one"),
        SearchResult(query="q2", summary="summary two"),
        SearchResult(query="q3", summary="summary three"),
    ]
    matches = [
        match("q2", "https://b.com", 0.9),
        match("q1", "https://a.com", 0.8),
        match("q2", "https://c.com", 0.7),
        match("unknown", "https://x.com", 0.6),
    ]

    groups = ResultAggregator().aggregate("topic", originals, matches)

    assert [g.query for g in groups] == ["q2", "q1"]
    assert groups[0].summary == "summary two"
    assert groups[0].timestamp == originals[1].timestamp
    assert [i.url for i in groups[0].results] == ["https://b.com", "https://c.com"]
    assert groups[0].results[0].relevance_score == pytest.approx(9.0)


def test_collect_sources_first_seen_wins():
    groups = [
        AggregatedGroup(query="q1", results=[AggregatedItem("First", "https://dup.com", "s", 6.0)]),
        AggregatedGroup(query="q2", results=[AggregatedItem("Second", "https://dup.com", "s", 9.0)]),
    ]

    sources = ResultAggregator().collect_sources(groups)

    assert len(sources) == 1
    assert sources[0].title == "First"
    assert sources[0].relevance == 6.0


def test_collect_sources_truncates_sorted_and_stable():
    items = [AggregatedItem(f"T{i}", f"https://e.com/{i}", "s", float(i % 4)) for i in range(20)]
    groups = [AggregatedGroup(query="q", results=items)]

    sources = ResultAggregator().collect_sources(groups)

    assert len(sources) == 15
    relevances = [s.relevance for s in sources]
    assert relevances == sorted(relevances, reverse=True)
    # Ties keep discovery order
    assert [s.url for s in sources[:5]] == [f"https://e.com/{i}" for i in (3, 7, 11, 15, 19)]


def test_collect_sources_explicit_limit():
    items = [AggregatedItem(f"T{i}", f"https://e.com/{i}", "s", 5.0) for i in range(5)]
    sources = ResultAggregator(top_sources_limit=15).collect_sources([AggregatedGroup(query="q", results=items)], limit=2)
    assert [s.url for s in sources] == ["https://e.com/0", "https://e.com/1"]


def test_synthesizer_prompt_includes_every_group():
    mock_llm = Mock()
    mock_llm.complete.return_value = "Final report"
    synthesizer = ReportSynthesizer(mock_llm, model="report-model", max_tokens=800)
    groups = [
        AggregatedGroup(query="q1", results=[AggregatedItem("A", "https://a.com", "s", 7.0)], summary="finding one"),
        AggregatedGroup(query="q2", results=[AggregatedItem("B", "https://b.com", "s", 6.0)], summary="finding two"),
    ]

    assert synthesizer.synthesize("Fusion power", groups) == "Final report"

    kwargs = mock_llm.complete.call_args.kwargs
    prompt = kwargs["prompt"]
    assert 'research findings about "Fusion power"' in prompt
    assert "Query: q1\nFindings: finding one\n\nSources:\n- A (https://a.com)" in prompt
    assert "\n\n---\n\nQuery: q2" in prompt
    assert "An executive summary" in prompt
    assert kwargs["model"] == "report-model"
    assert kwargs["max_tokens"] == 800
