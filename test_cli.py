#!/usr/bin/env python3
"""Tests for the command-line entry point."""

from pathlib import Path
from unittest.mock import patch

import pytest

from rsynth import cli
from rsynth.errors import StageError
from rsynth.models import ResearchReport, Source


@pytest.fixture(autouse=True)
def in_tmp_dir(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SEARXNG_BASE_URL", "http://localhost:8080")
    monkeypatch.setenv("DOCUMENT_DB_PATH", ":memory:")


def test_parser_options():
    args = cli.build_parser().parse_args(["solid state batteries", "--output", "out", "--no-markdown"])
    assert args.topic == "solid state batteries"
    assert args.output == "out"
    assert args.no_markdown is True
    assert args.log_level is None


@patch("rsynth.cli.ResearchPipeline")
def test_successful_run_prints_report(mock_pipeline_cls, capsys):
    mock_pipeline = mock_pipeline_cls.return_value
    mock_pipeline.run.return_value = ResearchReport(
        topic="solid state batteries",
        queries=["q1", "q2", "q3"],
        summary="Batteries are getting denser.",
        top_sources=[Source(url="https://b.com", title="Battery Weekly", relevance=9.1)],
        document_id="abc123",
    )

    exit_code = cli.main(["solid state batteries", "--output", "custom", "--no-markdown"])

    assert exit_code == 0
    config = mock_pipeline_cls.call_args.args[0]
    assert config.output_dir == Path("custom")
    assert config.save_markdown is False
    mock_pipeline.close.assert_called_once()

    out = capsys.readouterr().out
    assert "Batteries are getting denser." in out
    assert "(9.1/10) Battery Weekly" in out
    assert "Saved as document: abc123" in out


@patch("rsynth.cli.ResearchPipeline")
def test_stage_failure_exits_nonzero(mock_pipeline_cls, capsys):
    mock_pipeline_cls.return_value.run.side_effect = StageError("search backend exploded", stage="search")

    assert cli.main(["topic"]) == 1
    assert "Error in stage search" in capsys.readouterr().out


def test_configuration_error_exit_code(monkeypatch):
    monkeypatch.delenv("SEARXNG_BASE_URL")
    assert cli.main(["topic"]) == 2
