# tests/unit/test_unit_cli.py - v1
"""Tests for main.py CLI commands."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from medcache.main import _build_parser, main


@pytest.fixture
def cli_env(tmp_path, monkeypatch, mock_llm_client):
    """Point the CLI at tmp_path and mock the LLM client."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CACHE_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("STORE_RETRY_DELAY_S", "0")
    with patch(
        "medcache.service.factory.create_llm_client", return_value=mock_llm_client
    ):
        yield tmp_path / "data"


class TestParser:
    def test_analyze_args(self):
        args = _build_parser().parse_args(
            ["analyze", "Sinvastatina:40mg", "Ciprofibrato", "--patient", "p1"]
        )
        assert args.command == "analyze"
        assert args.medications == ["Sinvastatina:40mg", "Ciprofibrato"]
        assert args.patient == "p1"
        assert args.session is None

    def test_history_default_limit(self):
        args = _build_parser().parse_args(["history"])
        assert args.limit == 20

    def test_analyze_requires_medication(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["analyze"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "medcache" in capsys.readouterr().out


class TestAnalyzeCommand:
    def test_miss_then_hit(self, cli_env, capsys):
        assert main(["analyze", "Sinvastatina:40mg", "Ciprofibrato:100mg"]) == 0
        out = capsys.readouterr().out
        assert "Served from:    api" in out
        assert "Consultations:  1" in out
        assert "Risk of myopathy" in out

        assert main(["analyze", "ciprofibrato:100MG", "sinvastatina:40mg"]) == 0
        out = capsys.readouterr().out
        assert "Served from:    cache (0 days old)" in out
        assert "Consultations:  2" in out

    def test_blank_name_rejected(self, cli_env, capsys):
        assert main(["analyze", ":40mg"]) == 1
        assert "Invalid input" in capsys.readouterr().err

    def test_provider_failure_exit_code(self, cli_env, mock_llm_client, capsys):
        mock_llm_client.complete.side_effect = RuntimeError("upstream 503")
        assert main(["analyze", "Omeprazol:20mg"]) == 2
        assert "Please retry" in capsys.readouterr().err

    def test_invalid_configuration(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("CACHE_TTL_DAYS", "0")
        assert main(["stats"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err


class TestReportingCommands:
    def test_empty_reports(self, cli_env, capsys):
        assert main(["history"]) == 0
        assert "No consultations recorded" in capsys.readouterr().out
        assert main(["catalog"]) == 0
        assert "Catalog is empty" in capsys.readouterr().out
        assert main(["cleanup"]) == 0
        assert "Removed 0 expired cache entries" in capsys.readouterr().out

    def test_reports_after_analysis(self, cli_env, capsys):
        main(["analyze", "Sinvastatina:40mg", "Ciprofibrato:100mg", "--patient", "pac-9"])
        main(["analyze", "Sinvastatina:40mg", "Ciprofibrato:100mg"])
        capsys.readouterr()

        assert main(["stats"]) == 0
        out = capsys.readouterr().out
        assert "Cache statistics:" in out
        assert "Combinations:    1" in out
        assert "Consultations:   2" in out
        assert "Sinvastatina 40mg + Ciprofibrato 100mg" in out

        assert main(["history", "--limit", "5"]) == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2
        assert "patient=pac-9" in lines[1]

        assert main(["catalog"]) == 0
        out = capsys.readouterr().out
        assert "Sinvastatina" in out
        assert "Ciprofibrato" in out
