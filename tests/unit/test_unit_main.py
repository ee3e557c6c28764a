# tests/unit/test_unit_main.py — v2
"""Tests for main.py: CLI parsing and commands."""

from __future__ import annotations

import pytest

from seoanalyzer.cache.fingerprint import compute_fingerprint
from seoanalyzer.main import _build_parser, main
from seoanalyzer.version import __version__


@pytest.fixture
def json_cache_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CACHE_BACKEND", "json")
    monkeypatch.setenv("CACHE_ROOT", str(tmp_path / "cache"))
    return tmp_path / "cache"


class TestParser:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_cache_clear_pattern(self):
        args = _build_parser().parse_args(["cache", "clear", "--pattern", "example.com"])
        assert args.pattern == "example.com"

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_cache_without_subcommand(self, capsys):
        assert main(["cache"]) == 1


class TestFingerprintCommand:
    def test_prints_fingerprint(self, tmp_path, capsys):
        url_file = tmp_path / "urls.txt"
        url_file.write_text("https://a.com/2\n\nhttps://a.com/1\nhttps://a.com/2\n", encoding="utf-8")
        assert main(["fingerprint", str(url_file)]) == 0
        out = capsys.readouterr().out.strip()
        assert out == compute_fingerprint(["https://a.com/1", "https://a.com/2"])

    def test_missing_file(self, tmp_path):
        assert main(["fingerprint", str(tmp_path / "missing.txt")]) == 1


class TestCacheCommands:
    def test_stats_on_empty_cache(self, json_cache_env, capsys):
        assert main(["cache", "stats"]) == 0
        out = capsys.readouterr().out
        assert "JsonCacheStore" in out
        assert "Entries:" in out

    def test_clear(self, json_cache_env, capsys):
        assert main(["cache", "clear"]) == 0
        assert "Removed 0 cache entries" in capsys.readouterr().out
