"""Tests for OutputManager -- stdout/stderr separation and formats."""

from __future__ import annotations

import json
import logging

import pytest

from offsync.output import OutputFormat, OutputManager, configure_logging


class TestFormats:
    def test_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(format=OutputFormat.JSON).format_response({"a": 1})
        assert json.loads(capsys.readouterr().out) == {"a": 1}

    def test_plain_dict(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(format=OutputFormat.PLAIN).format_response({"a": 1, "b": "x"})
        assert capsys.readouterr().out == "a\t1\nb\tx\n"

    def test_plain_table(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(format=OutputFormat.PLAIN).print_table(["seq", "url"], [["1", "/api/x"]])
        assert capsys.readouterr().out == "seq\turl\n1\t/api/x\n"

    def test_json_table(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(format=OutputFormat.JSON).print_table(["seq"], [["1"], ["2"]])
        assert json.loads(capsys.readouterr().out) == [{"seq": "1"}, {"seq": "2"}]

    def test_auto_resolves_to_plain_when_piped(self) -> None:
        assert OutputManager().format is OutputFormat.PLAIN


class TestDiagnostics:
    def test_messages_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        output = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        output.info("hello")
        output.warning("careful")
        output.error("broken")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "hello\nWarning: careful\nError: broken\n"

    def test_quiet_keeps_errors(self, capsys: pytest.CaptureFixture[str]) -> None:
        output = OutputManager(no_color=True, quiet=True)
        output.info("hidden")
        output.success("hidden")
        output.error("shown")
        assert capsys.readouterr().err == "Error: shown\n"

    def test_debug_requires_verbose(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(no_color=True).debug("nope")
        OutputManager(no_color=True, verbose=True).debug("yes")
        assert capsys.readouterr().err == "[debug] yes\n"

    def test_no_color_env(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        OutputManager().warning("w")
        assert capsys.readouterr().err == "Warning: w\n"


class TestConfigureLogging:
    @pytest.mark.parametrize(
        ("quiet", "verbose", "level"),
        [(False, False, logging.WARNING), (True, False, logging.ERROR), (False, True, logging.DEBUG)],
    )
    def test_levels(self, quiet: bool, verbose: bool, level: int) -> None:
        configure_logging(OutputManager(quiet=quiet, verbose=verbose))
        assert logging.getLogger("offsync").level == level

    def test_single_handler(self) -> None:
        configure_logging(OutputManager())
        configure_logging(OutputManager())
        assert len(logging.getLogger("offsync").handlers) == 1
