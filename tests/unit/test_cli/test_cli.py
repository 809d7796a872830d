"""Tests for command-line parsing and dispatch."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from remsh.cli import main, parse_args
from remsh.server.listener import ServerError


class TestParseArgs:
    def test_server_defaults(self) -> None:
        args = parse_args(["server"])
        assert args.command == "server"
        assert args.host is None
        assert args.port is None

    def test_server_overrides(self) -> None:
        args = parse_args(["-v", "server", "--host", "127.0.0.1", "--port", "9000"])
        assert args.verbose
        assert args.host == "127.0.0.1"
        assert args.port == 9000

    def test_client_positionals(self) -> None:
        args = parse_args(["-c", "custom.yaml", "client", "example.org", "2222"])
        assert args.config == Path("custom.yaml")
        assert args.host == "example.org"
        assert args.port == 2222

    def test_client_without_positionals(self) -> None:
        args = parse_args(["client"])
        assert args.host is None
        assert args.port is None

    def test_invalid_port(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["server", "--port", "http"])


class TestMain:
    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_bind_failure_exits_with_status_1(self, tmp_path: Path) -> None:
        def _fail(coro):
            coro.close()
            raise ServerError("Cannot listen on 0.0.0.0:80")

        with patch("remsh.cli.asyncio.run", side_effect=_fail), \
                patch("remsh.utils.logging.setup_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main(["-c", str(tmp_path / "none.yaml"), "server", "--port", "80"])
        assert exc_info.value.code == 1
