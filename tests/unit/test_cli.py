"""Tests for the kubepulse CLI."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from kubepulse.cli import main as cli_main
from kubepulse.cli import cli
from kubepulse.errors import ConnectivityError
from kubepulse.models.config import KubePulseConfig


class TestFormatTable:
    def test_columns_aligned(self) -> None:
        table = cli_main._format_table(
            [
                ("default", "web-0", "1/1", "Running", "0"),
                ("kube-system", "coredns-5d78c9869d-abcde", "0/1", "CrashLoopBackOff", "12"),
            ]
        )
        lines = table.splitlines()
        assert lines[0].split() == ["NAMESPACE", "NAME", "READY", "STATUS", "RESTARTS"]
        assert lines[1].index("web-0") == lines[2].index("coredns")
        assert lines[2].endswith("12")

    def test_header_only(self) -> None:
        assert cli_main._format_table([]) == "NAMESPACE   NAME   READY   STATUS   RESTARTS"


class TestStatusCommand:
    def test_prints_rows(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: dict[str, object] = {}

        async def _rows(config: KubePulseConfig, namespace: str) -> list[tuple[str, str, str, str, str]]:
            seen["namespace"] = namespace
            seen["local"] = config.kube.local_mode
            return [("shop", "api-0", "2/2", "Running", "1")]

        monkeypatch.setattr(cli_main, "_collect_rows", _rows)
        result = CliRunner().invoke(cli, ["--local", "status", "-n", "shop"])

        assert result.exit_code == 0, result.output
        assert "api-0" in result.output
        assert seen == {"namespace": "shop", "local": True}

    def test_unreachable_cluster(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _rows(config: KubePulseConfig, namespace: str) -> list[tuple[str, str, str, str, str]]:
            raise ConnectivityError("pod list failed: 503 Service Unavailable")

        monkeypatch.setattr(cli_main, "_collect_rows", _rows)
        result = CliRunner().invoke(cli, ["status"])

        assert result.exit_code == 1
        assert "503" in result.output

    def test_bad_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEPULSE_LOG_LEVEL", "loud")
        result = CliRunner().invoke(cli, ["status"])
        assert result.exit_code == 2


class TestNamespaceOption:
    def test_serve_rejects_invalid_namespace(self, monkeypatch: pytest.MonkeyPatch) -> None:
        started: list[dict[str, object]] = []
        monkeypatch.setattr(cli_main, "_build_config", lambda ctx, **kwargs: started.append(kwargs))
        result = CliRunner().invoke(cli, ["serve", "-n", "Bad_NS"])
        assert result.exit_code == 2
        assert "Invalid namespace" in result.output
        assert started == []

    def test_status_rejects_invalid_namespace(self) -> None:
        result = CliRunner().invoke(cli, ["status", "--namespace", "shop/web"])
        assert result.exit_code == 2
        assert "Invalid namespace" in result.output
