"""Tests for the voxrelay CLI (serve, probe)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

import voxrelay
from voxrelay._types import TransportMode
from voxrelay.cli import cli


def _report(*, success: bool) -> dict[str, object]:
    return {
        "success": success,
        "results": [
            {"service": "Speech recognizer", "status": "success", "latency": 12},
            {
                "service": "Response generator",
                "status": "success" if success else "error",
                "latency": 340,
                **({} if success else {"error": "Connection failed"}),
            },
            {"service": "Speech synthesizer", "status": "success", "latency": 95},
        ],
        "totalLatency": 447,
    }


class TestMainGroup:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert voxrelay.__version__ in result.output

    def test_lists_commands(self) -> None:
        result = CliRunner().invoke(cli, ["--help"])
        assert "serve" in result.output
        assert "probe" in result.output


class TestProbeCommand:
    @patch("voxrelay.cli.probe._probe", new_callable=AsyncMock)
    def test_all_services_healthy(self, mock_probe: AsyncMock) -> None:
        mock_probe.return_value = _report(success=True)

        result = CliRunner().invoke(
            cli, ["probe", "--server", "http://voice.test:9000", "--mode", "polling"]
        )

        assert result.exit_code == 0
        assert "SERVICE" in result.output
        assert "Response generator" in result.output
        assert "340ms" in result.output
        assert "Total: 447ms" in result.output
        mock_probe.assert_awaited_once_with("http://voice.test:9000", TransportMode.POLLING, 30.0)

    @patch("voxrelay.cli.probe._probe", new_callable=AsyncMock)
    def test_failed_service_exits_non_zero(self, mock_probe: AsyncMock) -> None:
        mock_probe.return_value = _report(success=False)

        result = CliRunner().invoke(cli, ["probe"])

        assert result.exit_code == 1
        assert "Connection failed" in result.output

    @patch("voxrelay.cli.probe._probe", new_callable=AsyncMock)
    def test_connection_error(self, mock_probe: AsyncMock) -> None:
        mock_probe.side_effect = ConnectionError("could not connect to http://x (error)")

        result = CliRunner().invoke(cli, ["probe", "--server", "http://x"])

        assert result.exit_code == 1
        assert "could not connect" in result.output


class TestServeCommand:
    @patch("voxrelay.cli.serve._serve", new_callable=AsyncMock)
    def test_passes_options(self, mock_serve: AsyncMock) -> None:
        result = CliRunner().invoke(
            cli,
            [
                "serve",
                "--host",
                "0.0.0.0",
                "--port",
                "9001",
                "--cors-origins",
                "http://a.test, http://b.test",
            ],
        )

        assert result.exit_code == 0, result.output
        mock_serve.assert_awaited_once_with(
            "0.0.0.0", 9001, cors_origins=["http://a.test", "http://b.test"]
        )

    def test_missing_collaborators_exit_non_zero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("VOXRELAY_RECOGNIZER", "VOXRELAY_GENERATOR", "VOXRELAY_SYNTHESIZER"):
            monkeypatch.delenv(name, raising=False)

        result = CliRunner().invoke(cli, ["serve"])

        assert result.exit_code == 1
        assert "VOXRELAY_RECOGNIZER" in result.output
