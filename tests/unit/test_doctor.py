"""Unit tests for doctor diagnostics."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import respx
from httpx import Response
from typer.testing import CliRunner

from outreach_research.cli import app
from outreach_research.config import Settings
from outreach_research.doctor import (
    CheckResult,
    CheckStatus,
    DoctorReport,
    _check_binaries,
    _check_config_schema,
    _check_llm_keys,
    _check_storage_directory,
    _check_youtube,
    run_doctor,
)

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"


class TestCheckConfigSchema:
    """Config schema diagnostics."""

    def test_valid_schema_returns_ok(self) -> None:
        assert _check_config_schema(config_path=None).status == CheckStatus.OK

    def test_invalid_schema_returns_fail(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("research:\n  deep_videos: 0\n", encoding="utf-8")
        result = _check_config_schema(config_path=config)
        assert result.status == CheckStatus.FAIL
        assert "error" in result.details


class TestCheckStorageDirectory:
    """Storage directory diagnostics."""

    def test_directory_writable(self, tmp_path: Path) -> None:
        result = _check_storage_directory(tmp_path / "store")
        assert result.status == CheckStatus.OK
        assert not list((tmp_path / "store").iterdir())

    def test_path_is_a_file(self, tmp_path: Path) -> None:
        blocker = tmp_path / "store"
        blocker.write_text("not a directory", encoding="utf-8")
        assert _check_storage_directory(blocker).status == CheckStatus.FAIL


class TestYouTubeCheck:
    """YouTube key presence and probe."""

    def test_missing_key_is_fail(self) -> None:
        assert _check_youtube(Settings(), probe=True).status == CheckStatus.FAIL

    def test_probe_skipped_is_warn(self) -> None:
        settings = Settings(youtube={"api_key": "k"})
        assert _check_youtube(settings, probe=False).status == CheckStatus.WARN

    @respx.mock
    def test_probe_ok(self) -> None:
        respx.get(SEARCH_URL).mock(
            return_value=Response(200, json={"items": [{"id": {"videoId": "v"}}]})
        )
        result = _check_youtube(Settings(youtube={"api_key": "k"}), probe=True)
        assert result.status == CheckStatus.OK

    @respx.mock
    def test_probe_rejected_key_is_fail(self) -> None:
        respx.get(SEARCH_URL).mock(
            return_value=Response(403, json={"error": {"message": "API key not valid."}})
        )
        result = _check_youtube(Settings(youtube={"api_key": "bad"}), probe=True)
        assert result.status == CheckStatus.FAIL
        assert "Invalid YouTube API key" in result.details["error"]


class TestLLMKeys:
    """Provider credential presence via litellm."""

    def test_present_key_is_ok(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "litellm.validate_environment",
            lambda model: {"keys_in_environment": True, "missing_keys": []},
        )
        checks = _check_llm_keys(Settings())
        assert [c.status for c in checks] == [CheckStatus.OK]

    def test_missing_key_is_fail_per_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _validate(model: str) -> dict[str, Any]:
            return {"keys_in_environment": False, "missing_keys": [f"{model}_KEY"]}

        monkeypatch.setattr("litellm.validate_environment", _validate)
        settings = Settings(llm={"model": "a", "fallback_models": ["b"]})
        checks = _check_llm_keys(settings)
        assert [c.status for c in checks] == [CheckStatus.FAIL, CheckStatus.FAIL]
        assert checks[1].details["missing"] == "b_KEY"


class TestBinaries:
    """Optional speech-to-text binaries only ever warn."""

    def test_missing_binaries_warn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("outreach_research.doctor.shutil.which", lambda _name: None)
        result = _check_binaries(asr_enabled=True)
        assert result.status == CheckStatus.WARN
        assert result.details["missing"] == "yt-dlp, whisper-cli"

    def test_present_binaries_ok(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("outreach_research.doctor.shutil.which", lambda n: f"/bin/{n}")
        assert _check_binaries(asr_enabled=False).status == CheckStatus.OK


class TestRunDoctor:
    """Aggregate doctor workflow."""

    def test_run_doctor_includes_core_checks(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "litellm.validate_environment",
            lambda model: {"keys_in_environment": True, "missing_keys": []},
        )
        settings = Settings(storage={"directory": tmp_path / "store"})
        report = run_doctor(settings, check_api_probes=False)
        names = {check.name for check in report.checks}
        assert {"config-schema", "storage-directory", "youtube-api-key", "asr-binaries"} <= names
        assert "llm-key:openai/gpt-4o-mini" in names
        # no YouTube key configured
        assert not report.healthy
        assert report.exit_code == 1


class TestDoctorCli:
    """CLI formatting and exit behavior."""

    def test_doctor_command_renders_table(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake_report = DoctorReport(
            checks=[
                CheckResult(name="a", status=CheckStatus.OK, message="ok"),
                CheckResult(name="b", status=CheckStatus.FAIL, message="bad"),
            ]
        )
        monkeypatch.setattr(
            "outreach_research.cli._load_settings", lambda *_args, **_kwargs: Settings()
        )
        monkeypatch.setattr("outreach_research.cli.run_doctor", lambda **_kwargs: fake_report)

        result = runner.invoke(app, ["doctor", "--no-api-probes"])
        assert result.exit_code == 1
        assert "Outreach Research Doctor" in result.output
        assert "FAIL" in result.output

    def test_doctor_command_quiet_healthy_zero_exit(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake_report = DoctorReport(
            checks=[CheckResult(name="a", status=CheckStatus.OK, message="ok")]
        )
        monkeypatch.setattr(
            "outreach_research.cli._load_settings", lambda *_args, **_kwargs: Settings()
        )
        monkeypatch.setattr("outreach_research.cli.run_doctor", lambda **_kwargs: fake_report)

        result = runner.invoke(app, ["doctor", "--quiet"])
        assert result.exit_code == 0
        assert "Outreach Research Doctor" not in result.output
