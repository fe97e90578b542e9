"""Health checks and self-diagnostics for outreach-research."""

from __future__ import annotations

import asyncio
import shutil
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from outreach_research.config import Settings
from outreach_research.exceptions import OutreachResearchError
from outreach_research.youtube import YouTubeSearchClient

_OPTIONAL_BINARIES = ("yt-dlp", "whisper-cli")


class CheckStatus(StrEnum):
    """Status for a doctor check item."""

    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


class CheckResult(BaseModel):
    """A single doctor check result."""

    name: str
    status: CheckStatus
    message: str
    details: dict[str, str] = Field(default_factory=dict)


class DoctorReport(BaseModel):
    """Aggregate report for all diagnostics."""

    checks: list[CheckResult]

    @property
    def healthy(self) -> bool:
        return all(check.status != CheckStatus.FAIL for check in self.checks)

    @property
    def exit_code(self) -> int:
        return 0 if self.healthy else 1


def _check_config_schema(config_path: Path | None) -> CheckResult:
    try:
        Settings.load(config_path=config_path)
    except Exception as exc:
        return CheckResult(
            name="config-schema",
            status=CheckStatus.FAIL,
            message="Configuration schema validation failed.",
            details={"error": str(exc)},
        )
    return CheckResult(
        name="config-schema",
        status=CheckStatus.OK,
        message="Configuration schema is valid.",
    )


def _check_storage_directory(path: Path) -> CheckResult:
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe = path / ".doctor-write-test"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
    except OSError as exc:
        return CheckResult(
            name="storage-directory",
            status=CheckStatus.FAIL,
            message="Storage directory is not writable.",
            details={"path": str(path), "error": str(exc)},
        )
    return CheckResult(
        name="storage-directory",
        status=CheckStatus.OK,
        message="Storage directory is writable.",
        details={"path": str(path)},
    )


async def _probe(settings: Settings) -> int:
    async with YouTubeSearchClient(
        api_key=settings.youtube.api_key,
        base_url=settings.youtube.base_url,
        timeout=settings.youtube.timeout,
        retries=settings.youtube.retries,
    ) as client:
        return await client.probe()


def _check_youtube(settings: Settings, probe: bool) -> CheckResult:
    if not settings.youtube.api_key:
        return CheckResult(
            name="youtube-api-key",
            status=CheckStatus.FAIL,
            message="YouTube API key is not set.",
        )
    if not probe:
        return CheckResult(
            name="youtube-api-key",
            status=CheckStatus.WARN,
            message="YouTube API key is set; probe was skipped.",
        )
    try:
        found = asyncio.run(_probe(settings))
    except OutreachResearchError as exc:
        return CheckResult(
            name="youtube-api-key",
            status=CheckStatus.FAIL,
            message="YouTube API probe failed.",
            details={"error": str(exc)},
        )
    return CheckResult(
        name="youtube-api-key",
        status=CheckStatus.OK,
        message="YouTube API key is valid.",
        details={"results": str(found)},
    )


def _check_llm_keys(settings: Settings) -> list[CheckResult]:
    import litellm

    checks: list[CheckResult] = []
    for model_id in [settings.llm.model, *settings.llm.fallback_models]:
        env = litellm.validate_environment(model=model_id)
        missing = env.get("missing_keys") or []
        if env.get("keys_in_environment"):
            checks.append(
                CheckResult(
                    name=f"llm-key:{model_id}",
                    status=CheckStatus.OK,
                    message="Provider credentials found.",
                )
            )
        else:
            checks.append(
                CheckResult(
                    name=f"llm-key:{model_id}",
                    status=CheckStatus.FAIL,
                    message="Provider credentials are missing.",
                    details={"missing": ", ".join(missing) or "unknown"},
                )
            )
    return checks


def _check_binaries(asr_enabled: bool) -> CheckResult:
    missing = [name for name in _OPTIONAL_BINARIES if shutil.which(name) is None]
    if missing:
        return CheckResult(
            name="asr-binaries",
            status=CheckStatus.WARN,
            message="Speech-to-text fallback binaries are missing.",
            details={
                "missing": ", ".join(missing),
                "asr_enabled": str(asr_enabled).lower(),
            },
        )
    return CheckResult(
        name="asr-binaries",
        status=CheckStatus.OK,
        message="Speech-to-text fallback binaries are on PATH.",
    )


def run_doctor(
    settings: Settings,
    config_path: Path | None = None,
    check_api_probes: bool = True,
) -> DoctorReport:
    """Run all health checks and return a structured report."""
    checks = [
        _check_config_schema(config_path),
        _check_storage_directory(Path(settings.storage.directory)),
        _check_youtube(settings, probe=check_api_probes),
        *_check_llm_keys(settings),
        _check_binaries(settings.transcripts.asr_enabled),
    ]
    return DoctorReport(checks=checks)
