from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolbridge import platforms
from toolbridge.platforms import command_exists, extract_version, make_executable, resolve_platform


@pytest.mark.parametrize(
    ("system", "machine", "uv", "bun"),
    [
        ("Darwin", "arm64", ("apple-darwin", "aarch64"), ("darwin", "aarch64")),
        ("Darwin", "x86_64", ("apple-darwin", "x86_64"), ("darwin", "x64")),
        ("Linux", "aarch64", ("unknown-linux-gnu", "aarch64"), ("linux", "aarch64")),
        ("Linux", "x86_64", ("unknown-linux-gnu", "x86_64"), ("linux", "x64")),
        ("Windows", "AMD64", ("pc-windows-msvc", "x86_64"), ("windows", "x64")),
    ],
)
def test_platform_table(system: str, machine: str, uv: tuple[str, str], bun: tuple[str, str]) -> None:
    mapping = resolve_platform(system, machine)
    assert mapping is not None
    assert (mapping.uv_platform, mapping.uv_arch) == uv
    assert (mapping.bun_platform, mapping.bun_arch) == bun


def test_linux_x64_mapping() -> None:
    mapping = resolve_platform("linux", "x64")
    assert mapping == platforms.PlatformMapping(
        "linux", "x64", "unknown-linux-gnu", "x86_64", "linux", "x64"
    )


@pytest.mark.parametrize(("system", "machine"), [("windows", "arm64"), ("freebsd", "x86_64"), ("linux", "riscv64")])
def test_unsupported_platform_returns_none(system: str, machine: str) -> None:
    assert resolve_platform(system, machine) is None


def test_executable_name_adds_exe_on_windows() -> None:
    assert resolve_platform("windows", "x64").executable_name("uv") == "uv.exe"
    assert resolve_platform("linux", "x64").executable_name("uv") == "uv"


def test_command_exists_uses_which_or_where() -> None:
    calls: list[list[str]] = []

    def runner(cmd, **kwargs):
        calls.append(cmd)
        return SimpleNamespace(returncode=0 if cmd[1] == "uv" else 1)

    assert command_exists("uv", runner=runner, windows=False) is True
    assert command_exists("bun", runner=runner, windows=True) is False
    assert calls == [["which", "uv"], ["where", "bun"]]


def test_command_exists_false_when_locator_missing() -> None:
    def runner(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    assert command_exists("uv", runner=runner, windows=False) is False


def test_extract_version_from_stdout_or_stderr() -> None:
    def stdout_runner(cmd, **kwargs):
        return SimpleNamespace(returncode=0, stdout="uv 0.4.18 (7b55e9790 2024-10-01)\n", stderr="")

    def stderr_runner(cmd, **kwargs):
        return SimpleNamespace(returncode=0, stdout="", stderr="bun 1.1.30")

    assert extract_version("/opt/uv", runner=stdout_runner) == "0.4.18"
    assert extract_version("/opt/bun", runner=stderr_runner) == "1.1.30"


def test_extract_version_failures_return_none() -> None:
    def failing(cmd, **kwargs):
        return SimpleNamespace(returncode=1, stdout="0.1.0", stderr="")

    def timeout(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, 5)

    def no_version(cmd, **kwargs):
        return SimpleNamespace(returncode=0, stdout="dev build", stderr="")

    assert extract_version("x", runner=failing) is None
    assert extract_version("x", runner=timeout) is None
    assert extract_version("x", runner=no_version) is None


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_make_executable(tmp_path: Path) -> None:
    target = tmp_path / "uv"
    target.write_text("#!/bin/sh\n")
    target.chmod(0o644)
    make_executable(target)
    assert target.stat().st_mode & 0o777 == 0o755


def test_make_executable_missing_file_logs(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    if os.name == "nt":
        pytest.skip("POSIX permissions")
    make_executable(tmp_path / "missing")
    assert "Failed to set permissions" in caplog.text
