from __future__ import annotations

import logging
import os
import platform
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

log = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"\d+\.\d+\.\d+")

# platform.machine() spellings differ between kernels and Windows builds.
_MACHINE_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


@dataclass(frozen=True)
class PlatformMapping:
    os: str
    arch: str
    uv_platform: str
    uv_arch: str
    bun_platform: str
    bun_arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def executable_name(self, name: str) -> str:
        return f"{name}.exe" if self.is_windows else name


PLATFORM_TABLE: tuple[PlatformMapping, ...] = (
    PlatformMapping("darwin", "arm64", "apple-darwin", "aarch64", "darwin", "aarch64"),
    PlatformMapping("darwin", "x64", "apple-darwin", "x86_64", "darwin", "x64"),
    PlatformMapping("linux", "arm64", "unknown-linux-gnu", "aarch64", "linux", "aarch64"),
    PlatformMapping("linux", "x64", "unknown-linux-gnu", "x86_64", "linux", "x64"),
    PlatformMapping("windows", "x64", "pc-windows-msvc", "x86_64", "windows", "x64"),
)


def normalize_machine(machine: str) -> str:
    return _MACHINE_ALIASES.get(machine.lower(), machine.lower())


def resolve_platform(system: str | None = None, machine: str | None = None) -> PlatformMapping | None:
    """Look up the release naming for this host.

    ``system``/``machine`` default to :func:`platform.system` and
    :func:`platform.machine`.  Returns ``None`` for hosts outside the table.
    """
    os_name = (system or platform.system()).lower()
    arch = normalize_machine(machine or platform.machine())
    for mapping in PLATFORM_TABLE:
        if mapping.os == os_name and mapping.arch == arch:
            log.debug("Detected platform %s-%s", os_name, arch)
            return mapping
    log.error("Unsupported platform: %s-%s", os_name, arch)
    return None


def command_exists(
    name: str,
    *,
    runner: Callable = subprocess.run,
    windows: bool | None = None,
) -> bool:
    if windows is None:
        windows = os.name == "nt"
    locator = "where" if windows else "which"
    try:
        result = runner([locator, name], capture_output=True, text=True)
    except (OSError, subprocess.SubprocessError):
        log.debug("Command %r not available", name)
        return False
    available = result.returncode == 0
    log.debug("Command %r %s", name, "available" if available else "not available")
    return available


def extract_version(path: str | Path, *, runner: Callable = subprocess.run) -> str | None:
    try:
        result = runner([str(path), "--version"], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError, ValueError) as exc:
        log.debug("Failed to read version of %s: %s", path, exc)
        return None
    if result.returncode != 0:
        log.debug("%s --version exited with %s", path, result.returncode)
        return None
    output = (result.stdout or "") + (result.stderr or "")
    match = _VERSION_RE.search(output)
    return match.group(0) if match else None


def make_executable(path: str | Path) -> None:
    if os.name == "nt":
        return
    try:
        os.chmod(path, 0o755)
        log.debug("Marked executable: %s", path)
    except OSError as exc:
        log.warning("Failed to set permissions on %s: %s", path, exc)
