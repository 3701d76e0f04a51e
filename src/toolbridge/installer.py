"""Idempotent installation of the uv and bun helper binaries.

Each install walks ``absent -> resolving-version -> checking-existing`` and
then either short-circuits (the binary on disk already reports the target
version) or goes ``downloading -> extracting -> copying -> chmod`` to
``installed``.  Any fault lands in ``failed`` and the call returns ``None``;
the rest of the runtime keeps going with system-PATH-only rewriting.
"""
from __future__ import annotations

import asyncio
import logging
import platform
import shutil
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from .archive import ArchiveFetcher
from .errors import ExtractionError, PlatformUnsupportedError, VersionResolutionError
from .github_releases import GitHubReleases
from .platforms import PlatformMapping, extract_version, make_executable, resolve_platform

log = logging.getLogger(__name__)

# Subdirectory of cache_dir for archives and extraction; the only part ever cleared.
DOWNLOAD_DIR = "downloads"


class InstallState(str, Enum):
    ABSENT = "absent"
    RESOLVING_VERSION = "resolving-version"
    CHECKING_EXISTING = "checking-existing"
    SKIPPED = "skipped"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    COPYING = "copying"
    CHMOD = "chmod"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class BinarySpec:
    name: str
    owner: str
    project: str
    archive_pattern: str
    tag_prefix: str = ""
    nested: bool = False

    def archive_stem(self, mapping: PlatformMapping) -> str:
        return self.archive_pattern.format(**asdict(mapping))

    def archive_name(self, mapping: PlatformMapping) -> str:
        return f"{self.archive_stem(mapping)}.zip"

    def member_path(self, mapping: PlatformMapping) -> Path:
        exe = mapping.executable_name(self.name)
        if self.nested:
            return Path(self.archive_stem(mapping)) / exe
        return Path(exe)

    def normalize_version(self, version: str) -> str:
        if self.tag_prefix and version.startswith(self.tag_prefix):
            version = version[len(self.tag_prefix):]
        return version[1:] if version.startswith("v") else version


UV = BinarySpec(
    name="uv",
    owner="astral-sh",
    project="uv",
    archive_pattern="uv-{uv_arch}-{uv_platform}",
)
# Bun ships the executable inside a directory named after the archive.
BUN = BinarySpec(
    name="bun",
    owner="oven-sh",
    project="bun",
    archive_pattern="bun-{bun_platform}-{bun_arch}",
    tag_prefix="bun-v",
    nested=True,
)


@dataclass(frozen=True)
class InstalledBinary:
    name: str
    path: Path
    version: str


class BinaryInstaller:
    def __init__(
        self,
        bin_dir: str | Path,
        cache_dir: str | Path,
        *,
        fetcher: ArchiveFetcher | None = None,
        releases: GitHubReleases | None = None,
        platform_resolver: Callable[[], PlatformMapping | None] = resolve_platform,
        version_probe: Callable[[Path], str | None] = extract_version,
    ) -> None:
        self.bin_dir = Path(bin_dir)
        self.cache_dir = Path(cache_dir)
        self.download_dir = self.cache_dir / DOWNLOAD_DIR
        self.fetcher = fetcher or ArchiveFetcher()
        self.releases = releases or GitHubReleases()
        self.platform_resolver = platform_resolver
        self.version_probe = version_probe
        self._states: dict[str, InstallState] = {}

    def state(self, name: str) -> InstallState:
        return self._states.get(name, InstallState.ABSENT)

    def states(self) -> dict[str, str]:
        return {name: state.value for name, state in self._states.items()}

    async def install_uv(self, version: str = "latest", mirror: str | None = None) -> InstalledBinary | None:
        return await self.install(UV, version, mirror)

    async def install_bun(self, version: str = "latest", mirror: str | None = None) -> InstalledBinary | None:
        return await self.install(BUN, version, mirror)

    async def install(
        self,
        spec: BinarySpec,
        version: str = "latest",
        mirror: str | None = None,
    ) -> InstalledBinary | None:
        """Install *spec* at *version* into ``bin_dir``.

        Never raises: every failure is logged and reported as ``None``.
        """
        log.info("Installing %s (version: %s)", spec.name, version)
        try:
            mapping = self.platform_resolver()
            if mapping is None:
                raise PlatformUnsupportedError(platform.system(), platform.machine())
            tag = await self._resolve_tag(spec, version)
        except (PlatformUnsupportedError, VersionResolutionError) as exc:
            self._set(spec, InstallState.FAILED)
            log.error("%s install failed: %s", spec.name, exc)
            return None

        target_version = spec.normalize_version(tag)
        final_path = self.bin_dir / mapping.executable_name(spec.name)

        self._set(spec, InstallState.CHECKING_EXISTING)
        if await self._matches_existing(final_path, target_version):
            self._set(spec, InstallState.SKIPPED)
            return InstalledBinary(spec.name, final_path, target_version)

        filename = spec.archive_name(mapping)
        url = self.releases.download_url(spec.owner, spec.project, tag, filename, mirror or None)
        temp_zip = self.download_dir / f"{spec.name}-{tag}.zip"
        temp_dir = self.download_dir / f"{spec.name}-extract-{tag}"

        try:
            self._set(spec, InstallState.DOWNLOADING)
            await self.fetcher.download(url, temp_zip, f"{spec.name} {tag}")

            self._set(spec, InstallState.EXTRACTING)
            await self.fetcher.extract_zip(temp_zip, temp_dir)
            extracted = temp_dir / spec.member_path(mapping)
            if not extracted.is_file():
                raise ExtractionError(f"{spec.member_path(mapping)} not found in {filename}")

            self._set(spec, InstallState.COPYING)
            await asyncio.to_thread(self._copy, extracted, final_path)

            self._set(spec, InstallState.CHMOD)
            await asyncio.to_thread(make_executable, final_path)
        except Exception as exc:  # noqa: BLE001
            self._set(spec, InstallState.FAILED)
            log.error("%s install failed: %s", spec.name, exc)
            return None
        finally:
            await self.fetcher.cleanup([temp_zip, temp_dir])

        self._set(spec, InstallState.INSTALLED)
        log.info("%s %s installed: %s", spec.name, target_version, final_path)
        return InstalledBinary(spec.name, final_path, target_version)

    async def _resolve_tag(self, spec: BinarySpec, version: str) -> str:
        if version != "latest":
            return version
        self._set(spec, InstallState.RESOLVING_VERSION)
        tag = await self.releases.latest_version(spec.owner, spec.project)
        if not tag:
            raise VersionResolutionError(f"Cannot determine latest {spec.name} version")
        return tag

    async def _matches_existing(self, path: Path, target_version: str) -> bool:
        if not path.is_file():
            log.debug("No installed %s found at %s", path.name, path)
            return False
        try:
            current = await asyncio.to_thread(self.version_probe, path)
        except Exception as exc:  # noqa: BLE001
            log.debug("Version probe of %s failed: %s", path, exc)
            current = None
        if current is not None and current.lstrip("v") == target_version:
            log.info("Correct version already installed (%s), skipping install", target_version)
            return True
        log.info("Version mismatch (current: %s, target: %s), reinstalling", current, target_version)
        return False

    def _copy(self, src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)

    def _set(self, spec: BinarySpec, state: InstallState) -> None:
        self._states[spec.name] = state
        log.debug("%s install state: %s", spec.name, state.value)

