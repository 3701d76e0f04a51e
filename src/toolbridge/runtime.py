from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from .archive import ArchiveFetcher
from .command_resolver import CommandResolver
from .config import BridgeConfig
from .github_releases import GitHubReleases
from .installer import DOWNLOAD_DIR, BinaryInstaller, InstalledBinary
from .manager import ConnectionManager
from .registry import ActionRegistry, InMemoryActionRegistry
from .transports import McpClient

log = logging.getLogger(__name__)


class ToolBridge:
    """Startup and teardown of the whole runtime.

    ``start()`` installs the helper binaries (when enabled), hands their paths
    to the command resolver and then connects every configured server.
    ``stop()`` closes the connections and clears the download cache.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        registry: ActionRegistry | None = None,
        installer: BinaryInstaller | None = None,
        resolver: CommandResolver | None = None,
        client_factory: Callable[[str], McpClient] = McpClient,
        on_available: Callable[[list[str]], Any] | None = None,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else InMemoryActionRegistry()
        self.fetcher = installer.fetcher if installer is not None else ArchiveFetcher()
        self.installer = installer or BinaryInstaller(
            config.bin_dir,
            config.cache_dir,
            fetcher=self.fetcher,
            releases=GitHubReleases(),
        )
        self.resolver = resolver or CommandResolver(config)
        self.manager = ConnectionManager(
            config,
            self.resolver,
            self.registry,
            client_factory=client_factory,
            on_available=on_available,
        )
        self.binaries: dict[str, InstalledBinary] = {}
        self.started = False

    async def start(self) -> None:
        Path(self.config.bin_dir).mkdir(parents=True, exist_ok=True)
        Path(self.config.cache_dir).mkdir(parents=True, exist_ok=True)

        await self.install_binaries()
        uv, bun = self.binaries.get("uv"), self.binaries.get("bun")
        self.resolver.update_installed_paths(uv.path if uv else None, bun.path if bun else None)

        await self.manager.connect_all()
        self.started = True

    async def install_binaries(self) -> dict[str, InstalledBinary]:
        mirror = self.config.github_mirror or None
        jobs: dict[str, Any] = {}
        if self.config.uv.auto_download:
            jobs["uv"] = self.installer.install_uv(self.config.uv.version, mirror)
        if self.config.bun.auto_download:
            jobs["bun"] = self.installer.install_bun(self.config.bun.version, mirror)
        if not jobs:
            log.info("Automatic binary download disabled")
            return self.binaries

        results = await asyncio.gather(*jobs.values())
        for name, installed in zip(jobs, results):
            if installed is None:
                log.warning("%s is unavailable, falling back to the system PATH", name)
                continue
            self.binaries[name] = installed
        return self.binaries

    async def stop(self) -> None:
        await self.manager.cleanup()
        await self.fetcher.cleanup([Path(self.config.cache_dir) / DOWNLOAD_DIR])
        self.started = False
        log.info("Tool bridge stopped")
