from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

from .config import BridgeConfig
from .platforms import command_exists

log = logging.getLogger(__name__)

PYTHON_RUNNER = "uvx"
JS_RUNNER = "npx"


@dataclass
class InstalledPaths:
    """Locations of locally installed helper binaries; ``None`` until installed."""

    uv: str | None = None
    bun: str | None = None


class CommandResolver:
    def __init__(
        self,
        config: BridgeConfig,
        *,
        paths: InstalledPaths | None = None,
        exists: Callable[[str], bool] = command_exists,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.paths = paths if paths is not None else InstalledPaths()
        self.exists = exists
        self._environ = environ

    def resolve(
        self,
        command: str,
        args: list[str],
        enable_transform: bool = True,
        extra_env: Mapping[str, str] | None = None,
    ) -> tuple[str, list[str], dict[str, str]]:
        base = os.environ if self._environ is None else self._environ
        env = {**base, **(extra_env or {})}
        self._inject_index_mirror(env)

        final_command, final_args = command, list(args)
        if enable_transform:
            final_command, final_args = self._transform(command, list(args))

        log.debug("Final command: %s %s", final_command, " ".join(final_args))
        return final_command, final_args, env

    def update_installed_paths(self, uv: str | Path | None, bun: str | Path | None) -> None:
        self.paths.uv = str(uv) if uv else None
        self.paths.bun = str(bun) if bun else None

    def _inject_index_mirror(self, env: dict[str, str]) -> None:
        mirror = self.config.uv.pypi_mirror
        if not mirror:
            return
        env["PIP_INDEX_URL"] = mirror
        env["UV_INDEX_URL"] = mirror
        log.debug("Using PyPI mirror: %s", mirror)

    def _transform(self, command: str, args: list[str]) -> tuple[str, list[str]]:
        uv_path, bun_path = self.paths.uv, self.paths.bun

        if command == PYTHON_RUNNER:
            return self._runner_rewrite(command, args, uv_path, "uv", ["tool", "run"])
        if command == JS_RUNNER:
            return self._runner_rewrite(command, args, bun_path, "bun", ["x"])
        if command == "uv" and uv_path:
            return uv_path, [*self.config.uv.args, *args]
        if command == "bun" and bun_path:
            return bun_path, [*self.config.bun.args, *args]
        return command, args

    def _runner_rewrite(
        self,
        command: str,
        args: list[str],
        installed: str | None,
        binary: str,
        prefix: list[str],
    ) -> tuple[str, list[str]]:
        rewritten = f"{command} -> {binary} {' '.join(prefix)}"
        if installed:
            log.info("Rewriting %s", rewritten)
            return installed, [*prefix, *args]
        if self.exists(binary):
            log.info("Rewriting %s (system binary)", rewritten)
            return binary, [*prefix, *args]
        log.warning("Cannot rewrite %s: %s not found", command, binary)
        return command, args
