from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .errors import ServerConfigError

CONFIG_PATH = Path(os.environ.get("TOOLBRIDGE_CONFIG", Path.home() / ".config" / "toolbridge" / "config.yml"))
_DATA_DIR = Path.home() / ".local" / "share" / "toolbridge"
_CACHE_DIR = Path.home() / ".cache" / "toolbridge"


@dataclass(frozen=True)
class ServerDefinition:
    name: str
    url: str | None = None
    command: str | None = None
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    # None defers to BridgeConfig.enable_command_transform.
    enable_command_transform: bool | None = None

    def validate(self) -> None:
        if self.url and self.command:
            raise ServerConfigError(f"Server '{self.name}' sets both url and command")
        if not self.url and not self.command:
            raise ServerConfigError(f"Server '{self.name}' needs either url or command")

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme.lower() if self.url else ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.url:
            out["url"] = self.url
        if self.command:
            out["command"] = self.command
            out["args"] = list(self.args)
        if self.env:
            out["env"] = dict(self.env)
        if self.enable_command_transform is not None:
            out["enable_command_transform"] = self.enable_command_transform
        return out


@dataclass(frozen=True)
class HelperSettings:
    auto_download: bool = True
    version: str = "latest"
    args: list[str] = field(default_factory=list)
    # Only meaningful for uv: index URL exported as PIP_INDEX_URL / UV_INDEX_URL.
    pypi_mirror: str = ""


@dataclass(frozen=True)
class BridgeConfig:
    timeout: float = 5.0                  # seconds per tool call
    active_tools: list[str] | None = None  # None = register every discovered tool
    servers: dict[str, ServerDefinition] = field(default_factory=dict)
    uv: HelperSettings = field(default_factory=HelperSettings)
    bun: HelperSettings = field(default_factory=HelperSettings)
    enable_command_transform: bool = True
    github_mirror: str = ""
    data_dir: str = str(_DATA_DIR)
    cache_dir: str = str(_CACHE_DIR)

    @property
    def bin_dir(self) -> Path:
        return Path(self.data_dir) / "bin"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BridgeConfig":
        cfg = _validate(raw)
        return cls(
            timeout=cfg["timeout"],
            active_tools=cfg["active_tools"],
            servers={
                name: ServerDefinition(name=name, **spec)
                for name, spec in cfg["servers"].items()
            },
            uv=HelperSettings(**cfg["uv"]),
            bun=HelperSettings(**cfg["bun"]),
            enable_command_transform=cfg["enable_command_transform"],
            github_mirror=cfg["github_mirror"],
            data_dir=cfg["data_dir"],
            cache_dir=cfg["cache_dir"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeout": self.timeout,
            "active_tools": list(self.active_tools) if self.active_tools is not None else None,
            "servers": {name: server.to_dict() for name, server in self.servers.items()},
            "uv": {
                "auto_download": self.uv.auto_download,
                "version": self.uv.version,
                "pypi_mirror": self.uv.pypi_mirror,
                "args": list(self.uv.args),
            },
            "bun": {
                "auto_download": self.bun.auto_download,
                "version": self.bun.version,
                "args": list(self.bun.args),
            },
            "enable_command_transform": self.enable_command_transform,
            "github_mirror": self.github_mirror,
            "data_dir": self.data_dir,
            "cache_dir": self.cache_dir,
        }


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def _str_dict(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def _validate_server(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    server: dict[str, Any] = {}
    url = raw.get("url")
    if isinstance(url, str) and url.strip():
        server["url"] = url.strip()
    command = raw.get("command")
    if isinstance(command, str) and command.strip():
        server["command"] = command.strip()
    server["args"] = _str_list(raw.get("args"))
    server["env"] = _str_dict(raw.get("env"))
    # Accept the camelCase spelling used by MCP client config files.
    transform = raw.get("enable_command_transform", raw.get("enableCommandTransform"))
    server["enable_command_transform"] = transform if isinstance(transform, bool) else None
    return server


def _validate_helper(raw: Any, *, with_mirror: bool) -> dict[str, Any]:
    defaults = HelperSettings()
    raw = raw if isinstance(raw, dict) else {}
    auto = raw.get("auto_download", defaults.auto_download)
    version = raw.get("version", defaults.version)
    helper: dict[str, Any] = {
        "auto_download": auto if isinstance(auto, bool) else defaults.auto_download,
        "version": str(version).strip() if isinstance(version, (str, int, float)) and str(version).strip() else defaults.version,
        "args": _str_list(raw.get("args")),
    }
    if with_mirror:
        mirror = raw.get("pypi_mirror", defaults.pypi_mirror)
        helper["pypi_mirror"] = mirror.strip() if isinstance(mirror, str) else defaults.pypi_mirror
    return helper


def _validate(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults = BridgeConfig()
    merged: dict[str, Any] = {}

    raw_timeout = cfg.get("timeout", defaults.timeout)
    merged["timeout"] = (
        float(raw_timeout)
        if isinstance(raw_timeout, (int, float)) and not isinstance(raw_timeout, bool) and raw_timeout > 0
        else defaults.timeout
    )

    raw_active = cfg.get("active_tools")
    merged["active_tools"] = _str_list(raw_active) if isinstance(raw_active, (list, tuple)) else None

    raw_servers = cfg.get("servers", cfg.get("mcpServers"))
    merged["servers"] = {
        str(name): _validate_server(spec)
        for name, spec in (raw_servers.items() if isinstance(raw_servers, dict) else [])
    }

    merged["uv"] = _validate_helper(cfg.get("uv"), with_mirror=True)
    merged["bun"] = _validate_helper(cfg.get("bun"), with_mirror=False)

    transform = cfg.get("enable_command_transform", defaults.enable_command_transform)
    merged["enable_command_transform"] = bool(transform)

    mirror = cfg.get("github_mirror", defaults.github_mirror)
    merged["github_mirror"] = mirror.strip() if isinstance(mirror, str) else defaults.github_mirror

    for key in ("data_dir", "cache_dir"):
        value = cfg.get(key)
        merged[key] = str(Path(value).expanduser()) if isinstance(value, str) and value.strip() else getattr(defaults, key)
    return merged


def load_config(path: Path = CONFIG_PATH) -> BridgeConfig:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        cfg = BridgeConfig()
        save_config(cfg, path)
        return cfg

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return BridgeConfig.from_dict(raw if isinstance(raw, dict) else {})


def save_config(cfg: BridgeConfig, path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)
