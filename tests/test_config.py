from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolbridge.config import BridgeConfig, ServerDefinition, load_config, save_config
from toolbridge.errors import ServerConfigError


def test_load_config_writes_defaults(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "config.yml"
    cfg = load_config(path)
    assert path.exists()
    assert cfg.timeout == 5.0
    assert cfg.active_tools is None
    assert cfg.enable_command_transform is True
    assert cfg.uv.auto_download and cfg.bun.auto_download
    assert cfg.uv.version == "latest"


def test_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config.yml"
    original = BridgeConfig.from_dict(
        {
            "timeout": 12,
            "active_tools": ["search"],
            "servers": {
                "fetch": {"command": "uvx", "args": ["mcp-server-fetch"], "env": {"A": "1"}},
                "remote": {"url": "https://tools.example/mcp", "enable_command_transform": False},
            },
            "uv": {"version": "0.4.18", "pypi_mirror": "https://pypi.example/simple"},
            "bun": {"auto_download": False},
            "github_mirror": "https://mirror.example",
            "data_dir": str(tmp_path / "data"),
        }
    )
    save_config(original, path)
    assert not path.with_suffix(".tmp").exists()
    assert load_config(path) == original


def test_invalid_values_fall_back_to_defaults() -> None:
    cfg = BridgeConfig.from_dict(
        {
            "timeout": -1,
            "active_tools": "search",
            "servers": ["not", "a", "mapping"],
            "uv": "yes",
            "bun": {"version": "", "args": "--bun"},
            "github_mirror": 42,
        }
    )
    assert cfg.timeout == 5.0
    assert cfg.active_tools is None
    assert cfg.servers == {}
    assert cfg.uv.auto_download is True
    assert cfg.bun.version == "latest"
    assert cfg.bun.args == []
    assert cfg.github_mirror == ""


@pytest.mark.parametrize("value", ["false", "no", 0, 1, None])
def test_auto_download_requires_a_real_boolean(value) -> None:
    cfg = BridgeConfig.from_dict({"uv": {"auto_download": value}, "bun": {"auto_download": False}})
    assert cfg.uv.auto_download is True
    assert cfg.bun.auto_download is False


def test_mcp_servers_alias_and_camel_case_flag() -> None:
    cfg = BridgeConfig.from_dict(
        {"mcpServers": {"mem": {"command": "npx", "args": ["-y", "server-memory"], "enableCommandTransform": False}}}
    )
    server = cfg.servers["mem"]
    assert server == ServerDefinition(
        name="mem", command="npx", args=["-y", "server-memory"], enable_command_transform=False
    )


def test_server_validation() -> None:
    ServerDefinition(name="ok", url="http://x").validate()
    with pytest.raises(ServerConfigError):
        ServerDefinition(name="both", url="http://x", command="python").validate()
    with pytest.raises(ServerConfigError):
        ServerDefinition(name="neither").validate()


def test_bin_dir_under_data_dir(tmp_path: Path) -> None:
    cfg = BridgeConfig.from_dict({"data_dir": str(tmp_path)})
    assert cfg.bin_dir == tmp_path / "bin"


def test_yaml_on_disk_is_plain(tmp_path: Path) -> None:
    path = tmp_path / "config.yml"
    save_config(BridgeConfig(), path)
    raw = yaml.safe_load(path.read_text())
    assert raw["timeout"] == 5.0
    assert raw["servers"] == {}
