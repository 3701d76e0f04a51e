from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolbridge import cli
from toolbridge.platforms import resolve_platform


def _write_config(tmp_path: Path, raw: dict) -> Path:
    path = tmp_path / "config.yml"
    raw = {"data_dir": str(tmp_path / "data"), "cache_dir": str(tmp_path / "cache"), **raw}
    path.write_text(yaml.safe_dump(raw))
    return path


def test_no_subcommand_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 2
    assert "usage: toolbridge" in capsys.readouterr().out


def test_resolve_uses_installed_binary(tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    config = _write_config(tmp_path, {})
    monkeypatch.setattr(cli, "resolve_platform", lambda: resolve_platform("linux", "x64"))
    bin_dir = tmp_path / "data" / "bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / "uv").write_text("")

    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config), "resolve", "uvx", "mcp-server-fetch", "--flag"])

    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == f"{bin_dir / 'uv'} tool run mcp-server-fetch --flag"


def test_resolve_without_transform(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, {})
    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config), "resolve", "--no-transform", "npx", "-y", "pkg"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == "npx -y pkg"


def test_tools_with_no_servers(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, {"uv": {"auto_download": False}, "bun": {"auto_download": False}})
    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config), "tools"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.splitlines() == ["available:", "registered:"]


def test_install_reports_disabled(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, {"uv": {"auto_download": False}, "bun": {"auto_download": False}})
    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(config), "install"])
    assert exc.value.code == 1
    assert capsys.readouterr().out.splitlines() == ["uv: absent", "bun: absent"]
