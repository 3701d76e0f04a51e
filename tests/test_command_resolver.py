from __future__ import annotations

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from toolbridge.command_resolver import CommandResolver, InstalledPaths
from toolbridge.config import BridgeConfig


def _resolver(raw: dict | None = None, on_path: set[str] | None = None, **kwargs) -> CommandResolver:
    available = on_path or set()
    return CommandResolver(
        BridgeConfig.from_dict(raw or {}),
        exists=lambda name: name in available,
        environ={"PATH": "/usr/bin", "HOME": "/home/me"},
        **kwargs,
    )


class TestRewriteRules(unittest.TestCase):
    def test_no_binaries_leaves_runners_unchanged(self) -> None:
        resolver = _resolver()
        with self.assertLogs("toolbridge.command_resolver", level="WARNING") as logs:
            command, args, _ = resolver.resolve("uvx", ["mcp-server-fetch"])
        self.assertEqual((command, args), ("uvx", ["mcp-server-fetch"]))
        self.assertIn("uv not found", logs.output[0])

        command, args, _ = resolver.resolve("npx", ["-y", "@modelcontextprotocol/server-memory"])
        self.assertEqual((command, args), ("npx", ["-y", "@modelcontextprotocol/server-memory"]))

    def test_installed_uv_rewrites_uvx(self) -> None:
        resolver = _resolver(paths=InstalledPaths(uv="/data/bin/uv"))
        command, args, _ = resolver.resolve("uvx", ["mcp-server-fetch"])
        self.assertEqual((command, args), ("/data/bin/uv", ["tool", "run", "mcp-server-fetch"]))

    def test_installed_bun_rewrites_npx(self) -> None:
        resolver = _resolver(paths=InstalledPaths(bun="/data/bin/bun"))
        command, args, _ = resolver.resolve("npx", ["-y", "pkg"])
        self.assertEqual((command, args), ("/data/bin/bun", ["x", "-y", "pkg"]))

    def test_system_binaries_used_when_not_installed(self) -> None:
        resolver = _resolver(on_path={"uv", "bun"})
        self.assertEqual(resolver.resolve("uvx", ["a"])[:2], ("uv", ["tool", "run", "a"]))
        self.assertEqual(resolver.resolve("npx", ["b"])[:2], ("bun", ["x", "b"]))

    def test_direct_uv_and_bun_get_configured_args(self) -> None:
        resolver = _resolver(
            {"uv": {"args": ["--offline"]}, "bun": {"args": ["--bun"]}},
            paths=InstalledPaths(uv="/b/uv", bun="/b/bun"),
        )
        self.assertEqual(resolver.resolve("uv", ["run", "x"])[:2], ("/b/uv", ["--offline", "run", "x"]))
        self.assertEqual(resolver.resolve("bun", ["run", "y"])[:2], ("/b/bun", ["--bun", "run", "y"]))

    def test_direct_uv_without_install_is_unchanged(self) -> None:
        resolver = _resolver({"uv": {"args": ["--offline"]}}, on_path={"uv"})
        self.assertEqual(resolver.resolve("uv", ["run"])[:2], ("uv", ["run"]))

    def test_other_commands_pass_through(self) -> None:
        resolver = _resolver(paths=InstalledPaths(uv="/b/uv", bun="/b/bun"))
        self.assertEqual(resolver.resolve("python", ["-m", "server"])[:2], ("python", ["-m", "server"]))

    def test_transform_disabled(self) -> None:
        resolver = _resolver(paths=InstalledPaths(uv="/b/uv"))
        self.assertEqual(resolver.resolve("uvx", ["a"], enable_transform=False)[:2], ("uvx", ["a"]))

    def test_update_installed_paths_takes_effect_on_next_call(self) -> None:
        paths = InstalledPaths()
        resolver = _resolver(paths=paths)
        self.assertEqual(resolver.resolve("uvx", ["a"])[0], "uvx")
        resolver.update_installed_paths(Path("/new/uv"), None)
        self.assertIs(resolver.paths, paths)
        self.assertEqual(resolver.resolve("uvx", ["a"])[0], "/new/uv")


class TestEnvironment(unittest.TestCase):
    def test_env_merges_process_and_server_env(self) -> None:
        _, _, env = _resolver().resolve("python", [], extra_env={"API_KEY": "k", "PATH": "/opt/bin"})
        self.assertEqual(env["API_KEY"], "k")
        self.assertEqual(env["PATH"], "/opt/bin")
        self.assertEqual(env["HOME"], "/home/me")
        self.assertNotIn("UV_INDEX_URL", env)

    def test_pypi_mirror_sets_index_urls(self) -> None:
        mirror = "https://pypi.example/simple"
        _, _, env = _resolver({"uv": {"pypi_mirror": mirror}}).resolve("uvx", ["a"], enable_transform=False)
        self.assertEqual(env["PIP_INDEX_URL"], mirror)
        self.assertEqual(env["UV_INDEX_URL"], mirror)


if __name__ == "__main__":
    unittest.main()
